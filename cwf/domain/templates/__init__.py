from .builtin import BUILTIN_TEMPLATES, SELECTABLE_WORKFLOWS
from .registry import TemplateRegistry, validate_template

__all__ = [
    "BUILTIN_TEMPLATES",
    "SELECTABLE_WORKFLOWS",
    "TemplateRegistry",
    "validate_template",
]
