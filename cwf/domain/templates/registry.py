import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from cwf.domain.errors import TemplateError
from cwf.domain.models.template import WorkflowTemplate

from .builtin import BUILTIN_TEMPLATES

logger = logging.getLogger(__name__)

# Payload kind assumed when a YAML step omits one
_DEFAULT_PAYLOAD_KIND = {
    "dialog": "dialog",
    "generation": "generation",
    "auto_execute": "generation",
    "title": "title",
}


class TemplateRegistry:
    """Validated set of workflow templates, looked up by id or name.

    Lookups are case-insensitive. Dependency cycles are accepted here; the
    scheduler reports them as a stalled graph when a workflow runs.
    """

    def __init__(self, templates: Iterable[WorkflowTemplate] | None = None):
        self._templates: dict[str, WorkflowTemplate] = {}
        for template in BUILTIN_TEMPLATES if templates is None else templates:
            self.register(template)

    def register(self, template: WorkflowTemplate) -> None:
        """
        Validate and add a template.

        Raises:
            TemplateError: If the template is invalid or its id/name is taken
        """
        validate_template(template)
        for existing in self._templates.values():
            if existing.id.lower() == template.id.lower():
                raise TemplateError(f"Template id '{template.id}' is already registered")
            if existing.name.lower() == template.name.lower():
                raise TemplateError(f"Template name '{template.name}' is already registered")
        self._templates[template.id] = template
        logger.debug(f"Registered template '{template.name}' ({len(template.steps)} steps)")

    def get(self, id_or_name: str) -> WorkflowTemplate | None:
        wanted = id_or_name.strip().lower()
        for template in self._templates.values():
            if template.id.lower() == wanted or template.name.lower() == wanted:
                return template
        return None

    def list_templates(self) -> list[WorkflowTemplate]:
        return list(self._templates.values())

    def names(self) -> list[str]:
        return [t.name for t in self._templates.values()]

    def load_yaml(self, path: Path) -> list[WorkflowTemplate]:
        """
        Register extra templates from a YAML file.

        The file holds a `templates` list; each item has the WorkflowTemplate
        fields. A step payload may omit `kind`, which is then derived from the
        step type.

        Returns:
            The templates that were registered

        Raises:
            TemplateError: If the file is missing, malformed or invalid
        """
        if not path.is_file():
            raise TemplateError(f"Templates file not found: {path}")
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise TemplateError(f"Invalid YAML in {path}: {e}") from e

        items = data.get("templates") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise TemplateError(f"{path} must contain a 'templates' list")

        loaded = []
        for item in items:
            try:
                template = WorkflowTemplate.model_validate(_with_payload_kinds(item))
            except ValidationError as e:
                raise TemplateError(f"Invalid template in {path}: {e}") from e
            self.register(template)
            loaded.append(template)
        return loaded


def validate_template(template: WorkflowTemplate) -> None:
    """
    Check step names and dependencies of a template.

    Raises:
        TemplateError: On empty templates, duplicate step names or
            dependencies that name no step of the template
    """
    if not template.steps:
        raise TemplateError(f"Template '{template.name}' has no steps")

    names = template.step_names()
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise TemplateError(
            f"Template '{template.name}' has duplicate step names: {', '.join(duplicates)}"
        )

    known = set(names)
    for step in template.steps:
        missing = [d for d in step.dependencies if d not in known]
        if missing:
            raise TemplateError(
                f"Step '{step.name}' in template '{template.name}' depends on "
                f"unknown steps: {', '.join(missing)}"
            )


def _with_payload_kinds(item: Any) -> Any:
    if not isinstance(item, dict):
        return item
    item = dict(item)
    steps = []
    for step in item.get("steps") or []:
        if isinstance(step, dict):
            step = dict(step)
            payload = dict(step.get("payload") or {})
            kind = _DEFAULT_PAYLOAD_KIND.get(str(step.get("type", "")))
            if kind:
                payload.setdefault("kind", kind)
            step["payload"] = payload
        steps.append(step)
    item["steps"] = steps
    return item
