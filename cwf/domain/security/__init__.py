from .classifier import classify, map_strings, redact, redact_emails
from .policy import WorkflowSecurityPolicy

__all__ = ["classify", "map_strings", "redact", "redact_emails", "WorkflowSecurityPolicy"]
