import logging
from collections.abc import Callable
from typing import Any

from cwf.domain.models.template import WorkflowSecurityLevel, WorkflowTemplate
from cwf.domain.security.classifier import map_strings, redact_emails

logger = logging.getLogger(__name__)

TRANSFER_ALL = "all"
TRANSFER_CONTACT_INFO = "contact_info"
TRANSFER_EMAIL_ADDRESSES = "email_addresses"

_CONTACT_KEYS = ("contacts", "media_contacts", "contact_list")
_EMAIL_KEYS = ("emails", "email_addresses")


class WorkflowSecurityPolicy:
    """Per-workflow-type switching and data-transfer rules.

    Rules come from the template's `security_level`, `switching_enabled` and
    `transfer_restrictions`. A workflow type with no template is treated as
    locked: no switching and no carryover.
    """

    def __init__(self, lookup: Callable[[str], WorkflowTemplate | None]):
        self._lookup = lookup

    def level_for(self, workflow_type: str) -> WorkflowSecurityLevel:
        template = self._lookup(workflow_type)
        if template is None:
            logger.warning(f"Unknown workflow type '{workflow_type}', treating as locked")
            return WorkflowSecurityLevel.LOCKED
        return template.security_level

    def allows_transition(self, from_type: str, to_type: str) -> bool:
        """True if an automatic switch from `from_type` to `to_type` is allowed."""
        source = self._lookup(from_type)
        if source is None or not source.switching_enabled:
            logger.info(f"Automatic switching blocked from '{from_type}'")
            return False
        if self.level_for(to_type) != WorkflowSecurityLevel.OPEN:
            logger.info(f"Automatic switching blocked to '{to_type}'")
            return False
        return True

    def filter_carryover(self, data: dict[str, Any], workflow_type: str) -> dict[str, Any]:
        """Strip what `workflow_type` may not hand to another workflow."""
        template = self._lookup(workflow_type)
        if template is None or template.security_level == WorkflowSecurityLevel.LOCKED:
            return {}

        restrictions = set(template.transfer_restrictions)
        if TRANSFER_ALL in restrictions:
            return {}
        if not restrictions:
            return dict(data)

        filtered = dict(data)
        if TRANSFER_CONTACT_INFO in restrictions:
            for key in _CONTACT_KEYS:
                filtered.pop(key, None)
        if TRANSFER_EMAIL_ADDRESSES in restrictions:
            for key in _EMAIL_KEYS:
                filtered.pop(key, None)
            filtered = map_strings(filtered, redact_emails)

        logger.debug(
            f"Filtered carryover from '{workflow_type}' "
            f"(restrictions: {', '.join(sorted(restrictions))})"
        )
        return filtered
