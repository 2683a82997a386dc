"""Domain-level exceptions for the Content Workflow Engine.

Expected-but-uncommon outcomes (missing entities, stalled graphs) are
returned as values from `cwf.domain.models.results`; the exceptions here
cover adapter failures and programmer errors only.
"""


class ProviderError(Exception):
    """Raised when an adapter fails (network, 5xx, timeout, etc.)."""

    pass


class StepInvariantError(Exception):
    """Raised when a step transition would break a workflow invariant.

    Examples: activating a step while another is IN_PROGRESS, or activating
    a step whose dependencies are not COMPLETE.
    """

    def __init__(self, workflow_id: str, step_id: str, reason: str):
        self.workflow_id = workflow_id
        self.step_id = step_id
        self.reason = reason
        super().__init__(
            f"Cannot activate step '{step_id}' in workflow '{workflow_id}': {reason}"
        )


class TemplateError(ValueError):
    """Raised when a workflow template definition is invalid."""

    pass
