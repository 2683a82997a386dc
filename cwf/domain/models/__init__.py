"""Domain models for the Content Workflow Engine."""

from .workflow import (
    StepStatus,
    StepType,
    Workflow,
    WorkflowStatus,
    WorkflowStep,
)
from .step_payloads import (
    DialogMode,
    DialogPayload,
    GenerationPayload,
    ReviewDecision,
    StepPayload,
    TitlePayload,
)
from .template import StepDefinition, WorkflowSecurityLevel, WorkflowTemplate
from .security import SecurityClassification, SecurityLevel
from .context import (
    FilteredContext,
    FilteredSnippet,
    KnowledgeScope,
    KnowledgeSnippet,
    UserProfile,
)
from .results import (
    GraphStalled,
    NotFound,
    StepResolved,
    WorkflowCreated,
    WorkflowFinished,
)
from .turn import DialogResult, DispatchOutcome, TurnResult, TurnStatus


__all__ = [
    "StepStatus",
    "StepType",
    "Workflow",
    "WorkflowStatus",
    "WorkflowStep",
    "DialogMode",
    "DialogPayload",
    "GenerationPayload",
    "ReviewDecision",
    "StepPayload",
    "TitlePayload",
    "StepDefinition",
    "WorkflowSecurityLevel",
    "WorkflowTemplate",
    "SecurityClassification",
    "SecurityLevel",
    "FilteredContext",
    "FilteredSnippet",
    "KnowledgeScope",
    "KnowledgeSnippet",
    "UserProfile",
    "GraphStalled",
    "NotFound",
    "StepResolved",
    "WorkflowCreated",
    "WorkflowFinished",
    "DialogResult",
    "DispatchOutcome",
    "TurnResult",
    "TurnStatus",
]
