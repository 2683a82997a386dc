"""Per-turn result models returned by the dispatcher and lifecycle manager."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from cwf.domain.models.step_payloads import ReviewDecision


class DialogResult(BaseModel):
    """Structured result parsed from a dialog completion.

    `valid` is False when the completion did not parse into the expected
    shape; such a result is handled as an unclear answer.
    """

    is_complete: bool = False
    next_question: str | None = None
    collected_information: dict[str, Any] = Field(default_factory=dict)
    review_decision: ReviewDecision | None = None
    requested_changes: list[str] = Field(default_factory=list)
    valid: bool = True


@dataclass
class DispatchOutcome:
    """What happened when the dispatcher executed one step.

    Attributes:
        response: Text for the user (may be empty for silent steps)
        step_completed: The step was marked COMPLETE
        retryable: Adapter failed twice; the step is still IN_PROGRESS
        selected_workflow: Target chosen by a workflow-selection dialog
        next_step_id: Step to enter directly (generation -> review hop)
        review_decision: Decision made on a review step, if any
    """

    response: str = ""
    step_completed: bool = False
    retryable: bool = False
    selected_workflow: str | None = None
    next_step_id: str | None = None
    review_decision: ReviewDecision | None = None


class TurnStatus(str, Enum):
    OK = "ok"
    RETRYABLE_ERROR = "retryable_error"  # Try the same turn again
    STALLED = "stalled"                  # Step graph cannot progress
    NOT_FOUND = "not_found"              # Referenced entity missing
    DUPLICATE = "duplicate"              # Turn already processed


class TurnResult(BaseModel):
    """Outcome of one inbound user turn."""

    status: TurnStatus = TurnStatus.OK
    response: str = ""
    thread_id: str
    workflow_id: str | None = None
    workflow_type: str | None = None
    step_name: str | None = None

    # True when the workflow that handled the turn reached COMPLETED
    workflow_completed: bool = False
    # Set when the turn replaced the workflow with another one
    transitioned_to: str | None = None
    active_workflow_id: str | None = None

    error: str | None = None

    @property
    def retryable(self) -> bool:
        return self.status == TurnStatus.RETRYABLE_ERROR
