"""Workflow template models.

Templates are frozen. A workflow copies the step definitions at creation
time, so later edits to a template never reach a running workflow.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cwf.domain.models.step_payloads import StepPayload
from cwf.domain.models.workflow import StepType, check_payload_matches_type


class WorkflowSecurityLevel(str, Enum):
    """Data-handling posture of a workflow type.

    Only OPEN workflows may be entered by an automatic transition.
    """

    OPEN = "open"
    RESTRICTED = "restricted"
    LOCKED = "locked"


class StepDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    type: StepType
    dependencies: tuple[str, ...] = ()
    prompt: str = ""
    payload: StepPayload

    @model_validator(mode="after")
    def _payload_matches_type(self) -> "StepDefinition":
        check_payload_matches_type(self.type, self.payload)
        return self


class WorkflowTemplate(BaseModel):
    """Immutable blueprint a Workflow is instantiated from.

    Step `order` is the position in `steps`.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    description: str = ""
    steps: tuple[StepDefinition, ...] = Field(default_factory=tuple)

    security_level: WorkflowSecurityLevel = WorkflowSecurityLevel.OPEN
    switching_enabled: bool = True
    # Keys removed from carryover when leaving this workflow ("all" blocks everything)
    transfer_restrictions: tuple[str, ...] = ()

    def step_names(self) -> list[str]:
        return [s.name for s in self.steps]
