from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from cwf.domain.models.step_payloads import (
    DialogMode,
    DialogPayload,
    GenerationPayload,
    StepPayload,
    TitlePayload,
)


class WorkflowStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"


class StepType(str, Enum):
    """How a step is executed.

    DIALOG and GENERATION run on a user turn. AUTO_EXECUTE runs the behavior
    declared by its payload (dialog or generation) without waiting for input.
    TITLE derives a short label in a single round trip.
    """

    DIALOG = "dialog"
    GENERATION = "generation"
    AUTO_EXECUTE = "auto_execute"
    TITLE = "title"


# Payload kinds each step type accepts
_ALLOWED_PAYLOADS: dict[StepType, tuple[type, ...]] = {
    StepType.DIALOG: (DialogPayload,),
    StepType.GENERATION: (GenerationPayload,),
    StepType.AUTO_EXECUTE: (DialogPayload, GenerationPayload),
    StepType.TITLE: (TitlePayload,),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def check_payload_matches_type(step_type: StepType, payload: BaseModel) -> None:
    """Raise ValueError if `payload` is not a valid variant for `step_type`."""
    allowed = _ALLOWED_PAYLOADS[step_type]
    if not isinstance(payload, allowed):
        names = ", ".join(cls.__name__ for cls in allowed)
        raise ValueError(
            f"Step type '{step_type.value}' requires payload of type {names}, "
            f"got {type(payload).__name__}"
        )


class WorkflowStep(BaseModel):
    """One node in a workflow's execution graph."""

    id: str
    workflow_id: str
    name: str
    type: StepType
    order: int
    status: StepStatus = StepStatus.PENDING
    dependencies: list[str] = Field(default_factory=list)
    prompt: str = ""
    user_input: str | None = None
    payload: StepPayload

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("name")
    @classmethod
    def _name_non_empty(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("step name must be non-empty")
        return v2

    @model_validator(mode="after")
    def _payload_matches_type(self) -> "WorkflowStep":
        check_payload_matches_type(self.type, self.payload)
        return self

    @property
    def is_auto_execute(self) -> bool:
        return self.type == StepType.AUTO_EXECUTE or self.payload.auto_execute

    @property
    def is_review(self) -> bool:
        return (
            isinstance(self.payload, DialogPayload)
            and self.payload.mode == DialogMode.REVIEW
        )


class Workflow(BaseModel):
    """One run of a template, composed of ordered steps."""

    id: str
    thread_id: str
    template_id: str
    # The workflow type, e.g. "Press Release"
    template_name: str
    status: WorkflowStatus = WorkflowStatus.ACTIVE
    current_step_id: str | None = None
    steps: list[WorkflowStep] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def ordered_steps(self) -> list[WorkflowStep]:
        return sorted(self.steps, key=lambda s: s.order)

    def step_by_name(self, name: str) -> WorkflowStep | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def step_by_id(self, step_id: str) -> WorkflowStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def in_progress_steps(self) -> list[WorkflowStep]:
        return [s for s in self.ordered_steps() if s.status == StepStatus.IN_PROGRESS]

    def dependencies_complete(self, step: WorkflowStep) -> bool:
        """True when every dependency of `step` names a COMPLETE step."""
        for dep_name in step.dependencies:
            dep = self.step_by_name(dep_name)
            if dep is None or dep.status != StepStatus.COMPLETE:
                return False
        return True

    def all_steps_complete(self) -> bool:
        return all(s.status == StepStatus.COMPLETE for s in self.steps)

    @property
    def is_active(self) -> bool:
        return self.status == WorkflowStatus.ACTIVE
