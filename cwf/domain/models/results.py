"""Explicit result values for scheduler and lifecycle operations.

Missing entities and stalled graphs are expected outcomes of normal
operation, so they are returned rather than raised.
"""

from dataclasses import dataclass
from typing import Union

from cwf.domain.models.workflow import Workflow, WorkflowStep


@dataclass(frozen=True, slots=True)
class StepResolved:
    """The scheduler found the step to run."""

    step: WorkflowStep
    # True when the step was PENDING and has just been chosen for activation
    needs_activation: bool = False


@dataclass(frozen=True, slots=True)
class WorkflowFinished:
    """Every step is COMPLETE; nothing left to schedule."""

    workflow_id: str


@dataclass(frozen=True, slots=True)
class GraphStalled:
    """Pending steps exist but none can ever become eligible.

    Attributes:
        workflow_id: The stalled workflow
        pending: Names of the steps that cannot run
        cycles: Dependency cycles found among the pending steps
    """

    workflow_id: str
    pending: tuple[str, ...]
    cycles: tuple[tuple[str, ...], ...] = ()


@dataclass(frozen=True, slots=True)
class NotFound:
    """A referenced workflow, step or template does not exist."""

    kind: str
    identifier: str

    @property
    def message(self) -> str:
        return f"{self.kind.capitalize()} not found: {self.identifier}"


@dataclass(frozen=True, slots=True)
class WorkflowCreated:
    workflow: Workflow


SchedulerResult = Union[StepResolved, WorkflowFinished, GraphStalled]
CreateResult = Union[WorkflowCreated, NotFound]
