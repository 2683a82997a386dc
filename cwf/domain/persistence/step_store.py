"""Step Store adapter: persistence contract for workflows and their steps.

Every call is atomic at row granularity. `activate_step` is the single call
that moves a step to IN_PROGRESS; it checks the one-current-step and
dependency invariants inside the same critical section that writes the
change, so no caller can observe two current steps.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from cwf.domain.errors import StepInvariantError
from cwf.domain.models.step_payloads import StepPayload
from cwf.domain.models.workflow import (
    StepStatus,
    StepType,
    Workflow,
    WorkflowStatus,
    WorkflowStep,
)


class StepStore(ABC):
    """Abstract CRUD contract for Workflow/Step rows."""

    @abstractmethod
    def get_workflow(self, workflow_id: str) -> Workflow | None:
        """Return the workflow with its steps, or None if it does not exist."""
        ...

    @abstractmethod
    def list_workflows(self, thread_id: str) -> list[Workflow]:
        """Return every workflow on a thread, oldest first."""
        ...

    @abstractmethod
    def get_step(self, step_id: str) -> WorkflowStep | None:
        ...

    @abstractmethod
    def create_workflow(
        self, thread_id: str, template_id: str, template_name: str
    ) -> Workflow:
        ...

    @abstractmethod
    def create_step(
        self,
        workflow_id: str,
        *,
        name: str,
        type: StepType,
        order: int,
        payload: StepPayload,
        dependencies: list[str] | None = None,
        prompt: str = "",
    ) -> WorkflowStep:
        """Create a PENDING step. Steps only leave PENDING via `activate_step`."""
        ...

    @abstractmethod
    def update_step(
        self,
        step_id: str,
        *,
        status: StepStatus | None = None,
        payload: StepPayload | None = None,
        user_input: str | None = None,
    ) -> WorkflowStep:
        """Update a step's status, payload or recorded user input.

        Raises:
            KeyError: If the step does not exist
            StepInvariantError: If `status` is IN_PROGRESS (use activate_step)
        """
        ...

    @abstractmethod
    def update_workflow_status(self, workflow_id: str, status: WorkflowStatus) -> None:
        ...

    @abstractmethod
    def update_workflow_current_step(
        self, workflow_id: str, step_id: str | None
    ) -> None:
        ...

    @abstractmethod
    def activate_step(self, workflow_id: str, step_id: str) -> WorkflowStep:
        """Atomically make `step_id` the workflow's single IN_PROGRESS step.

        Raises:
            KeyError: If the workflow or step does not exist
            StepInvariantError: If another step is IN_PROGRESS or a
                dependency is not COMPLETE
        """
        ...

    @abstractmethod
    def delete_workflow(self, workflow_id: str) -> None:
        """Delete a workflow and all of its steps.

        Raises:
            KeyError: If the workflow does not exist
        """
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStepStore(StepStore):
    """StepStore over whole-workflow documents.

    Subclasses supply document load/save; this class owns the invariants
    and serialises every mutation behind one lock.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Document hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _load(self, workflow_id: str) -> Workflow | None:
        ...

    @abstractmethod
    def _save(self, workflow: Workflow) -> None:
        ...

    @abstractmethod
    def _remove(self, workflow_id: str) -> bool:
        ...

    @abstractmethod
    def _all(self) -> list[Workflow]:
        ...

    # ------------------------------------------------------------------
    # StepStore
    # ------------------------------------------------------------------

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        with self._lock:
            return self._load(workflow_id)

    def list_workflows(self, thread_id: str) -> list[Workflow]:
        with self._lock:
            workflows = [w for w in self._all() if w.thread_id == thread_id]
        return sorted(workflows, key=lambda w: w.created_at)

    def get_step(self, step_id: str) -> WorkflowStep | None:
        with self._lock:
            workflow = self._workflow_for_step(step_id)
            return workflow.step_by_id(step_id) if workflow else None

    def create_workflow(
        self, thread_id: str, template_id: str, template_name: str
    ) -> Workflow:
        workflow = Workflow(
            id=uuid.uuid4().hex,
            thread_id=thread_id,
            template_id=template_id,
            template_name=template_name,
        )
        with self._lock:
            self._save(workflow)
        return workflow

    def create_step(
        self,
        workflow_id: str,
        *,
        name: str,
        type: StepType,
        order: int,
        payload: StepPayload,
        dependencies: list[str] | None = None,
        prompt: str = "",
    ) -> WorkflowStep:
        with self._lock:
            workflow = self._require_workflow(workflow_id)
            if workflow.step_by_name(name) is not None:
                raise ValueError(
                    f"Step name '{name}' already exists in workflow '{workflow_id}'"
                )
            step = WorkflowStep(
                id=uuid.uuid4().hex,
                workflow_id=workflow_id,
                name=name,
                type=type,
                order=order,
                dependencies=list(dependencies or []),
                prompt=prompt,
                payload=payload,
            )
            workflow.steps.append(step)
            workflow.updated_at = _now()
            self._save(workflow)
            return step

    def update_step(
        self,
        step_id: str,
        *,
        status: StepStatus | None = None,
        payload: StepPayload | None = None,
        user_input: str | None = None,
    ) -> WorkflowStep:
        with self._lock:
            workflow = self._workflow_for_step(step_id)
            if workflow is None:
                raise KeyError(f"Step '{step_id}' not found")
            step = workflow.step_by_id(step_id)
            if step is None:
                raise KeyError(f"Step '{step_id}' not found")

            if status == StepStatus.IN_PROGRESS and step.status != StepStatus.IN_PROGRESS:
                raise StepInvariantError(
                    workflow.id, step_id, "steps enter IN_PROGRESS only via activate_step"
                )

            if status is not None:
                step.status = status
            if payload is not None:
                step.payload = payload
            if user_input is not None:
                step.user_input = user_input
            step.updated_at = _now()

            # Re-validate the payload/type pairing after mutation
            WorkflowStep.model_validate(step.model_dump())

            if status is not None and status != StepStatus.IN_PROGRESS:
                if workflow.current_step_id == step_id:
                    workflow.current_step_id = None
            workflow.updated_at = _now()
            self._save(workflow)
            return step

    def update_workflow_status(self, workflow_id: str, status: WorkflowStatus) -> None:
        with self._lock:
            workflow = self._require_workflow(workflow_id)
            workflow.status = status
            if status != WorkflowStatus.ACTIVE:
                workflow.current_step_id = None
            workflow.updated_at = _now()
            self._save(workflow)

    def update_workflow_current_step(
        self, workflow_id: str, step_id: str | None
    ) -> None:
        with self._lock:
            workflow = self._require_workflow(workflow_id)
            if step_id is not None and workflow.step_by_id(step_id) is None:
                raise KeyError(f"Step '{step_id}' not found in workflow '{workflow_id}'")
            workflow.current_step_id = step_id
            workflow.updated_at = _now()
            self._save(workflow)

    def activate_step(self, workflow_id: str, step_id: str) -> WorkflowStep:
        with self._lock:
            workflow = self._require_workflow(workflow_id)
            step = workflow.step_by_id(step_id)
            if step is None:
                raise KeyError(f"Step '{step_id}' not found in workflow '{workflow_id}'")

            others = [s for s in workflow.in_progress_steps() if s.id != step_id]
            if others:
                raise StepInvariantError(
                    workflow_id,
                    step_id,
                    f"step '{others[0].name}' is already IN_PROGRESS",
                )
            if not workflow.dependencies_complete(step):
                raise StepInvariantError(
                    workflow_id, step_id, "dependencies are not COMPLETE"
                )

            step.status = StepStatus.IN_PROGRESS
            step.updated_at = _now()
            workflow.current_step_id = step_id
            workflow.updated_at = _now()
            self._save(workflow)
            return step

    def delete_workflow(self, workflow_id: str) -> None:
        with self._lock:
            if not self._remove(workflow_id):
                raise KeyError(f"Workflow '{workflow_id}' not found")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_workflow(self, workflow_id: str) -> Workflow:
        workflow = self._load(workflow_id)
        if workflow is None:
            raise KeyError(f"Workflow '{workflow_id}' not found")
        return workflow

    def _workflow_for_step(self, step_id: str) -> Workflow | None:
        for workflow in self._all():
            if workflow.step_by_id(step_id) is not None:
                return workflow
        return None


class InMemoryStepStore(DocumentStepStore):
    """Process-local store. Returns copies so callers never alias stored rows."""

    def __init__(self) -> None:
        super().__init__()
        self._workflows: dict[str, Workflow] = {}

    def _load(self, workflow_id: str) -> Workflow | None:
        workflow = self._workflows.get(workflow_id)
        return workflow.model_copy(deep=True) if workflow else None

    def _save(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    def _remove(self, workflow_id: str) -> bool:
        return self._workflows.pop(workflow_id, None) is not None

    def _all(self) -> list[Workflow]:
        return [w.model_copy(deep=True) for w in self._workflows.values()]
