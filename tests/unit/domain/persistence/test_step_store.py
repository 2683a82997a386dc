"""Tests for the step store contract (in-memory implementation)."""

import pytest

from cwf.domain.errors import StepInvariantError
from cwf.domain.models.step_payloads import DialogPayload, GenerationPayload
from cwf.domain.models.workflow import StepStatus, StepType, WorkflowStatus
from cwf.domain.persistence import InMemoryStepStore


def _three_step_workflow(store: InMemoryStepStore, thread_id: str = "t1"):
    workflow = store.create_workflow(thread_id, "press-release", "Press Release")
    info = store.create_step(
        workflow.id, name="Info", type=StepType.DIALOG, order=0, payload=DialogPayload()
    )
    gen = store.create_step(
        workflow.id,
        name="Generate",
        type=StepType.GENERATION,
        order=1,
        payload=GenerationPayload(),
        dependencies=["Info"],
    )
    review = store.create_step(
        workflow.id,
        name="Review",
        type=StepType.DIALOG,
        order=2,
        payload=DialogPayload(),
        dependencies=["Generate"],
    )
    return workflow, info, gen, review


class TestCreate:
    """Tests for workflow and step creation."""

    def test_create_workflow_is_active_without_steps(self) -> None:
        """A new workflow is ACTIVE with no current step."""
        store = InMemoryStepStore()
        workflow = store.create_workflow("t1", "faq", "FAQ")

        loaded = store.get_workflow(workflow.id)
        assert loaded is not None
        assert loaded.status == WorkflowStatus.ACTIVE
        assert loaded.current_step_id is None
        assert loaded.steps == []

    def test_create_step_starts_pending(self) -> None:
        """Steps are created PENDING with the given dependencies."""
        store = InMemoryStepStore()
        workflow, _, gen, _ = _three_step_workflow(store)

        loaded = store.get_step(gen.id)
        assert loaded is not None
        assert loaded.status == StepStatus.PENDING
        assert loaded.dependencies == ["Info"]
        assert loaded.workflow_id == workflow.id

    def test_duplicate_step_name_rejected(self) -> None:
        """Step names are unique within a workflow."""
        store = InMemoryStepStore()
        workflow, *_ = _three_step_workflow(store)

        with pytest.raises(ValueError, match="already exists"):
            store.create_step(
                workflow.id, name="Info", type=StepType.DIALOG, order=3, payload=DialogPayload()
            )

    def test_payload_must_match_type(self) -> None:
        """A dialog step cannot carry a generation payload."""
        store = InMemoryStepStore()
        workflow = store.create_workflow("t1", "faq", "FAQ")

        with pytest.raises(ValueError):
            store.create_step(
                workflow.id, name="Bad", type=StepType.DIALOG, order=0, payload=GenerationPayload()
            )

    def test_create_step_unknown_workflow(self) -> None:
        """Creating a step on a missing workflow raises KeyError."""
        store = InMemoryStepStore()
        with pytest.raises(KeyError):
            store.create_step(
                "missing", name="Info", type=StepType.DIALOG, order=0, payload=DialogPayload()
            )


class TestActivateStep:
    """Tests for the single-current-step and dependency invariants."""

    def test_activate_sets_current_step(self) -> None:
        """Activation marks the step IN_PROGRESS and records it as current."""
        store = InMemoryStepStore()
        workflow, info, _, _ = _three_step_workflow(store)

        store.activate_step(workflow.id, info.id)

        loaded = store.get_workflow(workflow.id)
        assert loaded.current_step_id == info.id
        assert loaded.step_by_id(info.id).status == StepStatus.IN_PROGRESS

    def test_second_in_progress_step_rejected(self) -> None:
        """Only one step per workflow may be IN_PROGRESS."""
        store = InMemoryStepStore()
        workflow = store.create_workflow("t1", "custom", "Custom")
        a = store.create_step(
            workflow.id, name="A", type=StepType.DIALOG, order=0, payload=DialogPayload()
        )
        b = store.create_step(
            workflow.id, name="B", type=StepType.DIALOG, order=1, payload=DialogPayload()
        )
        store.activate_step(workflow.id, a.id)

        with pytest.raises(StepInvariantError, match="already IN_PROGRESS"):
            store.activate_step(workflow.id, b.id)

        loaded = store.get_workflow(workflow.id)
        assert len(loaded.in_progress_steps()) == 1

    def test_incomplete_dependency_rejected(self) -> None:
        """A step cannot start before its dependencies are COMPLETE."""
        store = InMemoryStepStore()
        workflow, _, gen, _ = _three_step_workflow(store)

        with pytest.raises(StepInvariantError, match="dependencies"):
            store.activate_step(workflow.id, gen.id)
        assert store.get_step(gen.id).status == StepStatus.PENDING

    def test_activate_after_dependency_completes(self) -> None:
        """Completing a step frees the slot and unlocks its dependents."""
        store = InMemoryStepStore()
        workflow, info, gen, _ = _three_step_workflow(store)
        store.activate_step(workflow.id, info.id)
        store.update_step(info.id, status=StepStatus.COMPLETE)

        store.activate_step(workflow.id, gen.id)

        loaded = store.get_workflow(workflow.id)
        assert loaded.current_step_id == gen.id
        assert [s.status for s in loaded.ordered_steps()] == [
            StepStatus.COMPLETE,
            StepStatus.IN_PROGRESS,
            StepStatus.PENDING,
        ]

    def test_activate_unknown_step(self) -> None:
        """Activating a step that is not in the workflow raises KeyError."""
        store = InMemoryStepStore()
        workflow, *_ = _three_step_workflow(store)
        with pytest.raises(KeyError):
            store.activate_step(workflow.id, "missing")


class TestUpdateStep:
    """Tests for update_step."""

    def test_update_cannot_set_in_progress(self) -> None:
        """IN_PROGRESS is only reachable through activate_step."""
        store = InMemoryStepStore()
        _, info, _, _ = _three_step_workflow(store)

        with pytest.raises(StepInvariantError):
            store.update_step(info.id, status=StepStatus.IN_PROGRESS)

    def test_completion_clears_current_step(self) -> None:
        """A step leaving IN_PROGRESS is no longer the current step."""
        store = InMemoryStepStore()
        workflow, info, _, _ = _three_step_workflow(store)
        store.activate_step(workflow.id, info.id)

        store.update_step(info.id, status=StepStatus.COMPLETE, user_input="hello")

        loaded = store.get_workflow(workflow.id)
        assert loaded.current_step_id is None
        assert loaded.step_by_id(info.id).user_input == "hello"

    def test_payload_update_keeps_status(self) -> None:
        """Updating only the payload leaves the status untouched."""
        store = InMemoryStepStore()
        workflow, info, _, _ = _three_step_workflow(store)
        store.activate_step(workflow.id, info.id)

        store.update_step(
            info.id, payload=DialogPayload(collected_information={"companyName": "Acme"})
        )

        loaded = store.get_step(info.id)
        assert loaded.status == StepStatus.IN_PROGRESS
        assert loaded.payload.collected_information == {"companyName": "Acme"}

    def test_update_missing_step(self) -> None:
        """Updating a step that does not exist raises KeyError."""
        store = InMemoryStepStore()
        with pytest.raises(KeyError):
            store.update_step("missing", status=StepStatus.COMPLETE)


class TestWorkflowRows:
    """Tests for workflow-level updates, listing and deletion."""

    def test_completed_workflow_has_no_current_step(self) -> None:
        """Leaving ACTIVE clears the current step pointer."""
        store = InMemoryStepStore()
        workflow, info, _, _ = _three_step_workflow(store)
        store.activate_step(workflow.id, info.id)

        store.update_workflow_status(workflow.id, WorkflowStatus.COMPLETED)

        loaded = store.get_workflow(workflow.id)
        assert loaded.status == WorkflowStatus.COMPLETED
        assert loaded.current_step_id is None

    def test_update_current_step_validates_step(self) -> None:
        """The current step pointer must name a step of the workflow."""
        store = InMemoryStepStore()
        workflow, info, _, _ = _three_step_workflow(store)

        store.update_workflow_current_step(workflow.id, info.id)
        assert store.get_workflow(workflow.id).current_step_id == info.id

        with pytest.raises(KeyError):
            store.update_workflow_current_step(workflow.id, "missing")

    def test_list_workflows_by_thread_oldest_first(self) -> None:
        """Listing returns only the thread's workflows, in creation order."""
        store = InMemoryStepStore()
        first = store.create_workflow("t1", "faq", "FAQ")
        store.create_workflow("t2", "faq", "FAQ")
        second = store.create_workflow("t1", "blog-article", "Blog Article")

        assert [w.id for w in store.list_workflows("t1")] == [first.id, second.id]
        assert store.list_workflows("unknown") == []

    def test_delete_workflow(self) -> None:
        """Deleting removes the workflow and its steps."""
        store = InMemoryStepStore()
        workflow, info, _, _ = _three_step_workflow(store)

        store.delete_workflow(workflow.id)

        assert store.get_workflow(workflow.id) is None
        assert store.get_step(info.id) is None
        with pytest.raises(KeyError):
            store.delete_workflow(workflow.id)

    def test_returned_rows_are_copies(self) -> None:
        """Mutating a returned workflow does not change the stored one."""
        store = InMemoryStepStore()
        workflow, *_ = _three_step_workflow(store)

        loaded = store.get_workflow(workflow.id)
        loaded.status = WorkflowStatus.FAILED
        loaded.steps.clear()

        fresh = store.get_workflow(workflow.id)
        assert fresh.status == WorkflowStatus.ACTIVE
        assert len(fresh.steps) == 3
