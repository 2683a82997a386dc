"""Tests for workflow, payload and context models."""

import pytest
from pydantic import ValidationError

from cwf.domain.models import (
    DialogPayload,
    FilteredContext,
    GenerationPayload,
    SecurityLevel,
    StepStatus,
    StepType,
    TitlePayload,
    Workflow,
    WorkflowStep,
)


def _step(name: str, order: int, status: StepStatus = StepStatus.PENDING, deps=()) -> WorkflowStep:
    return WorkflowStep(
        id=f"s-{name}",
        workflow_id="wf",
        name=name,
        type=StepType.DIALOG,
        order=order,
        status=status,
        dependencies=list(deps),
        payload=DialogPayload(),
    )


class TestWorkflowStep:
    """Tests for step validation."""

    def test_payload_kind_discriminates(self) -> None:
        """Payloads are parsed into the variant named by `kind`."""
        step = WorkflowStep.model_validate(
            {
                "id": "s1",
                "workflow_id": "wf",
                "name": "Title",
                "type": "title",
                "order": 0,
                "payload": {"kind": "title", "title_format": "{workflow}"},
            }
        )
        assert isinstance(step.payload, TitlePayload)

    @pytest.mark.parametrize(
        "step_type, payload",
        [
            (StepType.DIALOG, GenerationPayload()),
            (StepType.GENERATION, DialogPayload()),
            (StepType.TITLE, DialogPayload()),
        ],
    )
    def test_payload_must_fit_type(self, step_type, payload) -> None:
        with pytest.raises(ValidationError):
            WorkflowStep(
                id="s1", workflow_id="wf", name="S", type=step_type, order=0, payload=payload
            )

    def test_auto_execute_accepts_dialog_or_generation(self) -> None:
        """AUTO_EXECUTE steps run either behaviour without user input."""
        for payload in (DialogPayload(), GenerationPayload()):
            step = WorkflowStep(
                id="s1", workflow_id="wf", name="S", type=StepType.AUTO_EXECUTE,
                order=0, payload=payload,
            )
            assert step.is_auto_execute

    def test_blank_name_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _step("   ", 0)

    def test_unknown_payload_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DialogPayload.model_validate({"kind": "dialog", "metadata": {}})


class TestWorkflow:
    """Tests for workflow graph helpers."""

    def test_dependencies_complete(self) -> None:
        workflow = Workflow(
            id="wf", thread_id="t", template_id="x", template_name="X",
            steps=[
                _step("A", 0, StepStatus.COMPLETE),
                _step("B", 1, deps=["A"]),
                _step("C", 2, deps=["B"]),
                _step("D", 3, deps=["Ghost"]),
            ],
        )

        assert workflow.dependencies_complete(workflow.step_by_name("B"))
        assert not workflow.dependencies_complete(workflow.step_by_name("C"))
        assert not workflow.dependencies_complete(workflow.step_by_name("D"))

    def test_ordered_steps_and_completion(self) -> None:
        workflow = Workflow(
            id="wf", thread_id="t", template_id="x", template_name="X",
            steps=[_step("B", 1, StepStatus.COMPLETE), _step("A", 0, StepStatus.COMPLETE)],
        )

        assert [s.name for s in workflow.ordered_steps()] == ["A", "B"]
        assert workflow.all_steps_complete()
        assert workflow.is_active


class TestSecurityModels:
    """Tests for security levels and the fail-closed context."""

    def test_level_max_is_stricter(self) -> None:
        assert SecurityLevel.INTERNAL.max(SecurityLevel.RESTRICTED) == SecurityLevel.RESTRICTED
        assert SecurityLevel.CONFIDENTIAL.max(SecurityLevel.PUBLIC) == SecurityLevel.CONFIDENTIAL

    def test_empty_context_carries_nothing(self) -> None:
        context = FilteredContext.empty("Press Release", "Information Collection")

        assert context.filter_failed is True
        assert context.snippets == ()
        assert context.profile == {}
        assert context.user_input == ""
        assert context.input_classification.level == SecurityLevel.RESTRICTED
