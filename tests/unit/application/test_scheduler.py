"""Tests for StepScheduler."""

from cwf.application.scheduler import StepScheduler, find_cycles
from cwf.domain.models.results import GraphStalled, StepResolved, WorkflowFinished
from cwf.domain.models.step_payloads import DialogPayload, GenerationPayload
from cwf.domain.models.workflow import StepStatus, StepType, Workflow, WorkflowStep


def _step(
    name: str,
    order: int,
    status: StepStatus = StepStatus.PENDING,
    deps: tuple[str, ...] = (),
    step_type: StepType = StepType.DIALOG,
) -> WorkflowStep:
    payload = GenerationPayload() if step_type == StepType.GENERATION else DialogPayload()
    return WorkflowStep(
        id=f"id-{name}",
        workflow_id="wf",
        name=name,
        type=step_type,
        order=order,
        status=status,
        dependencies=list(deps),
        payload=payload,
    )


def _workflow(*steps: WorkflowStep) -> Workflow:
    return Workflow(
        id="wf", thread_id="t", template_id="x", template_name="X", steps=list(steps)
    )


def _info_generate_review(info: StepStatus, generate: StepStatus, review: StepStatus) -> Workflow:
    return _workflow(
        _step("Info", 0, info),
        _step("Generate", 1, generate, ("Info",), StepType.GENERATION),
        _step("Review", 2, review, ("Generate",)),
    )


class TestNextEligibleStep:
    """Tests for next_eligible_step()."""

    def test_info_complete_returns_generate_not_review(self) -> None:
        """With Info done, Generate is next; Review still waits on it."""
        workflow = _info_generate_review(
            StepStatus.COMPLETE, StepStatus.PENDING, StepStatus.PENDING
        )

        step = StepScheduler().next_eligible_step(workflow)

        assert step is not None
        assert step.name == "Generate"

    def test_lowest_order_wins(self) -> None:
        """Among several eligible steps the lowest order is chosen."""
        workflow = _workflow(_step("Late", 5), _step("Early", 1))

        assert StepScheduler().next_eligible_step(workflow).name == "Early"

    def test_nothing_eligible(self) -> None:
        workflow = _workflow(_step("A", 0, deps=("B",)), _step("B", 1, deps=("A",)))

        assert StepScheduler().next_eligible_step(workflow) is None


class TestResolveCurrent:
    """Tests for resolve_current()."""

    def test_in_progress_step_is_current(self) -> None:
        workflow = _info_generate_review(
            StepStatus.COMPLETE, StepStatus.IN_PROGRESS, StepStatus.PENDING
        )

        result = StepScheduler().resolve_current(workflow)

        assert result == StepResolved(workflow.step_by_name("Generate"))
        assert result.needs_activation is False

    def test_pending_first_step_is_promoted(self) -> None:
        """A workflow whose pointer was lost restarts at order 0."""
        workflow = _info_generate_review(
            StepStatus.PENDING, StepStatus.PENDING, StepStatus.PENDING
        )

        result = StepScheduler().resolve_current(workflow)

        assert isinstance(result, StepResolved)
        assert result.step.name == "Info"
        assert result.needs_activation is True

    def test_falls_back_to_next_eligible(self) -> None:
        workflow = _info_generate_review(
            StepStatus.COMPLETE, StepStatus.COMPLETE, StepStatus.PENDING
        )

        result = StepScheduler().resolve_current(workflow)

        assert isinstance(result, StepResolved)
        assert result.step.name == "Review"
        assert result.needs_activation is True

    def test_all_complete_is_finished(self) -> None:
        workflow = _info_generate_review(
            StepStatus.COMPLETE, StepStatus.COMPLETE, StepStatus.COMPLETE
        )

        assert StepScheduler().resolve_current(workflow) == WorkflowFinished("wf")

    def test_cycle_is_reported_as_stalled(self) -> None:
        """Pending steps that can never run are reported with their cycle."""
        workflow = _workflow(
            _step("Start", 0, StepStatus.COMPLETE),
            _step("A", 1, deps=("B",)),
            _step("B", 2, deps=("A",)),
        )

        result = StepScheduler().resolve_current(workflow)

        assert isinstance(result, GraphStalled)
        assert result.pending == ("A", "B")
        assert len(result.cycles) == 1
        assert set(result.cycles[0]) == {"A", "B"}

    def test_failed_dependency_stalls_without_cycle(self) -> None:
        workflow = _workflow(
            _step("A", 0, StepStatus.FAILED),
            _step("B", 1, deps=("A",)),
        )

        result = StepScheduler().resolve_current(workflow)

        assert isinstance(result, GraphStalled)
        assert result.pending == ("A", "B")
        assert result.cycles == ()


class TestFindCycles:
    """Tests for find_cycles()."""

    def test_each_cycle_reported_once(self) -> None:
        steps = [
            _step("A", 0, deps=("B",)),
            _step("B", 1, deps=("C",)),
            _step("C", 2, deps=("A",)),
            _step("D", 3, deps=("D",)),
        ]

        cycles = find_cycles(steps)

        assert sorted(sorted(c) for c in cycles) == [["A", "B", "C"], ["D"]]

    def test_acyclic_graph(self) -> None:
        steps = [_step("A", 0), _step("B", 1, deps=("A", "Outside"))]

        assert find_cycles(steps) == ()
