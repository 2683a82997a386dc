"""Dependency-aware step scheduling.

The scheduler only reads workflow state. Activation of the step it picks is
done by the caller through `StepStore.activate_step`.
"""

import logging

from cwf.domain.models.results import (
    GraphStalled,
    SchedulerResult,
    StepResolved,
    WorkflowFinished,
)
from cwf.domain.models.workflow import StepStatus, Workflow, WorkflowStep

logger = logging.getLogger(__name__)


class StepScheduler:
    """Chooses which step of a workflow runs next."""

    def next_eligible_step(self, workflow: Workflow) -> WorkflowStep | None:
        """Lowest-order PENDING step whose dependencies are all COMPLETE."""
        for step in workflow.ordered_steps():
            if step.status == StepStatus.PENDING and workflow.dependencies_complete(step):
                return step
        return None

    def resolve_current(self, workflow: Workflow) -> SchedulerResult:
        """Find the step a turn should run, recovering from a lost pointer.

        Order of preference: the IN_PROGRESS step, the PENDING first step
        (order 0), then the next eligible step.
        """
        in_progress = workflow.in_progress_steps()
        if in_progress:
            if len(in_progress) > 1:
                logger.warning(
                    f"Workflow {workflow.id} has {len(in_progress)} IN_PROGRESS steps; "
                    f"resuming '{in_progress[0].name}'"
                )
            return StepResolved(in_progress[0])

        ordered = workflow.ordered_steps()
        first = ordered[0] if ordered else None
        if (
            first is not None
            and first.order == 0
            and first.status == StepStatus.PENDING
            and workflow.dependencies_complete(first)
        ):
            logger.debug(f"Promoting first step '{first.name}' of workflow {workflow.id}")
            return StepResolved(first, needs_activation=True)

        step = self.next_eligible_step(workflow)
        if step is not None:
            logger.debug(f"Next eligible step '{step.name}' of workflow {workflow.id}")
            return StepResolved(step, needs_activation=True)

        if workflow.all_steps_complete():
            return WorkflowFinished(workflow.id)

        pending = tuple(s.name for s in ordered if s.status != StepStatus.COMPLETE)
        cycles = find_cycles([s for s in ordered if s.status != StepStatus.COMPLETE])
        logger.warning(
            f"Workflow {workflow.id} is stalled: pending={list(pending)} cycles={list(cycles)}"
        )
        return GraphStalled(workflow.id, pending, cycles)


def find_cycles(steps: list[WorkflowStep]) -> tuple[tuple[str, ...], ...]:
    """Return each dependency cycle among `steps` once, as step names.

    Dependencies naming steps outside `steps` are ignored.
    """
    graph = {s.name: list(s.dependencies) for s in steps}
    visiting: list[str] = []
    done: set[str] = set()
    cycles: list[tuple[str, ...]] = []
    seen: set[frozenset[str]] = set()

    def visit(name: str) -> None:
        if name in done:
            return
        if name in visiting:
            cycle = tuple(visiting[visiting.index(name):])
            key = frozenset(cycle)
            if key not in seen:
                seen.add(key)
                cycles.append(cycle)
            return
        visiting.append(name)
        for dep in graph.get(name, []):
            if dep in graph:
                visit(dep)
        visiting.pop()
        done.add(name)

    for name in graph:
        visit(name)
    return tuple(cycles)
