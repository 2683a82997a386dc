"""Workflow lifecycle: one inbound turn from lookup to persistence.

A turn resolves the active workflow's current step, assembles filtered
context, dispatches the step, checks for a cross-workflow transition and
then advances: auto-executing steps run in the same turn, a finished
workflow hands the thread back to a fresh idle workflow.

`handle_turn` and `stream_turn` share one generator (`_turn`) that yields
response chunks and returns the `TurnResult`.
"""

import logging
import uuid
from collections.abc import Generator, Iterator
from typing import Any

from cwf.application.carryover import extract_carryover, seed_information
from cwf.application.context_pipeline import ContextPipeline
from cwf.application.dispatcher import StepDispatcher
from cwf.application.idempotency import IdempotencyLedger
from cwf.application.scheduler import StepScheduler
from cwf.application.transitions import DetectionSource, TransitionDetector
from cwf.domain.constants import IDLE_TEMPLATE_NAME, RETRY_MESSAGE
from cwf.domain.errors import ProviderError, TemplateError
from cwf.domain.events import WorkflowEventEmitter, WorkflowEventType
from cwf.domain.models.results import (
    CreateResult,
    GraphStalled,
    NotFound,
    WorkflowCreated,
    WorkflowFinished,
)
from cwf.domain.models.context import FilteredContext
from cwf.domain.models.step_payloads import DialogMode, DialogPayload, GenerationPayload
from cwf.domain.models.turn import DispatchOutcome, TurnResult, TurnStatus
from cwf.domain.models.workflow import (
    StepStatus,
    Workflow,
    WorkflowStatus,
    WorkflowStep,
)
from cwf.domain.persistence import ConversationStore, StepStore
from cwf.domain.security import WorkflowSecurityPolicy, map_strings, redact
from cwf.domain.templates import TemplateRegistry

logger = logging.getLogger(__name__)

TurnGenerator = Generator[str, None, TurnResult]


class TurnStream:
    """Iterable of response chunks for one turn.

    `result` is available once iteration finishes. Abandoning the iteration
    leaves any in-flight step IN_PROGRESS with nothing persisted for it, and
    the turn id can be sent again to resume that step.
    """

    def __init__(self, turn: TurnGenerator):
        self._turn = turn
        self.result: TurnResult | None = None

    def __iter__(self) -> Iterator[str]:
        self.result = yield from self._turn


class WorkflowLifecycleManager:
    """Owns workflow creation, completion, transitions and the turn loop."""

    def __init__(
        self,
        store: StepStore,
        conversations: ConversationStore,
        templates: TemplateRegistry,
        pipeline: ContextPipeline,
        dispatcher: StepDispatcher,
        *,
        detector: TransitionDetector | None = None,
        scheduler: StepScheduler | None = None,
        policy: WorkflowSecurityPolicy | None = None,
        emitter: WorkflowEventEmitter | None = None,
        ledger: IdempotencyLedger | None = None,
        idle_template: str = IDLE_TEMPLATE_NAME,
    ):
        self.store = store
        self.conversations = conversations
        self.templates = templates
        self.pipeline = pipeline
        self.dispatcher = dispatcher
        self.detector = detector or TransitionDetector()
        self.scheduler = scheduler or StepScheduler()
        self.policy = policy or WorkflowSecurityPolicy(templates.get)
        self.emitter = emitter or dispatcher.emitter
        self.ledger = ledger or IdempotencyLedger()
        self.idle_template = idle_template

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_active_workflow(self, thread_id: str) -> Workflow | None:
        active = [w for w in self.store.list_workflows(thread_id) if w.is_active]
        if len(active) > 1:
            logger.warning(
                f"Thread {thread_id} has {len(active)} ACTIVE workflows; using the newest"
            )
        return active[-1] if active else None

    def workflow_status(self, workflow_id: str) -> Workflow | NotFound:
        workflow = self.store.get_workflow(workflow_id)
        if workflow is None:
            return NotFound("workflow", workflow_id)
        return workflow

    # ------------------------------------------------------------------
    # Workflow lifecycle
    # ------------------------------------------------------------------

    def start_conversation(self, thread_id: str) -> WorkflowCreated:
        """Ensure the thread has an active workflow, creating the idle one.

        A newly created idle workflow posts its first prompt to the thread.

        Raises:
            TemplateError: If the idle template is not registered
        """
        active = self.get_active_workflow(thread_id)
        if active is not None:
            return WorkflowCreated(active)
        return self._create_idle(thread_id, silent=False)

    def create_workflow(
        self,
        thread_id: str,
        template_name: str,
        *,
        silent: bool = False,
        carryover: dict[str, Any] | None = None,
    ) -> CreateResult:
        """Instantiate a template on a thread and activate its first step.

        Any workflow still ACTIVE on the thread is completed first, so a
        thread never has two. `carryover` is seeded as the collected
        information of the first information-collecting dialog step.
        Unless `silent`, the first step's prompt is posted to the thread.
        """
        template = self.templates.get(template_name)
        if template is None:
            logger.warning(f"Template not found: {template_name}")
            return NotFound("template", template_name)

        previous = self.get_active_workflow(thread_id)
        if previous is not None:
            logger.info(
                f"Completing active workflow {previous.id} before creating '{template.name}'"
            )
            self.complete_workflow(previous, spawn_idle=False)

        workflow = self.store.create_workflow(thread_id, template.id, template.name)
        seeded = False
        for order, definition in enumerate(template.steps):
            payload = definition.payload.model_copy(deep=True)
            if (
                carryover
                and not seeded
                and isinstance(payload, DialogPayload)
                and payload.mode == DialogMode.COLLECT
            ):
                payload = payload.model_copy(
                    update={
                        "collected_information": dict(carryover),
                        "context_carried_over": True,
                    }
                )
                seeded = True
            self.store.create_step(
                workflow.id,
                name=definition.name,
                type=definition.type,
                order=order,
                payload=payload,
                dependencies=list(definition.dependencies),
                prompt=definition.prompt,
            )

        workflow = self._reload(workflow.id)
        logger.info(
            f"Created workflow {workflow.id} ('{template.name}') on thread {thread_id}"
            f"{' silently' if silent else ''}"
        )
        self.emitter.emit_for(
            WorkflowEventType.WORKFLOW_CREATED, workflow, silent=silent, carryover=seeded
        )

        first = self.scheduler.next_eligible_step(workflow)
        if first is not None:
            self._activate(workflow, first)
            workflow = self._reload(workflow.id)
            if not silent and first.prompt:
                self._post(thread_id, "assistant", first.prompt, workflow.id)

        return WorkflowCreated(workflow)

    def complete_workflow(
        self, workflow: Workflow, *, spawn_idle: bool = True
    ) -> Workflow | None:
        """Mark a workflow COMPLETED. Returns the new idle workflow, if spawned."""
        self.store.update_workflow_status(workflow.id, WorkflowStatus.COMPLETED)
        logger.info(f"Completed workflow {workflow.id} ('{workflow.template_name}')")
        self.emitter.emit_for(WorkflowEventType.WORKFLOW_COMPLETED, workflow)

        if not spawn_idle:
            return None
        return self._create_idle(workflow.thread_id, silent=True).workflow

    def transition_workflow(
        self, workflow: Workflow, target: str, carryover: dict[str, Any]
    ) -> CreateResult:
        """Replace `workflow` with a silently created `target` workflow.

        Carryover is filtered by the source workflow's transfer rules and
        redacted before it is seeded into the target.
        """
        template = self.templates.get(target)
        if template is None:
            logger.warning(f"Transition target not found: {target}")
            return NotFound("template", target)

        filtered = map_strings(
            self.policy.filter_carryover(carryover, workflow.template_name), redact
        )
        self.complete_workflow(workflow, spawn_idle=False)

        seed = (
            seed_information(filtered, template.name, workflow.template_name)
            if filtered
            else None
        )
        result = self.create_workflow(
            workflow.thread_id, template.name, silent=True, carryover=seed
        )
        if isinstance(result, WorkflowCreated):
            self.emitter.emit_for(
                WorkflowEventType.WORKFLOW_TRANSITIONED,
                workflow,
                target_workflow_id=result.workflow.id,
                target_type=template.name,
                carried_keys=sorted(filtered),
            )
        return result

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def handle_turn(
        self,
        thread_id: str,
        user_input: str,
        *,
        user_id: str,
        org_id: str,
        turn_id: str | None = None,
    ) -> TurnResult:
        stream = TurnStream(
            self._turn(thread_id, user_input, user_id, org_id, turn_id, streaming=False)
        )
        for _ in stream:
            pass
        if stream.result is None:
            raise RuntimeError(f"Turn on thread {thread_id} ended without a result")
        return stream.result

    def stream_turn(
        self,
        thread_id: str,
        user_input: str,
        *,
        user_id: str,
        org_id: str,
        turn_id: str | None = None,
    ) -> TurnStream:
        """Like `handle_turn`, but generation steps stream their chunks."""
        return TurnStream(
            self._turn(thread_id, user_input, user_id, org_id, turn_id, streaming=True)
        )

    def _turn(
        self,
        thread_id: str,
        user_input: str,
        user_id: str,
        org_id: str,
        turn_id: str | None,
        streaming: bool,
    ) -> TurnGenerator:
        turn_id = turn_id or uuid.uuid4().hex

        workflow = self.get_active_workflow(thread_id)
        if workflow is None:
            try:
                workflow = self._create_idle(thread_id, silent=True).workflow
            except TemplateError as e:
                return TurnResult(
                    status=TurnStatus.NOT_FOUND, thread_id=thread_id, error=str(e)
                )

        resolved = self.scheduler.resolve_current(workflow)
        if isinstance(resolved, WorkflowFinished):
            workflow = self.complete_workflow(workflow) or workflow
            resolved = self.scheduler.resolve_current(workflow)
        if isinstance(resolved, GraphStalled):
            return self._stalled(workflow, resolved)
        if isinstance(resolved, WorkflowFinished):
            raise RuntimeError(f"Workflow {workflow.id} has no step to run")

        step = resolved.step
        key = (workflow.id, step.id, turn_id)
        if not self.ledger.claim_turn(thread_id, turn_id) or not self.ledger.claim(key):
            logger.info(f"Duplicate turn {turn_id} for step '{step.name}'; skipping")
            return TurnResult(
                status=TurnStatus.DUPLICATE,
                thread_id=thread_id,
                workflow_id=workflow.id,
                workflow_type=workflow.template_name,
                step_name=step.name,
                active_workflow_id=workflow.id,
            )
        if resolved.needs_activation:
            step = self._activate(workflow, step)

        self._post(thread_id, "user", user_input, workflow.id)

        result = TurnResult(
            thread_id=thread_id,
            workflow_id=workflow.id,
            workflow_type=workflow.template_name,
            step_name=step.name,
            active_workflow_id=workflow.id,
        )
        parts: list[str] = []
        selected_target: str | None = None
        first = True
        in_flight = False

        try:
            while True:
                in_flight = True
                try:
                    context = self.pipeline.assemble(
                        user_id, org_id, workflow.template_name, step.name, user_input, thread_id
                    )
                except ProviderError as e:
                    logger.warning(f"Context retrieval failed for step '{step.name}': {e}")
                    self.emitter.emit_for(
                        WorkflowEventType.GENERATION_FAILED, workflow, step.name, error=str(e)
                    )
                    outcome, streamed = DispatchOutcome(response=RETRY_MESSAGE, retryable=True), False
                else:
                    if context.filter_failed or context.dropped_snippets:
                        self.emitter.emit_for(
                            WorkflowEventType.CONTEXT_FILTERED,
                            workflow,
                            step.name,
                            dropped=context.dropped_snippets,
                            filter_failed=context.filter_failed,
                        )
                    outcome, streamed = yield from self._execute(
                        workflow, step, context, streaming, parts
                    )
                in_flight = False

                if outcome.retryable:
                    self.ledger.release(key)
                    self.ledger.release_turn(thread_id, turn_id)
                    parts.append(RETRY_MESSAGE)
                    yield _chunk(parts, RETRY_MESSAGE)
                    result.status = TurnStatus.RETRYABLE_ERROR
                    result.error = "generation adapter unavailable"
                    break

                if first and outcome.selected_workflow is None:
                    created = self._detect_transition(workflow, outcome.response, user_input)
                    if created is not None:
                        new, source = created
                        if source == DetectionSource.USER_INPUT:
                            # The old step's reply no longer applies
                            text = self.current_prompt(new)
                        else:
                            text = "" if streamed else outcome.response
                        if text:
                            parts.append(text)
                            yield _chunk(parts, text)
                        result.workflow_completed = True
                        result.transitioned_to = new.template_name
                        result.active_workflow_id = new.id
                        break

                # Text from steps that did not stream was held back for detection
                if outcome.response and not streamed:
                    parts.append(outcome.response)
                    yield _chunk(parts, outcome.response)
                first = False

                if outcome.selected_workflow:
                    selected_target = outcome.selected_workflow
                if not outcome.step_completed:
                    break

                fresh = self._reload(workflow.id)
                next_step = self._next_step(fresh, outcome)
                if next_step is None:
                    if not fresh.all_steps_complete():
                        stalled = self.scheduler.resolve_current(fresh)
                        if isinstance(stalled, GraphStalled):
                            self._emit_stalled(fresh, stalled)
                            result.status = TurnStatus.STALLED
                            result.error = _stalled_message(stalled)
                        break

                    result.workflow_completed = True
                    if selected_target:
                        new = self._start_selected(fresh, selected_target).workflow
                        prompt = self.current_prompt(new)
                        if prompt:
                            parts.append(prompt)
                            yield _chunk(parts, prompt)
                        result.transitioned_to = new.template_name
                        result.active_workflow_id = new.id
                    else:
                        idle = self.complete_workflow(fresh)
                        result.active_workflow_id = idle.id if idle else None
                    break

                step = self._activate(fresh, next_step)
                if outcome.next_step_id == step.id:
                    # Review prompt already follows the generated asset
                    break
                if not step.is_auto_execute:
                    if step.prompt:
                        parts.append(step.prompt)
                        yield _chunk(parts, step.prompt)
                    break

                key = (workflow.id, step.id, turn_id)
                self.ledger.claim(key)
        except GeneratorExit:
            current = self.store.get_step(step.id)
            if in_flight and current is not None and current.status == StepStatus.IN_PROGRESS:
                # Nothing was persisted for the step, so the turn can run again
                logger.info(f"Turn {turn_id} abandoned during step '{step.name}'")
                self.ledger.release(key)
                self.ledger.release_turn(thread_id, turn_id)
            raise

        result.response = "\n\n".join(parts)
        if parts:
            self._post(thread_id, "assistant", result.response, workflow.id)
        return result

    def _detect_transition(
        self, workflow: Workflow, response: str, user_input: str
    ) -> tuple[Workflow, DetectionSource] | None:
        detection = self.detector.detect(response, user_input, workflow.template_name)
        if detection is None:
            return None
        if not self.policy.allows_transition(workflow.template_name, detection.target):
            return None

        source = self._reload(workflow.id)
        created = self.transition_workflow(source, detection.target, extract_carryover(source))
        if isinstance(created, NotFound):
            return None
        return created.workflow, detection.source

    def _execute(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        context: FilteredContext,
        streaming: bool,
        parts: list[str],
    ) -> Generator[str, None, tuple[DispatchOutcome, bool]]:
        """Run one step. Returns the outcome and whether its text was streamed."""
        if not (streaming and isinstance(step.payload, GenerationPayload)):
            return self.dispatcher.dispatch(workflow, step, context), False

        stream = self.dispatcher.stream_generation(workflow, step, context)
        streamed: list[str] = []
        for chunk in stream:
            if not streamed and parts:
                yield "\n\n"
            streamed.append(chunk)
            yield chunk
        outcome = stream.outcome
        if outcome is None:
            raise RuntimeError(
                f"Generation stream for step '{step.name}' ended without an outcome"
            )
        if outcome.retryable:
            return outcome, bool(streamed)

        # Chunks are the raw completion; the result keeps the parsed asset
        saved = (self.store.get_step(step.id) or step).payload
        asset = saved.generated_asset if isinstance(saved, GenerationPayload) else None
        parts.append(asset or "".join(streamed))
        remainder = outcome.response.removeprefix(asset or "").strip()
        if remainder:
            parts.append(remainder)
            yield "\n\n" + remainder
        return outcome, True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _create_idle(self, thread_id: str, silent: bool) -> WorkflowCreated:
        result = self.create_workflow(thread_id, self.idle_template, silent=silent)
        if isinstance(result, NotFound):
            raise TemplateError(f"Idle template '{self.idle_template}' is not registered")
        return result

    def _start_selected(self, idle: Workflow, target: str) -> WorkflowCreated:
        """Replace a finished idle workflow with the workflow the user picked."""
        self.complete_workflow(idle, spawn_idle=False)
        created = self.create_workflow(idle.thread_id, target, silent=True)
        if isinstance(created, NotFound):
            logger.warning(f"Selected workflow '{target}' is not registered; back to idle")
            return self._create_idle(idle.thread_id, silent=True)
        self.emitter.emit_for(
            WorkflowEventType.WORKFLOW_TRANSITIONED,
            idle,
            target_workflow_id=created.workflow.id,
            target_type=created.workflow.template_name,
            carried_keys=[],
        )
        return created

    def _next_step(self, workflow: Workflow, outcome: DispatchOutcome) -> WorkflowStep | None:
        if outcome.next_step_id:
            hop = workflow.step_by_id(outcome.next_step_id)
            if (
                hop is not None
                and hop.status == StepStatus.PENDING
                and workflow.dependencies_complete(hop)
            ):
                return hop
        return self.scheduler.next_eligible_step(workflow)

    def _activate(self, workflow: Workflow, step: WorkflowStep) -> WorkflowStep:
        activated = self.store.activate_step(workflow.id, step.id)
        logger.debug(f"Activated step '{step.name}' of workflow {workflow.id}")
        self.emitter.emit_for(WorkflowEventType.STEP_STARTED, workflow, step.name)
        return activated

    def current_prompt(self, workflow: Workflow) -> str:
        current = workflow.step_by_id(workflow.current_step_id) if workflow.current_step_id else None
        return current.prompt if current else ""

    def _reload(self, workflow_id: str) -> Workflow:
        workflow = self.store.get_workflow(workflow_id)
        if workflow is None:
            raise KeyError(f"Workflow '{workflow_id}' not found")
        return workflow

    def _post(self, thread_id: str, role: str, content: str, workflow_id: str) -> None:
        self.conversations.append_message(
            thread_id, {"role": role, "content": content, "workflow_id": workflow_id}
        )

    def _stalled(self, workflow: Workflow, stalled: GraphStalled) -> TurnResult:
        self._emit_stalled(workflow, stalled)
        return TurnResult(
            status=TurnStatus.STALLED,
            thread_id=workflow.thread_id,
            workflow_id=workflow.id,
            workflow_type=workflow.template_name,
            active_workflow_id=workflow.id,
            error=_stalled_message(stalled),
        )

    def _emit_stalled(self, workflow: Workflow, stalled: GraphStalled) -> None:
        self.emitter.emit_for(
            WorkflowEventType.WORKFLOW_STALLED,
            workflow,
            pending=list(stalled.pending),
            cycles=[list(c) for c in stalled.cycles],
        )


def _chunk(parts: list[str], text: str) -> str:
    """Chunk for the newest part, separated from the previous one."""
    return text if len(parts) == 1 else "\n\n" + text


def _stalled_message(stalled: GraphStalled) -> str:
    message = f"No step can run; pending: {', '.join(stalled.pending)}"
    if stalled.cycles:
        cycles = "; ".join(" -> ".join(c) for c in stalled.cycles)
        message += f" (dependency cycles: {cycles})"
    return message
