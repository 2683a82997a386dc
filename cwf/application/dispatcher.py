"""Step execution: one step, one (or two) generation round trips.

The dispatcher writes step payloads and statuses but never activates a
step. Choosing and activating the next step is the lifecycle manager's job;
the dispatcher only suggests a direct hop (generation -> review) through
`DispatchOutcome.next_step_id`.
"""

import logging
import re
import time
from collections.abc import Callable, Iterator
from datetime import date
from typing import Any

from cwf.application.dialog_parser import parse_dialog_result, parse_generated_asset
from cwf.application.prompt_builder import PromptBuilder
from cwf.domain.constants import (
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY_SECONDS,
    MAX_TITLE_LENGTH,
    RETRY_MESSAGE,
    SELECTION_CANCELLED,
)
from cwf.domain.errors import ProviderError
from cwf.domain.events import WorkflowEventEmitter, WorkflowEventType
from cwf.domain.models.context import FilteredContext
from cwf.domain.models.step_payloads import (
    DialogMode,
    DialogPayload,
    GenerationPayload,
    ReviewDecision,
    TitlePayload,
)
from cwf.domain.models.turn import DispatchOutcome
from cwf.domain.models.workflow import StepStatus, StepType, Workflow, WorkflowStep
from cwf.domain.persistence import StepStore
from cwf.domain.providers import GenerationProvider

logger = logging.getLogger(__name__)

# Short replies accepted as approval without a model call
APPROVAL_PHRASES = frozenset(
    {"approved", "approve", "looks good", "lgtm", "perfect", "yes", "ok", "great"}
)

_DIALOG_OUTPUT_FORMAT = (
    "Respond with ONLY valid JSON:\n"
    '{"isComplete": <true|false>, "nextQuestion": "<question or null>", '
    '"collectedInformation": {<everything collected so far>}}'
)

_REVIEW_OUTPUT_FORMAT = (
    "Respond with ONLY valid JSON:\n"
    '{"isComplete": <true|false>, "nextQuestion": "<question or null>", '
    '"collectedInformation": {"reviewDecision": "approved|revision_requested|unclear", '
    '"requestedChanges": ["<change>", ...]}}'
)

_UNCLEAR_PREFIX = "Sorry, I didn't quite catch that."
_TITLE_PREFIX_RE = re.compile(r"^(thread\s+)?title\s*:\s*", re.IGNORECASE)
_TITLE_STRIP = "\"'`*#“”‘’ "


class StepDispatcher:
    """Executes the step it is given according to its type and payload."""

    def __init__(
        self,
        provider: GenerationProvider,
        store: StepStore,
        emitter: WorkflowEventEmitter | None = None,
        *,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = date.today,
    ):
        self.provider = provider
        self.store = store
        self.emitter = emitter or WorkflowEventEmitter()
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self._today = today

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def dispatch(
        self, workflow: Workflow, step: WorkflowStep, context: FilteredContext
    ) -> DispatchOutcome:
        """Execute one step.

        Adapter failures are retried; a second failure is reported as a
        retryable outcome with the step left IN_PROGRESS.
        """
        logger.debug(
            f"Dispatching step '{step.name}' ({step.type.value}) of workflow {workflow.id}"
        )
        payload = step.payload
        try:
            if step.type == StepType.TITLE and isinstance(payload, TitlePayload):
                return self._run_title(workflow, step, payload, context)
            if isinstance(payload, GenerationPayload):
                return self._run_generation(workflow, step, payload, context)
            if isinstance(payload, DialogPayload):
                if payload.mode == DialogMode.REVIEW:
                    return self._run_review(workflow, step, payload, context)
                return self._run_dialog(workflow, step, payload, context)
        except ProviderError as e:
            return self._failed(workflow, step, e)

        raise ValueError(f"Step '{step.name}' has no executable payload")

    def stream_generation(
        self, workflow: Workflow, step: WorkflowStep, context: FilteredContext
    ) -> "GenerationStream":
        """Stream a generation step. The artifact is saved once the stream ends."""
        if not isinstance(step.payload, GenerationPayload):
            raise ValueError(f"Step '{step.name}' is not a generation step")
        return GenerationStream(self, workflow, step, context)

    # ------------------------------------------------------------------
    # Dialog
    # ------------------------------------------------------------------

    def _run_dialog(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        payload: DialogPayload,
        context: FilteredContext,
    ) -> DispatchOutcome:
        prompt = (
            PromptBuilder()
            .with_role(f"You are an information gathering assistant for a {workflow.template_name}.")
            .with_goal(payload.goal)
            .with_context(context)
            .with_collected_information(payload.collected_information)
            .with_task(_join(payload.instructions, _options_text(payload), step.prompt))
            .with_output_format(_DIALOG_OUTPUT_FORMAT)
            .build()
        )
        result = parse_dialog_result(self._complete(prompt, context))

        if not result.valid:
            self.store.update_step(step.id, user_input=context.user_input)
            return DispatchOutcome(response=_unclear(step.prompt))

        collected = {**payload.collected_information, **result.collected_information}

        if payload.mode == DialogMode.SELECT:
            return self._finish_selection(workflow, step, payload, collected, result.next_question, context)

        new_payload = payload.model_copy(update={"collected_information": collected})
        if not result.is_complete:
            self.store.update_step(step.id, payload=new_payload, user_input=context.user_input)
            return DispatchOutcome(response=result.next_question or step.prompt)

        self.store.update_step(
            step.id,
            status=StepStatus.COMPLETE,
            payload=new_payload,
            user_input=context.user_input,
        )
        self.emitter.emit_for(
            WorkflowEventType.STEP_COMPLETED, workflow, step.name,
            collected_keys=sorted(collected),
        )
        return DispatchOutcome(
            response=result.next_question or "", step_completed=True
        )

    def _finish_selection(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        payload: DialogPayload,
        collected: dict[str, Any],
        next_question: str | None,
        context: FilteredContext,
    ) -> DispatchOutcome:
        raw = str(collected.get("selectedWorkflow") or "").strip()
        selected = _match_option(raw, payload.options)

        if selected is None:
            if raw:
                logger.info(f"Workflow selection '{raw}' not accepted; re-prompting")
            self.store.update_step(step.id, user_input=context.user_input)
            return DispatchOutcome(response=next_question or step.prompt)

        new_payload = payload.model_copy(
            update={"collected_information": {**collected, "selectedWorkflow": selected}}
        )
        self.store.update_step(
            step.id,
            status=StepStatus.COMPLETE,
            payload=new_payload,
            user_input=context.user_input,
        )
        self.emitter.emit_for(
            WorkflowEventType.STEP_COMPLETED, workflow, step.name, selected_workflow=selected
        )
        return DispatchOutcome(step_completed=True, selected_workflow=selected)

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def _run_review(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        payload: DialogPayload,
        context: FilteredContext,
    ) -> DispatchOutcome:
        generation = self._reviewed_generation_step(workflow, step)
        artifact = generation.payload.generated_asset if generation else None

        if _is_plain_approval(context.user_input):
            decision = ReviewDecision.APPROVED
            changes: list[str] = []
            next_question = None
        else:
            prompt = (
                PromptBuilder()
                .with_role("You are an asset review assistant.")
                .with_goal(payload.goal)
                .with_artifact(artifact)
                .with_context(context)
                .with_task(
                    "Decide whether the user approves the draft as-is or wants "
                    "specific changes."
                )
                .with_output_format(_REVIEW_OUTPUT_FORMAT)
                .build()
            )
            result = parse_dialog_result(self._complete(prompt, context))
            decision = result.review_decision if result.valid else ReviewDecision.UNCLEAR
            if decision is None:
                decision = ReviewDecision.APPROVED if result.is_complete else ReviewDecision.UNCLEAR
            changes = result.requested_changes
            next_question = result.next_question

        if decision == ReviewDecision.APPROVED:
            self.store.update_step(
                step.id,
                status=StepStatus.COMPLETE,
                payload=payload.model_copy(update={"review_decision": decision}),
                user_input=context.user_input,
            )
            self.emitter.emit_for(
                WorkflowEventType.STEP_COMPLETED, workflow, step.name,
                review_decision=decision.value,
            )
            return DispatchOutcome(
                response=f"Great! Your {workflow.template_name} has been approved.",
                step_completed=True,
                review_decision=decision,
            )

        if decision == ReviewDecision.REVISION_REQUESTED and generation is not None:
            return self._revise(workflow, step, payload, generation, changes, context)

        return DispatchOutcome(
            response=next_question
            or (
                f"Are you happy with the {workflow.template_name} as-is, or would you "
                "like me to make some changes? If changes, please tell me what to modify."
            ),
            review_decision=ReviewDecision.UNCLEAR,
        )

    def _revise(
        self,
        workflow: Workflow,
        review: WorkflowStep,
        payload: DialogPayload,
        generation: WorkflowStep,
        changes: list[str],
        context: FilteredContext,
    ) -> DispatchOutcome:
        gen_payload = generation.payload
        if not isinstance(gen_payload, GenerationPayload):
            raise TypeError(f"Step '{generation.name}' does not carry a generation payload")

        feedback = "\n".join(f"- {c}" for c in changes) or context.user_input
        prompt = (
            PromptBuilder()
            .with_role(f"You are revising a {workflow.template_name}.")
            .with_goal(gen_payload.goal)
            .with_collected_information(self._collected_information(workflow))
            .with_artifact(gen_payload.generated_asset)
            .with_task(f"Apply the requested changes:\n{feedback}")
            .with_constraints("Keep everything the user did not ask to change.")
            .with_output_format('{"asset": "<the complete revised content>"}')
            .build()
        )
        asset = parse_generated_asset(self._complete(prompt, context))

        self._store_asset(generation, gen_payload, asset)
        self.store.update_step(
            review.id,
            payload=payload.model_copy(
                update={
                    "review_decision": ReviewDecision.REVISION_REQUESTED,
                    "requested_changes": changes,
                    "revision_count": payload.revision_count + 1,
                }
            ),
            user_input=context.user_input,
        )
        self.emitter.emit_for(
            WorkflowEventType.REVISION_REQUESTED, workflow, review.name,
            revision_count=payload.revision_count + 1,
        )
        self.emitter.emit_for(
            WorkflowEventType.ASSET_GENERATED, workflow, generation.name,
            asset_length=len(asset), revision=True,
        )
        return DispatchOutcome(
            response=_join(asset, review.prompt),
            review_decision=ReviewDecision.REVISION_REQUESTED,
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _run_generation(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        payload: GenerationPayload,
        context: FilteredContext,
    ) -> DispatchOutcome:
        text = self._complete(self.generation_prompt(workflow, payload, context), context)
        return self.finish_generation(workflow, step, text)

    def generation_prompt(
        self, workflow: Workflow, payload: GenerationPayload, context: FilteredContext
    ) -> str:
        return (
            PromptBuilder()
            .with_role(f"You are a professional writer producing a {workflow.template_name}.")
            .with_goal(payload.goal)
            .with_context(context)
            .with_collected_information(self._collected_information(workflow))
            .with_task(payload.instructions)
            .build()
        )

    def finish_generation(
        self, workflow: Workflow, step: WorkflowStep, text: str
    ) -> DispatchOutcome:
        """Persist a completed generation and find the review step to hop to."""
        current = self.store.get_step(step.id) or step
        payload = current.payload
        if not isinstance(payload, GenerationPayload):
            raise TypeError(f"Step '{step.name}' does not carry a generation payload")

        asset = parse_generated_asset(text)
        self._store_asset(current, payload, asset, status=StepStatus.COMPLETE)
        self.emitter.emit_for(
            WorkflowEventType.STEP_COMPLETED, workflow, step.name
        )
        self.emitter.emit_for(
            WorkflowEventType.ASSET_GENERATED, workflow, step.name, asset_length=len(asset)
        )

        review = self._review_ready_after(workflow.id, step)
        if review is None:
            return DispatchOutcome(response=asset, step_completed=True)
        return DispatchOutcome(
            response=_join(asset, review.prompt),
            step_completed=True,
            next_step_id=review.id,
        )

    def _store_asset(
        self,
        step: WorkflowStep,
        payload: GenerationPayload,
        asset: str,
        status: StepStatus | None = None,
    ) -> None:
        history = list(payload.asset_history)
        if payload.generated_asset:
            history.append(payload.generated_asset)
        self.store.update_step(
            step.id,
            status=status,
            payload=payload.model_copy(
                update={"generated_asset": asset, "asset_history": history}
            ),
        )

    # ------------------------------------------------------------------
    # Title
    # ------------------------------------------------------------------

    def _run_title(
        self,
        workflow: Workflow,
        step: WorkflowStep,
        payload: TitlePayload,
        context: FilteredContext,
    ) -> DispatchOutcome:
        subject = self._collected_information(workflow, include_select=True).get(
            "selectedWorkflow", workflow.template_name
        )
        prompt = (
            PromptBuilder()
            .with_goal(payload.goal or "Generate a short conversation title")
            .with_context(context)
            .with_task(f"Write a title for a conversation about creating a {subject}.")
            .with_constraints(f"One line, at most {MAX_TITLE_LENGTH} characters, no quotes.")
            .build()
        )
        try:
            title = clean_title(self._complete(prompt, context))
        except ProviderError as e:
            logger.warning(f"Title generation failed twice, using format: {e}")
            title = ""
        if not title:
            title = self._format_title(payload.title_format, subject)

        self.store.update_step(
            step.id,
            status=StepStatus.COMPLETE,
            payload=payload.model_copy(update={"title": title}),
        )
        self.emitter.emit_for(WorkflowEventType.TITLE_GENERATED, workflow, step.name, title=title)
        return DispatchOutcome(step_completed=True)

    def _format_title(self, title_format: str, subject: str) -> str:
        today = self._today().isoformat()
        values = _FormatValues(
            workflow=subject, selectedWorkflow=subject, date=today, currentDate=today
        )
        return title_format.format_map(values)[:MAX_TITLE_LENGTH].strip()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _complete(self, prompt: str, context: FilteredContext) -> str:
        """Call the provider, retrying once after a fixed delay.

        Raises:
            ProviderError: If every attempt fails
        """
        prior_turns = [dict(m) for m in context.history]
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return self.provider.complete(prompt, prior_turns)
            except ProviderError as e:
                if attempt >= self.retry_attempts:
                    raise
                logger.warning(
                    f"Generation attempt {attempt} failed, retrying in "
                    f"{self.retry_delay_seconds}s: {e}"
                )
                self._sleep(self.retry_delay_seconds)
        raise ProviderError("No generation attempts were made")

    def _failed(
        self, workflow: Workflow, step: WorkflowStep, error: ProviderError
    ) -> DispatchOutcome:
        logger.warning(f"Step '{step.name}' of workflow {workflow.id} failed: {error}")
        self.emitter.emit_for(
            WorkflowEventType.GENERATION_FAILED, workflow, step.name, error=str(error)
        )
        return DispatchOutcome(response=RETRY_MESSAGE, retryable=True)

    def _collected_information(
        self, workflow: Workflow, include_select: bool = False
    ) -> dict[str, Any]:
        """Merge what the workflow's completed dialog steps collected, in order."""
        workflow = self.store.get_workflow(workflow.id) or workflow
        merged: dict[str, Any] = {}
        for s in workflow.ordered_steps():
            p = s.payload
            if not isinstance(p, DialogPayload) or p.mode == DialogMode.REVIEW:
                continue
            if p.mode == DialogMode.SELECT and not include_select:
                continue
            merged.update(p.collected_information)
        return merged

    def _reviewed_generation_step(
        self, workflow: Workflow, review: WorkflowStep
    ) -> WorkflowStep | None:
        fresh = self.store.get_workflow(workflow.id) or workflow
        candidates = [
            fresh.step_by_name(name) for name in review.dependencies
        ] or fresh.ordered_steps()
        for s in reversed([c for c in candidates if c is not None]):
            if isinstance(s.payload, GenerationPayload):
                return s
        return None

    def _review_ready_after(self, workflow_id: str, generation: WorkflowStep) -> WorkflowStep | None:
        fresh = self.store.get_workflow(workflow_id)
        if fresh is None:
            return None
        for s in fresh.ordered_steps():
            if (
                s.is_review
                and s.status == StepStatus.PENDING
                and generation.name in s.dependencies
                and fresh.dependencies_complete(s)
            ):
                return s
        return None


class GenerationStream:
    """Iterable over generation chunks; `outcome` is set once iteration ends.

    Breaking out of the iteration early leaves `outcome` as None and the
    step IN_PROGRESS with no artifact written.
    """

    def __init__(
        self,
        dispatcher: StepDispatcher,
        workflow: Workflow,
        step: WorkflowStep,
        context: FilteredContext,
    ):
        self._dispatcher = dispatcher
        self._workflow = workflow
        self._step = step
        self._context = context
        self.outcome: DispatchOutcome | None = None

    def __iter__(self) -> Iterator[str]:
        d = self._dispatcher
        payload = self._step.payload
        if not isinstance(payload, GenerationPayload):
            raise TypeError(f"Step '{self._step.name}' does not carry a generation payload")
        prompt = d.generation_prompt(self._workflow, payload, self._context)
        prior_turns = [dict(m) for m in self._context.history]

        chunks: list[str] = []
        for attempt in range(1, d.retry_attempts + 1):
            try:
                for chunk in d.provider.complete_stream(prompt, prior_turns):
                    chunks.append(chunk)
                    yield chunk
                break
            except ProviderError as e:
                # Only a stream that produced nothing can be retried transparently
                if chunks or attempt >= d.retry_attempts:
                    self.outcome = d._failed(self._workflow, self._step, e)
                    return
                logger.warning(f"Stream attempt {attempt} failed, retrying: {e}")
                d._sleep(d.retry_delay_seconds)

        self.outcome = d.finish_generation(self._workflow, self._step, "".join(chunks))


class _FormatValues(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def clean_title(text: str) -> str:
    """First non-empty line, without quotes, markup or a 'Title:' prefix."""
    for line in text.splitlines():
        line = line.strip().strip(_TITLE_STRIP)
        line = _TITLE_PREFIX_RE.sub("", line).strip(_TITLE_STRIP)
        if line:
            return line[:MAX_TITLE_LENGTH].rstrip()
    return ""


def _is_plain_approval(text: str) -> bool:
    normalized = re.sub(r"[^a-z ]", "", text.lower()).strip()
    return normalized in APPROVAL_PHRASES


def _match_option(raw: str, options: list[str]) -> str | None:
    if not raw or raw.lower() == SELECTION_CANCELLED:
        return None
    for option in options:
        if option.lower() == raw.lower():
            return option
    return None


def _options_text(payload: DialogPayload) -> str:
    if not payload.options:
        return ""
    return "Options: " + ", ".join(payload.options)


def _unclear(prompt: str) -> str:
    return _join(_UNCLEAR_PREFIX, prompt)


def _join(*parts: str | None) -> str:
    return "\n\n".join(p for p in parts if p)
