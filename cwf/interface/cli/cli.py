import logging
from pathlib import Path

import click
from pydantic import BaseModel

from cwf.application.config_loader import load_config
from cwf.application.config_models import EngineSettings
from cwf.domain.models.turn import TurnResult, TurnStatus
from cwf.interface.cli.output_models import (
    ChatOutput,
    HistoryOutput,
    MessageSummary,
    ProviderDetail,
    ProviderSummary,
    ProvidersOutput,
    StartOutput,
    StatusOutput,
    StepSummary,
    TemplateSummary,
    TemplatesOutput,
)

logger = logging.getLogger(__name__)

# Exit codes for a turn: 2 = try the same turn again, 3 = workflow cannot progress
_TURN_EXIT_CODES: dict[TurnStatus, int] = {
    TurnStatus.OK: 0,
    TurnStatus.DUPLICATE: 0,
    TurnStatus.NOT_FOUND: 1,
    TurnStatus.RETRYABLE_ERROR: 2,
    TurnStatus.STALLED: 3,
}


def _json_emit(model: BaseModel) -> None:
    # Single-line JSON, omit None fields (e.g., ChatOutput.status on error).
    click.echo(model.model_dump_json(exclude_none=True), nl=True)


def _get_json_mode(ctx: click.Context) -> bool:
    obj = ctx.obj or {}
    return bool(obj.get("json", False))


def _load_settings(ctx: click.Context) -> EngineSettings:
    obj = ctx.obj or {}
    return load_config(
        project_root=Path.cwd(),
        user_home=Path.home(),
        overrides={
            "storage_root": obj.get("storage_root"),
            "provider": obj.get("provider"),
        },
    )


def _build_lifecycle(ctx: click.Context, events: bool):
    from cwf.application.bootstrap import build_lifecycle
    from cwf.domain.events import StderrEventObserver, WorkflowEventEmitter

    emitter = WorkflowEventEmitter()
    if events:
        emitter.subscribe(StderrEventObserver())
    return build_lifecycle(_load_settings(ctx), emitter=emitter)


@click.group(help="Content Workflow Engine CLI.")
@click.option("--json", "json_output", is_flag=True, help="Emit machine-readable JSON on stdout.")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
@click.option(
    "--storage-root",
    "storage_root",
    required=False,
    type=click.Path(file_okay=False),
    help="Data directory (overrides config storage_root).",
)
@click.option("--provider", required=False, type=str, help="Provider key (overrides config).")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    verbose: bool,
    storage_root: str | None,
    provider: str | None,
) -> None:
    ctx.ensure_object(dict)
    ctx.obj["json"] = bool(json_output)
    ctx.obj["storage_root"] = storage_root
    ctx.obj["provider"] = provider
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command("start")
@click.argument("thread_id", type=str)
@click.option("--events", is_flag=True, help="Emit workflow events to stderr.")
@click.pass_context
def start_cmd(ctx: click.Context, thread_id: str, events: bool) -> None:
    """Open a conversation: ensure the thread has an active workflow."""
    try:
        lifecycle = _build_lifecycle(ctx, events)
        created = lifecycle.start_conversation(thread_id)
        workflow = created.workflow
        prompt = lifecycle.current_prompt(workflow) or None

        if _get_json_mode(ctx):
            _json_emit(
                StartOutput(
                    exit_code=0,
                    thread_id=thread_id,
                    workflow_id=workflow.id,
                    workflow_type=workflow.template_name,
                    prompt=prompt,
                )
            )
            raise click.exceptions.Exit(0)

        click.echo(f"workflow={workflow.id} type={workflow.template_name!r}", err=True)
        if prompt:
            click.echo(prompt)

    except click.exceptions.Exit:
        raise
    except Exception as e:
        if _get_json_mode(ctx):
            _json_emit(StartOutput(exit_code=1, thread_id=thread_id, error=str(e)))
            raise click.exceptions.Exit(1)
        raise click.ClickException(str(e)) from e


@cli.command("chat")
@click.argument("thread_id", type=str)
@click.argument("message", type=str)
@click.option("--user", "user_id", default="local-user", show_default=True, type=str)
@click.option("--org", "org_id", default="local-org", show_default=True, type=str)
@click.option(
    "--turn-id",
    "turn_id",
    required=False,
    type=str,
    help="Idempotency key; a repeated turn id is not processed again.",
)
@click.option("--stream", is_flag=True, help="Print generated text as it arrives.")
@click.option("--events", is_flag=True, help="Emit workflow events to stderr.")
@click.pass_context
def chat_cmd(
    ctx: click.Context,
    thread_id: str,
    message: str,
    user_id: str,
    org_id: str,
    turn_id: str | None,
    stream: bool,
    events: bool,
) -> None:
    """Send one user MESSAGE to THREAD and print the reply."""
    try:
        lifecycle = _build_lifecycle(ctx, events)
        json_mode = _get_json_mode(ctx)

        if stream and not json_mode:
            turn = lifecycle.stream_turn(
                thread_id, message, user_id=user_id, org_id=org_id, turn_id=turn_id
            )
            for chunk in turn:
                click.echo(chunk, nl=False)
            click.echo()
            if turn.result is None:
                raise RuntimeError("Turn ended without a result")
            result = turn.result
        else:
            result = lifecycle.handle_turn(
                thread_id, message, user_id=user_id, org_id=org_id, turn_id=turn_id
            )

        exit_code = _TURN_EXIT_CODES[result.status]

        if json_mode:
            _json_emit(_chat_output(result, exit_code))
            raise click.exceptions.Exit(exit_code)

        if not stream and result.response:
            click.echo(result.response)
        if result.transitioned_to:
            click.echo(f"workflow -> {result.transitioned_to}", err=True)
        if result.status == TurnStatus.DUPLICATE:
            click.echo(f"turn {turn_id} already processed", err=True)
        if result.error:
            click.echo(f"error: {result.error}", err=True)

        if exit_code:
            raise click.exceptions.Exit(exit_code)

    except click.exceptions.Exit:
        raise
    except Exception as e:
        if _get_json_mode(ctx):
            _json_emit(ChatOutput(exit_code=1, thread_id=thread_id, error=str(e)))
            raise click.exceptions.Exit(1)
        raise click.ClickException(str(e)) from e


def _chat_output(result: TurnResult, exit_code: int) -> ChatOutput:
    return ChatOutput(
        exit_code=exit_code,
        thread_id=result.thread_id,
        status=result.status.value,
        response=result.response,
        workflow_id=result.workflow_id,
        workflow_type=result.workflow_type,
        step_name=result.step_name,
        workflow_completed=result.workflow_completed,
        transitioned_to=result.transitioned_to,
        active_workflow_id=result.active_workflow_id,
        error=result.error,
    )


@cli.command("status")
@click.argument("thread_id", type=str)
@click.option(
    "--workflow-id",
    "workflow_id",
    required=False,
    type=str,
    help="Show this workflow instead of the thread's active one.",
)
@click.pass_context
def status_cmd(ctx: click.Context, thread_id: str, workflow_id: str | None) -> None:
    """Show the active workflow of THREAD and its steps."""
    try:
        from cwf.domain.persistence import FileStepStore

        settings = _load_settings(ctx)
        store = FileStepStore(storage_root=settings.storage_root)

        if workflow_id:
            workflow = store.get_workflow(workflow_id)
            if workflow is None:
                raise click.ClickException(f"Workflow not found: {workflow_id}")
        else:
            active = [w for w in store.list_workflows(thread_id) if w.is_active]
            if not active:
                raise click.ClickException(f"No active workflow on thread {thread_id}")
            workflow = active[-1]

        current = workflow.step_by_id(workflow.current_step_id) if workflow.current_step_id else None
        steps = [
            StepSummary(
                name=s.name,
                type=s.type.value,
                status=s.status.value,
                dependencies=list(s.dependencies),
            )
            for s in workflow.ordered_steps()
        ]

        if _get_json_mode(ctx):
            _json_emit(
                StatusOutput(
                    exit_code=0,
                    thread_id=thread_id,
                    workflow_id=workflow.id,
                    workflow_type=workflow.template_name,
                    status=workflow.status.value,
                    current_step=current.name if current else None,
                    steps=steps,
                )
            )
            raise click.exceptions.Exit(0)

        click.echo(f"workflow={workflow.id}")
        click.echo(f"type={workflow.template_name}")
        click.echo(f"status={workflow.status.value}")
        click.echo(f"current_step={current.name if current else ''}")
        for s in steps:
            click.echo(f"  {s.status:<12}{s.type:<14}{s.name}")

    except click.exceptions.Exit:
        raise
    except Exception as e:
        message = e.format_message() if isinstance(e, click.ClickException) else str(e)
        if _get_json_mode(ctx):
            _json_emit(StatusOutput(exit_code=1, thread_id=thread_id, error=message))
            raise click.exceptions.Exit(1)
        if isinstance(e, click.ClickException):
            raise
        raise click.ClickException(message) from e


@cli.command("history")
@click.argument("thread_id", type=str)
@click.option("--limit", default=20, show_default=True, type=click.IntRange(min=1))
@click.pass_context
def history_cmd(ctx: click.Context, thread_id: str, limit: int) -> None:
    """Show the most recent messages on THREAD."""
    try:
        from cwf.domain.persistence import FileConversationStore

        settings = _load_settings(ctx)
        conversations = FileConversationStore(storage_root=settings.storage_root)
        messages = [
            MessageSummary(
                role=str(m.get("role", "")),
                content=str(m.get("content", "")),
                created_at=m.get("created_at"),
            )
            for m in conversations.list_recent_messages(thread_id, limit)
        ]

        if _get_json_mode(ctx):
            _json_emit(HistoryOutput(exit_code=0, thread_id=thread_id, messages=messages))
            raise click.exceptions.Exit(0)

        if not messages:
            click.echo("No messages.")
        for m in messages:
            click.echo(f"[{m.role}] {m.content}")

    except click.exceptions.Exit:
        raise
    except Exception as e:
        if _get_json_mode(ctx):
            _json_emit(HistoryOutput(exit_code=1, thread_id=thread_id, error=str(e)))
            raise click.exceptions.Exit(1)
        raise click.ClickException(str(e)) from e


@cli.command("templates")
@click.pass_context
def templates_cmd(ctx: click.Context) -> None:
    """List the workflow templates, including any from templates_file."""
    try:
        from cwf.domain.templates import TemplateRegistry

        settings = _load_settings(ctx)
        registry = TemplateRegistry()
        if settings.templates_file is not None:
            registry.load_yaml(settings.templates_file)

        templates = [
            TemplateSummary(
                id=t.id,
                name=t.name,
                security_level=t.security_level.value,
                switching_enabled=t.switching_enabled,
                steps=t.step_names(),
            )
            for t in registry.list_templates()
        ]

        if _get_json_mode(ctx):
            _json_emit(TemplatesOutput(exit_code=0, templates=templates))
            raise click.exceptions.Exit(0)

        click.echo(f"{'TEMPLATE':<24}{'SECURITY':<12}{'STEPS'}")
        for t in templates:
            click.echo(f"{t.name:<24}{t.security_level:<12}{len(t.steps)}")

    except click.exceptions.Exit:
        raise
    except Exception as e:
        if _get_json_mode(ctx):
            _json_emit(TemplatesOutput(exit_code=1, error=str(e)))
            raise click.exceptions.Exit(1)
        raise click.ClickException(str(e)) from e


@cli.command("providers")
@click.argument("provider_name", required=False)
@click.pass_context
def providers_cmd(ctx: click.Context, provider_name: str | None) -> None:
    """List generation providers, or show one provider in detail."""
    try:
        from cwf.domain.providers import ProviderFactory

        if provider_name:
            metadata = ProviderFactory.get_metadata(provider_name)
            if metadata is None:
                if _get_json_mode(ctx):
                    _json_emit(
                        ProvidersOutput(
                            exit_code=1,
                            error=f"Provider not found: {provider_name}",
                        )
                    )
                    raise click.exceptions.Exit(1)
                raise click.ClickException(f"Provider not found: {provider_name}")

            detail = ProviderDetail(
                name=metadata["name"],
                description=metadata["description"],
                requires_config=metadata.get("requires_config", False),
                supports_streaming=metadata.get("supports_streaming", False),
                config_keys=metadata.get("config_keys", []),
            )

            if _get_json_mode(ctx):
                _json_emit(ProvidersOutput(exit_code=0, provider=detail))
                raise click.exceptions.Exit(0)

            click.echo(f"Provider: {detail.name}")
            click.echo(f"Description: {detail.description}")
            click.echo(f"Streaming: {'yes' if detail.supports_streaming else 'no'}")
            if detail.config_keys:
                click.echo(f"Config keys: {', '.join(detail.config_keys)}")
            return

        providers_list = [
            ProviderSummary(
                name=m["name"],
                description=m["description"],
                requires_config=m.get("requires_config", False),
                supports_streaming=m.get("supports_streaming", False),
            )
            for m in ProviderFactory.get_all_metadata()
        ]

        if _get_json_mode(ctx):
            _json_emit(ProvidersOutput(exit_code=0, providers=providers_list))
            raise click.exceptions.Exit(0)

        if not providers_list:
            click.echo("No providers registered.")
        else:
            click.echo(f"{'PROVIDER':<12}{'DESCRIPTION':<56}{'CONFIG'}")
            for p in providers_list:
                config_str = "required" if p.requires_config else "none"
                click.echo(f"{p.name:<12}{p.description:<56}{config_str}")

    except click.exceptions.Exit:
        raise
    except click.ClickException:
        raise
    except Exception as e:
        if _get_json_mode(ctx):
            _json_emit(ProvidersOutput(exit_code=1, error=str(e)))
            raise click.exceptions.Exit(1)
        raise click.ClickException(str(e)) from e
