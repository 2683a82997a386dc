"""Stderr event observer for CLI integration."""

import click

from cwf.domain.events.event import WorkflowEvent


class StderrEventObserver:
    """Emits events as structured lines to stderr."""

    def on_event(self, event: WorkflowEvent) -> None:
        """Emit event as structured line to stderr."""
        parts = [f"[EVENT] {event.event_type.value}"]
        parts.append(f"workflow={event.workflow_id[:8]}")
        if event.workflow_type:
            parts.append(f"type={event.workflow_type!r}")
        if event.step_name:
            parts.append(f"step={event.step_name!r}")
        for key, value in sorted(event.metadata.items()):
            parts.append(f"{key}={value}")
        click.echo(" ".join(parts), err=True)
