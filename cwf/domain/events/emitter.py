"""Workflow event emitter for dispatching events to observers."""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from cwf.domain.events.event import WorkflowEvent
from cwf.domain.events.event_types import WorkflowEventType
from cwf.domain.events.observer import WorkflowObserver

if TYPE_CHECKING:
    from cwf.domain.models.workflow import Workflow

logger = logging.getLogger(__name__)


class WorkflowEventEmitter:
    """Central event dispatcher for workflow events."""

    def __init__(self) -> None:
        self._observers: dict[WorkflowEventType, list[WorkflowObserver]] = defaultdict(
            list
        )
        self._global_observers: list[WorkflowObserver] = []

    def subscribe(
        self,
        observer: WorkflowObserver,
        event_types: list[WorkflowEventType] | None = None,
    ) -> None:
        """Subscribe to specific event types, or all events if None."""
        if event_types is None:
            self._global_observers.append(observer)
        else:
            for event_type in event_types:
                self._observers[event_type].append(observer)

    def unsubscribe(self, observer: WorkflowObserver) -> None:
        """Remove observer from all subscriptions."""
        if observer in self._global_observers:
            self._global_observers.remove(observer)
        for observers in self._observers.values():
            if observer in observers:
                observers.remove(observer)

    def emit(self, event: WorkflowEvent) -> None:
        """Dispatch event to all relevant observers."""
        for observer in self._global_observers:
            self._safe_notify(observer, event)
        for observer in self._observers.get(event.event_type, []):
            self._safe_notify(observer, event)

    def emit_for(
        self,
        event_type: WorkflowEventType,
        workflow: "Workflow",
        step_name: str | None = None,
        **metadata: Any,
    ) -> None:
        """Build an event from a workflow's identity fields and emit it."""
        self.emit(
            WorkflowEvent(
                event_type=event_type,
                workflow_id=workflow.id,
                thread_id=workflow.thread_id,
                timestamp=datetime.now(timezone.utc),
                workflow_type=workflow.template_name,
                step_name=step_name,
                metadata=metadata,
            )
        )

    def _safe_notify(self, observer: WorkflowObserver, event: WorkflowEvent) -> None:
        """Notify observer, catching and logging any exceptions."""
        try:
            observer.on_event(event)
        except Exception as e:
            logger.warning(f"Observer {observer} failed on {event.event_type}: {e}")
