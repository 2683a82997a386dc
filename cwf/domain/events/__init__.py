"""Workflow event system for observer pattern notifications."""

from cwf.domain.events.event_types import WorkflowEventType
from cwf.domain.events.event import WorkflowEvent
from cwf.domain.events.observer import WorkflowObserver
from cwf.domain.events.emitter import WorkflowEventEmitter
from cwf.domain.events.stderr_observer import StderrEventObserver

__all__ = [
    "WorkflowEventType",
    "WorkflowEvent",
    "WorkflowObserver",
    "WorkflowEventEmitter",
    "StderrEventObserver",
]
