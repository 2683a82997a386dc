"""Workflow event payload model."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from cwf.domain.events.event_types import WorkflowEventType


class WorkflowEvent(BaseModel):
    """Immutable event payload for workflow notifications."""

    model_config = {"frozen": True}

    event_type: WorkflowEventType
    workflow_id: str
    thread_id: str
    timestamp: datetime
    workflow_type: str | None = None
    step_name: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
