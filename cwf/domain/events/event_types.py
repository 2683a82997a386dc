"""Workflow event types for observer pattern notifications."""

from enum import Enum


class WorkflowEventType(str, Enum):
    """Typed workflow events for chat front-ends and audit logs."""

    # Workflow lifecycle
    WORKFLOW_CREATED = "workflow_created"
    WORKFLOW_COMPLETED = "workflow_completed"
    WORKFLOW_TRANSITIONED = "workflow_transitioned"
    WORKFLOW_STALLED = "workflow_stalled"

    # Steps
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"

    # Artifacts
    ASSET_GENERATED = "asset_generated"
    REVISION_REQUESTED = "revision_requested"
    TITLE_GENERATED = "title_generated"

    # Failures and filtering
    GENERATION_FAILED = "generation_failed"
    CONTEXT_FILTERED = "context_filtered"
