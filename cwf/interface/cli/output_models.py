from typing import Literal

from pydantic import BaseModel, Field


class BaseOutput(BaseModel):
    schema_version: int = 1
    command: Literal["start", "chat", "status", "history", "templates", "providers"]
    exit_code: int
    error: str | None = None


class StartOutput(BaseOutput):
    command: Literal["start"] = "start"
    thread_id: str
    workflow_id: str | None = None
    workflow_type: str | None = None
    prompt: str | None = None


class ChatOutput(BaseOutput):
    command: Literal["chat"] = "chat"
    thread_id: str
    # TurnStatus value; omitted when the turn never ran
    status: str | None = None
    response: str | None = None
    workflow_id: str | None = None
    workflow_type: str | None = None
    step_name: str | None = None
    workflow_completed: bool = False
    transitioned_to: str | None = None
    active_workflow_id: str | None = None


class StepSummary(BaseModel):
    """One step of a workflow for status output."""
    name: str
    type: str
    status: str
    dependencies: list[str] = Field(default_factory=list)


class StatusOutput(BaseOutput):
    command: Literal["status"] = "status"
    thread_id: str
    workflow_id: str | None = None
    workflow_type: str | None = None
    status: str | None = None
    current_step: str | None = None
    steps: list[StepSummary] = Field(default_factory=list)


class MessageSummary(BaseModel):
    role: str
    content: str
    created_at: str | None = None


class HistoryOutput(BaseOutput):
    command: Literal["history"] = "history"
    thread_id: str
    messages: list[MessageSummary] = Field(default_factory=list)


class TemplateSummary(BaseModel):
    """Summary of a workflow template for list output."""
    id: str
    name: str
    security_level: str
    switching_enabled: bool
    steps: list[str] = Field(default_factory=list)


class TemplatesOutput(BaseOutput):
    command: Literal["templates"] = "templates"
    templates: list[TemplateSummary] = Field(default_factory=list)


class ProviderSummary(BaseModel):
    """Summary of a provider for list output."""
    name: str
    description: str
    requires_config: bool = False
    supports_streaming: bool = False


class ProviderDetail(BaseModel):
    """Detailed provider info for single provider view."""
    name: str
    description: str
    requires_config: bool = False
    supports_streaming: bool = False
    config_keys: list[str] = Field(default_factory=list)


class ProvidersOutput(BaseOutput):
    command: Literal["providers"] = "providers"
    providers: list[ProviderSummary] | None = None
    provider: ProviderDetail | None = None
