"""Engine configuration models.

Config structure:
    provider: scripted
    provider_config:
      script_file: responses.yml
    retry:
      attempts: 2
      delay_seconds: 0.5
    retrieval:
      global_limit: 5
      organization_limit: 5
      history_limit: 10
    storage_root: .cwf/data
    knowledge_file: knowledge.yml
    idle_template: Base Workflow
    templates_file: templates.yml
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RetryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    attempts: int = Field(default=2, ge=1)
    delay_seconds: float = Field(default=0.5, ge=0)


class RetrievalConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    global_limit: int = Field(default=5, ge=0)
    organization_limit: int = Field(default=5, ge=0)
    history_limit: int = Field(default=10, ge=0)


class EngineSettings(BaseModel):
    """Validated, merged configuration."""

    model_config = ConfigDict(extra="forbid")

    provider: str = "scripted"
    provider_config: dict[str, Any] = Field(default_factory=dict)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    storage_root: Path = Path(".cwf/data")
    knowledge_file: Path | None = None
    idle_template: str = "Base Workflow"
    templates_file: Path | None = None
