"""Context models: what the pipeline retrieves and what it hands on.

`KnowledgeSnippet` and `UserProfile` come from the retrieval adapter and are
untrusted. `FilteredContext` is the only shape allowed into a prompt; it is
built fresh for each step execution and never persisted.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from cwf.domain.models.security import SecurityClassification, SecurityLevel


class KnowledgeScope(str, Enum):
    GLOBAL = "global"
    ORGANIZATION = "organization"


class KnowledgeSnippet(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    source: str = "knowledge_base"
    relevance_score: float = 0.0
    scope: KnowledgeScope = KnowledgeScope.GLOBAL


class UserProfile(BaseModel):
    """Profile defaults used to pre-fill generation context."""

    model_config = ConfigDict(frozen=True)

    organization: str | None = None
    role: str | None = None
    tone: str | None = None
    industry: str | None = None

    def as_dict(self) -> dict[str, str]:
        return {k: v for k, v in self.model_dump().items() if v}


class FilteredSnippet(BaseModel):
    """A snippet that survived filtering; `content` is already redacted."""

    model_config = ConfigDict(frozen=True)

    content: str
    source: str
    relevance_score: float
    scope: KnowledgeScope
    classification: SecurityClassification


class FilteredContext(BaseModel):
    """The injectable bundle of user, organization and knowledge information."""

    model_config = ConfigDict(frozen=True)

    workflow_type: str
    step_name: str
    user_input: str = ""
    input_classification: SecurityClassification = Field(
        default_factory=lambda: SecurityClassification(level=SecurityLevel.INTERNAL)
    )
    profile: dict[str, str] = Field(default_factory=dict)
    snippets: tuple[FilteredSnippet, ...] = ()
    history: tuple[dict[str, Any], ...] = ()

    # Diagnostics
    dropped_snippets: int = 0
    filter_failed: bool = False

    @classmethod
    def empty(cls, workflow_type: str, step_name: str) -> "FilteredContext":
        """Fail-closed context: valid, but carries nothing from the request."""
        return cls(
            workflow_type=workflow_type,
            step_name=step_name,
            input_classification=SecurityClassification(
                level=SecurityLevel.RESTRICTED, tags=("filter_failed",)
            ),
            filter_failed=True,
        )
