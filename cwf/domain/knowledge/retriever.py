"""Knowledge Retrieval adapter.

The engine treats everything returned here as untrusted: the context
pipeline classifies, drops and redacts before anything reaches a prompt.
"""

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cwf.domain.errors import ProviderError
from cwf.domain.models.context import KnowledgeScope, KnowledgeSnippet, UserProfile

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")
# Too common to say anything about relevance
_STOPWORDS = frozenset(
    {"a", "an", "and", "the", "of", "to", "for", "in", "on", "with", "is", "it", "i", "we", "our"}
)


class KnowledgeRetriever(ABC):
    @abstractmethod
    def retrieve(
        self,
        user_id: str,
        org_id: str,
        workflow_type: str,
        step_name: str,
        query_text: str,
    ) -> list[KnowledgeSnippet]:
        """Return candidate snippets, highest relevance first.

        Raises:
            ProviderError: If the backing store cannot be reached
        """
        ...

    @abstractmethod
    def get_user_profile(self, user_id: str, org_id: str) -> UserProfile:
        """Return the user's profile defaults (empty profile if unknown).

        Raises:
            ProviderError: If the backing store cannot be reached
        """
        ...


class KnowledgeEntry(BaseModel):
    """One stored document. `org_id` is required for organization scope."""

    model_config = ConfigDict(extra="forbid")

    content: str
    source: str = "knowledge_base"
    scope: KnowledgeScope = KnowledgeScope.GLOBAL
    org_id: str | None = None
    # Empty means the entry applies to every workflow type
    workflow_types: list[str] = Field(default_factory=list)


class ProfileEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str
    org_id: str
    organization: str | None = None
    role: str | None = None
    tone: str | None = None
    industry: str | None = None

    def to_profile(self) -> UserProfile:
        return UserProfile(
            organization=self.organization,
            role=self.role,
            tone=self.tone,
            industry=self.industry,
        )


def _tokens(text: str) -> set[str]:
    return {t for t in _TOKEN_RE.findall(text.lower()) if t not in _STOPWORDS}


class InMemoryKnowledgeBase(KnowledgeRetriever):
    """Keyword-overlap knowledge base for local runs and tests.

    Relevance is the share of query tokens found in the entry. Organization
    entries are only visible to callers from the same organization.
    """

    def __init__(
        self,
        entries: list[KnowledgeEntry] | None = None,
        profiles: list[ProfileEntry] | None = None,
    ):
        self._entries = list(entries or [])
        self._profiles = {(p.user_id, p.org_id): p for p in profiles or []}

    @classmethod
    def from_yaml(cls, path: Path) -> "InMemoryKnowledgeBase":
        """Load entries and profiles from a YAML file.

        Expected shape::

            snippets:
              - content: "..."
                scope: organization
                org_id: acme
            profiles:
              - user_id: u1
                org_id: acme
                organization: Acme Corp

        Raises:
            ProviderError: If the file is missing or malformed
        """
        if not path.is_file():
            raise ProviderError(f"Knowledge file not found: {path}")
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ProviderError(f"Invalid YAML in knowledge file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ProviderError(f"Knowledge file {path} must contain a mapping")

        try:
            entries = [KnowledgeEntry.model_validate(e) for e in data.get("snippets") or []]
            profiles = [ProfileEntry.model_validate(p) for p in data.get("profiles") or []]
        except ValidationError as e:
            raise ProviderError(f"Invalid knowledge file {path}: {e}") from e

        logger.debug(f"Loaded {len(entries)} snippets and {len(profiles)} profiles from {path}")
        return cls(entries, profiles)

    def add(self, entry: KnowledgeEntry) -> None:
        self._entries.append(entry)

    def set_profile(self, profile: ProfileEntry) -> None:
        self._profiles[(profile.user_id, profile.org_id)] = profile

    def retrieve(
        self,
        user_id: str,
        org_id: str,
        workflow_type: str,
        step_name: str,
        query_text: str,
    ) -> list[KnowledgeSnippet]:
        query = _tokens(f"{query_text} {workflow_type}")
        if not query:
            return []

        results: list[KnowledgeSnippet] = []
        for entry in self._entries:
            if not self._visible(entry, org_id, workflow_type):
                continue
            overlap = query & _tokens(entry.content)
            if not overlap:
                continue
            results.append(
                KnowledgeSnippet(
                    content=entry.content,
                    source=entry.source,
                    relevance_score=round(len(overlap) / len(query), 4),
                    scope=entry.scope,
                )
            )

        results.sort(key=lambda s: s.relevance_score, reverse=True)
        return results

    def get_user_profile(self, user_id: str, org_id: str) -> UserProfile:
        entry = self._profiles.get((user_id, org_id))
        return entry.to_profile() if entry else UserProfile()

    @staticmethod
    def _visible(entry: KnowledgeEntry, org_id: str, workflow_type: str) -> bool:
        if entry.scope == KnowledgeScope.ORGANIZATION and entry.org_id != org_id:
            return False
        if entry.workflow_types:
            wanted = workflow_type.lower()
            return any(t.lower() == wanted for t in entry.workflow_types)
        return True
