"""Fake knowledge retriever with fixed snippets and injectable failures."""

from cwf.domain.errors import ProviderError
from cwf.domain.knowledge import KnowledgeRetriever
from cwf.domain.models.context import KnowledgeScope, KnowledgeSnippet, UserProfile


class FakeKnowledgeRetriever(KnowledgeRetriever):
    """Returns the same snippets for every query.

    `failures` counts upcoming retrieve calls that raise ProviderError.
    """

    def __init__(
        self,
        snippets: list[KnowledgeSnippet] | None = None,
        profile: UserProfile | None = None,
        *,
        failures: int = 0,
    ):
        self.snippets = list(snippets or [])
        self.profile = profile or UserProfile()
        self.failures = failures
        self.retrieve_calls = 0

    def retrieve(
        self,
        user_id: str,
        org_id: str,
        workflow_type: str,
        step_name: str,
        query_text: str,
    ) -> list[KnowledgeSnippet]:
        self.retrieve_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ProviderError("fake knowledge store unavailable")
        return list(self.snippets)

    def get_user_profile(self, user_id: str, org_id: str) -> UserProfile:
        return self.profile


def snippet(
    content: str,
    score: float = 0.5,
    scope: KnowledgeScope = KnowledgeScope.GLOBAL,
    source: str = "kb",
) -> KnowledgeSnippet:
    return KnowledgeSnippet(content=content, source=source, relevance_score=score, scope=scope)
