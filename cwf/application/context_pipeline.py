"""Context assembly: retrieve, classify, drop, redact, merge.

`FilteredContext` is the only object generation prompts may draw from, so
everything that passes through here is redacted, including the user's own
input, profile values and conversation history.
"""

import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from cwf.domain.constants import (
    DEFAULT_GLOBAL_SNIPPET_LIMIT,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_ORGANIZATION_SNIPPET_LIMIT,
    DEFAULT_RETRY_DELAY_SECONDS,
)
from cwf.domain.errors import ProviderError
from cwf.domain.knowledge import KnowledgeRetriever
from cwf.domain.models.context import (
    FilteredContext,
    FilteredSnippet,
    KnowledgeScope,
    KnowledgeSnippet,
    UserProfile,
)
from cwf.domain.persistence import ConversationStore
from cwf.domain.security import classify, redact

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContextPipeline:
    def __init__(
        self,
        retriever: KnowledgeRetriever,
        conversations: ConversationStore | None = None,
        *,
        global_limit: int = DEFAULT_GLOBAL_SNIPPET_LIMIT,
        organization_limit: int = DEFAULT_ORGANIZATION_SNIPPET_LIMIT,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.retriever = retriever
        self.conversations = conversations
        self.global_limit = global_limit
        self.organization_limit = organization_limit
        self.history_limit = history_limit
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep

    def assemble(
        self,
        user_id: str,
        org_id: str,
        workflow_type: str,
        step_name: str,
        user_input: str,
        thread_id: str | None = None,
    ) -> FilteredContext:
        """Build the filtered context for one step execution.

        Raises:
            ProviderError: If retrieval fails twice
        """
        snippets = self._with_retry(
            lambda: self.retriever.retrieve(user_id, org_id, workflow_type, step_name, user_input),
            "retrieve",
        )
        profile = self._with_retry(
            lambda: self.retriever.get_user_profile(user_id, org_id),
            "get_user_profile",
        )

        try:
            history = self._recent_history(thread_id)
            return self._filter(
                workflow_type, step_name, user_input, snippets, profile, history
            )
        except ProviderError:
            raise
        except Exception as e:
            # Fail closed: a broken filter must never let raw context through
            logger.warning(
                f"Context filtering failed for '{workflow_type}/{step_name}' "
                f"({type(e).__name__}); using empty context"
            )
            return FilteredContext.empty(workflow_type, step_name)

    def _with_retry(self, call: Callable[[], T], operation: str) -> T:
        try:
            return call()
        except ProviderError as e:
            logger.warning(f"Knowledge {operation} failed, retrying once: {e}")
            self._sleep(self.retry_delay_seconds)
            return call()

    def _recent_history(self, thread_id: str | None) -> list[dict[str, Any]]:
        if self.conversations is None or thread_id is None or self.history_limit <= 0:
            return []
        return self.conversations.list_recent_messages(thread_id, self.history_limit)

    def _filter(
        self,
        workflow_type: str,
        step_name: str,
        user_input: str,
        snippets: list[KnowledgeSnippet],
        profile: UserProfile,
        history: list[dict[str, Any]],
    ) -> FilteredContext:
        candidates = self._bounded(snippets)

        kept: list[FilteredSnippet] = []
        dropped = 0
        for snippet in candidates:
            classification = classify(snippet.content)
            if classification.must_drop:
                dropped += 1
                logger.debug(
                    f"Dropped snippet from '{snippet.source}' "
                    f"(level={classification.level.value}, tags={list(classification.tags)})"
                )
                continue
            kept.append(
                FilteredSnippet(
                    content=redact(snippet.content),
                    source=snippet.source,
                    relevance_score=snippet.relevance_score,
                    scope=snippet.scope,
                    classification=classification,
                )
            )
        if dropped:
            logger.warning(f"Dropped {dropped} restricted snippet(s) for '{workflow_type}'")

        return FilteredContext(
            workflow_type=workflow_type,
            step_name=step_name,
            user_input=redact(user_input),
            input_classification=classify(user_input),
            profile={k: redact(v) for k, v in profile.as_dict().items()},
            snippets=tuple(kept),
            history=tuple(
                {"role": str(m.get("role", "")), "content": redact(str(m.get("content", "")))}
                for m in history
            ),
            dropped_snippets=dropped,
        )

    def _bounded(self, snippets: list[KnowledgeSnippet]) -> list[KnowledgeSnippet]:
        """Top-N per scope, highest relevance first."""
        ranked = sorted(snippets, key=lambda s: s.relevance_score, reverse=True)
        global_ = [s for s in ranked if s.scope == KnowledgeScope.GLOBAL][: self.global_limit]
        org = [s for s in ranked if s.scope == KnowledgeScope.ORGANIZATION][
            : self.organization_limit
        ]
        return sorted(global_ + org, key=lambda s: s.relevance_score, reverse=True)
