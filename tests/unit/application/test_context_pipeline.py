"""Tests for ContextPipeline: retrieval, classification, drop and redaction."""

import pytest

from cwf.application.context_pipeline import ContextPipeline
from cwf.domain.errors import ProviderError
from cwf.domain.models.context import KnowledgeScope, UserProfile
from cwf.domain.persistence import InMemoryConversationStore
from tests.fakes.fake_knowledge_retriever import FakeKnowledgeRetriever, snippet


def _assemble(pipeline: ContextPipeline, user_input: str = "tell me about the launch", thread_id=None):
    return pipeline.assemble("u1", "acme", "Press Release", "Information Collection", user_input, thread_id)


class TestFiltering:
    """Redaction and dropping of retrieved snippets."""

    def test_email_is_redacted_and_restricted_snippet_dropped(self) -> None:
        """One restricted snippet disappears; the email is replaced in place."""
        retriever = FakeKnowledgeRetriever(
            [
                snippet("Press contact: jane@example.com", 0.9),
                snippet("Employee SSN 123-45-6789", 0.8),
                snippet("Acme was founded in 2010", 0.7),
            ]
        )
        pipeline = ContextPipeline(retriever)

        context = _assemble(pipeline)

        assert len(context.snippets) == 2
        assert context.dropped_snippets == 1
        contents = [s.content for s in context.snippets]
        assert "Press contact: [EMAIL_REDACTED]" in contents
        assert not any("jane@example.com" in c for c in contents)
        assert not any("123-45-6789" in c for c in contents)

    def test_filtering_is_idempotent(self) -> None:
        """Running the pipeline twice on the same inputs gives the same context."""
        retriever = FakeKnowledgeRetriever(
            [
                snippet("Contact jane@example.com", 0.9),
                snippet("From the customer database export", 0.5),
            ]
        )
        pipeline = ContextPipeline(retriever)

        first = _assemble(pipeline)
        second = _assemble(pipeline)

        assert first == second
        assert [s.content for s in second.snippets] == ["Contact [EMAIL_REDACTED]"]

    def test_user_input_profile_and_history_are_redacted(self) -> None:
        """Everything that reaches a prompt goes through redaction."""
        conversations = InMemoryConversationStore()
        conversations.append_message("t1", {"role": "user", "content": "mail me at bob@acme.com"})
        retriever = FakeKnowledgeRetriever(
            profile=UserProfile(organization="Acme (press@acme.com)", tone="warm")
        )
        pipeline = ContextPipeline(retriever, conversations)

        context = _assemble(pipeline, "call 555-123-4567", thread_id="t1")

        assert context.user_input == "call [PHONE_REDACTED]"
        assert "contact_info" in context.input_classification.tags
        assert context.profile == {"organization": "Acme ([EMAIL_REDACTED])", "tone": "warm"}
        assert context.history == ({"role": "user", "content": "mail me at [EMAIL_REDACTED]"},)

    def test_history_disabled_without_thread(self) -> None:
        conversations = InMemoryConversationStore()
        conversations.append_message("t1", {"role": "user", "content": "hi"})
        pipeline = ContextPipeline(FakeKnowledgeRetriever(), conversations)

        assert _assemble(pipeline).history == ()


class TestBounds:
    """Top-N selection per knowledge scope."""

    def test_limits_apply_per_scope(self) -> None:
        retriever = FakeKnowledgeRetriever(
            [snippet(f"global fact {i}", i / 10) for i in range(5)]
            + [
                snippet(f"org fact {i}", i / 10, KnowledgeScope.ORGANIZATION)
                for i in range(5)
            ]
        )
        pipeline = ContextPipeline(retriever, global_limit=2, organization_limit=1)

        context = _assemble(pipeline)

        assert [s.content for s in context.snippets] == [
            "global fact 4",
            "org fact 4",
            "global fact 3",
        ]


class TestFailures:
    """Retrieval retries and fail-closed filtering."""

    def test_retrieval_retried_once(self) -> None:
        sleeps: list[float] = []
        retriever = FakeKnowledgeRetriever([snippet("Acme fact")], failures=1)
        pipeline = ContextPipeline(retriever, retry_delay_seconds=0.25, sleep=sleeps.append)

        context = _assemble(pipeline)

        assert len(context.snippets) == 1
        assert retriever.retrieve_calls == 2
        assert sleeps == [0.25]

    def test_retrieval_failing_twice_raises(self) -> None:
        retriever = FakeKnowledgeRetriever(failures=2)
        pipeline = ContextPipeline(retriever, sleep=lambda _: None)

        with pytest.raises(ProviderError):
            _assemble(pipeline)

    def test_filter_error_fails_closed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A broken classifier yields an empty context, never raw snippets."""
        import cwf.application.context_pipeline as module

        def broken(text: str):
            raise RuntimeError("classifier crashed")

        monkeypatch.setattr(module, "classify", broken)
        retriever = FakeKnowledgeRetriever([snippet("Contact jane@example.com")])
        pipeline = ContextPipeline(retriever)

        context = _assemble(pipeline)

        assert context.filter_failed is True
        assert context.snippets == ()
        assert context.user_input == ""
