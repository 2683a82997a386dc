from datetime import date
from pathlib import Path

import pytest

from cwf.application.context_pipeline import ContextPipeline
from cwf.application.dispatcher import StepDispatcher
from cwf.application.lifecycle import WorkflowLifecycleManager
from cwf.domain.events import WorkflowEvent, WorkflowEventEmitter, WorkflowEventType
from cwf.domain.persistence import InMemoryConversationStore, InMemoryStepStore
from cwf.domain.providers.provider_factory import ProviderFactory
from cwf.domain.templates import TemplateRegistry
from tests.fakes.fake_generation_provider import FakeGenerationProvider
from tests.fakes.fake_knowledge_retriever import FakeKnowledgeRetriever

FIXED_TODAY = date(2024, 5, 17)


class RecordingObserver:
    """Collects every emitted event."""

    def __init__(self) -> None:
        self.events: list[WorkflowEvent] = []

    def on_event(self, event: WorkflowEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: WorkflowEventType) -> list[WorkflowEvent]:
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    """Isolated data root for tests.

    Tests should not write into the real repo's .cwf/data directory.
    """
    return tmp_path / "data"


@pytest.fixture(autouse=True)
def _restore_provider_registry():
    """Snapshot the provider registry and restore it after each test."""
    original_registry = dict(ProviderFactory._registry)
    yield
    ProviderFactory._registry.clear()
    ProviderFactory._registry.update(original_registry)


@pytest.fixture
def store() -> InMemoryStepStore:
    return InMemoryStepStore()


@pytest.fixture
def conversations() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def templates() -> TemplateRegistry:
    return TemplateRegistry()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def emitter(observer: RecordingObserver) -> WorkflowEventEmitter:
    emitter = WorkflowEventEmitter()
    emitter.subscribe(observer)
    return emitter


@pytest.fixture
def provider() -> FakeGenerationProvider:
    return FakeGenerationProvider()


@pytest.fixture
def retriever() -> FakeKnowledgeRetriever:
    return FakeKnowledgeRetriever()


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by retry loops; nothing actually sleeps."""
    return []


@pytest.fixture
def pipeline(retriever, conversations, sleeps) -> ContextPipeline:
    return ContextPipeline(retriever, conversations, sleep=sleeps.append)


@pytest.fixture
def dispatcher(provider, store, emitter, sleeps) -> StepDispatcher:
    return StepDispatcher(
        provider, store, emitter, sleep=sleeps.append, today=lambda: FIXED_TODAY
    )


@pytest.fixture
def lifecycle(store, conversations, templates, pipeline, dispatcher) -> WorkflowLifecycleManager:
    return WorkflowLifecycleManager(store, conversations, templates, pipeline, dispatcher)
