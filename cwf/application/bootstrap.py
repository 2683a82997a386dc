"""Wire the engine's collaborators from validated settings."""

import logging

from cwf.application.config_models import EngineSettings
from cwf.application.context_pipeline import ContextPipeline
from cwf.application.dispatcher import StepDispatcher
from cwf.application.idempotency import IdempotencyLedger
from cwf.application.lifecycle import WorkflowLifecycleManager
from cwf.domain.constants import TURN_LEDGER_FILENAME
from cwf.domain.events import WorkflowEventEmitter
from cwf.domain.knowledge import InMemoryKnowledgeBase, KnowledgeRetriever
from cwf.domain.persistence import FileConversationStore, FileStepStore
from cwf.domain.providers import GenerationProvider, ProviderFactory
from cwf.domain.templates import TemplateRegistry

logger = logging.getLogger(__name__)


def build_lifecycle(
    settings: EngineSettings,
    *,
    emitter: WorkflowEventEmitter | None = None,
    provider: GenerationProvider | None = None,
    retriever: KnowledgeRetriever | None = None,
) -> WorkflowLifecycleManager:
    """
    Build a lifecycle manager backed by file stores under `storage_root`.

    Raises:
        KeyError: If the configured provider is not registered
        ProviderError: If the provider or knowledge file is unusable
        TemplateError: If the templates file defines an invalid template
    """
    if provider is None:
        provider = ProviderFactory.create(settings.provider, settings.provider_config)
        provider.validate()

    if retriever is None:
        if settings.knowledge_file is not None:
            retriever = InMemoryKnowledgeBase.from_yaml(settings.knowledge_file)
        else:
            retriever = InMemoryKnowledgeBase()

    templates = TemplateRegistry()
    if settings.templates_file is not None:
        loaded = templates.load_yaml(settings.templates_file)
        logger.info(f"Loaded {len(loaded)} templates from {settings.templates_file}")

    store = FileStepStore(storage_root=settings.storage_root)
    conversations = FileConversationStore(storage_root=settings.storage_root)
    pipeline = ContextPipeline(
        retriever,
        conversations,
        global_limit=settings.retrieval.global_limit,
        organization_limit=settings.retrieval.organization_limit,
        history_limit=settings.retrieval.history_limit,
        retry_delay_seconds=settings.retry.delay_seconds,
    )
    dispatcher = StepDispatcher(
        provider,
        store,
        emitter,
        retry_attempts=settings.retry.attempts,
        retry_delay_seconds=settings.retry.delay_seconds,
    )
    return WorkflowLifecycleManager(
        store,
        conversations,
        templates,
        pipeline,
        dispatcher,
        ledger=IdempotencyLedger(path=settings.storage_root / TURN_LEDGER_FILENAME),
        idle_template=settings.idle_template,
    )
