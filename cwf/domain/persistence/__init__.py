from .step_store import DocumentStepStore, InMemoryStepStore, StepStore
from .file_step_store import FileStepStore
from .conversation_store import (
    ConversationStore,
    FileConversationStore,
    InMemoryConversationStore,
)

__all__ = [
    "StepStore",
    "DocumentStepStore",
    "InMemoryStepStore",
    "FileStepStore",
    "ConversationStore",
    "FileConversationStore",
    "InMemoryConversationStore",
]
