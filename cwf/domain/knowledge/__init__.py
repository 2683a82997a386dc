from .retriever import (
    InMemoryKnowledgeBase,
    KnowledgeEntry,
    KnowledgeRetriever,
    ProfileEntry,
)

__all__ = [
    "InMemoryKnowledgeBase",
    "KnowledgeEntry",
    "KnowledgeRetriever",
    "ProfileEntry",
]
