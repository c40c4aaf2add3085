"""Team knowledge base: conventions and the stores that serve them."""

from codetutor.knowledge.models import Convention, ConventionExample, Severity
from codetutor.knowledge.store import (
    InMemoryKnowledgeStore,
    JsonKnowledgeStore,
    KnowledgeStore,
    KnowledgeStoreError,
    search_conventions,
)

__all__ = [
    "Convention",
    "ConventionExample",
    "InMemoryKnowledgeStore",
    "JsonKnowledgeStore",
    "KnowledgeStore",
    "KnowledgeStoreError",
    "Severity",
    "search_conventions",
]
