"""
Storage protocols for grounding records and vector indexes.

Provides protocol definitions for storage backends. Implementations can use
various databases (Qdrant, PostgreSQL, SQLite, in-memory, etc.) as long as they
satisfy the protocol interface.
"""

from casual_grounding.storage.protocols import (
    ConversationStore,
    KnowledgeStore,
    MemoryStore,
    ProvenanceStore,
    VectorIndex,
)
from casual_grounding.storage.records.memory import InMemoryRecordStore
from casual_grounding.storage.records.sqlalchemy import SQLAlchemyRecordStore
from casual_grounding.storage.vector.memory import InMemoryVectorIndex
from casual_grounding.storage.vector.models import VectorHit
from casual_grounding.storage.vector.qdrant import QdrantVectorIndex

__all__ = [
    "MemoryStore",
    "KnowledgeStore",
    "ConversationStore",
    "ProvenanceStore",
    "VectorIndex",
    "VectorHit",
    "InMemoryRecordStore",
    "SQLAlchemyRecordStore",
    "InMemoryVectorIndex",
    "QdrantVectorIndex",
]
