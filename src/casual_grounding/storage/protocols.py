"""
Storage protocol definitions for grounding data.

These protocols define the interface that storage implementations must provide.
They are implementation-agnostic and can be backed by various databases
(PostgreSQL, SQLite, Qdrant, in-memory, etc.).

Record stores are authoritative for visibility: every ``get_visible_*`` and
``keyword_search_*`` method applies the same rules (active and approved
memories only; chunks of ``ready`` sources only; owner and project scope).
Vector indexes only rank candidates.
"""

from typing import Dict, List, Optional, Protocol, Tuple

from casual_grounding.models import (
    ConversationMessage,
    KnowledgeChunk,
    KnowledgeRef,
    KnowledgeSource,
    Memory,
    MemoryRef,
    Scope,
)
from casual_grounding.storage.vector.models import VectorHit


class MemoryStore(Protocol):
    """Protocol for durable memory records."""

    def add_memory(self, memory: Memory) -> str:
        """
        Store a memory.

        Returns:
            The memory ID
        """
        ...

    def get_memory(self, memory_id: str) -> Optional[Memory]:
        """Retrieve a memory by ID regardless of its status."""
        ...

    def update_memory(self, memory_id: str, updates: dict) -> Optional[Memory]:
        """
        Update fields of a memory and bump ``updated_at``.

        Returns:
            The updated memory, or None if it does not exist
        """
        ...

    def get_visible_memories(self, memory_ids: List[str], scope: Scope) -> List[Memory]:
        """
        Load the retrievable memories among ``memory_ids``.

        Memories that are inactive, not approved, or out of scope are omitted.
        Order of the result is unspecified.
        """
        ...

    def keyword_search_memories(self, query: str, scope: Scope, limit: int) -> List[Memory]:
        """
        Case-insensitive substring search over title and content.

        Only retrievable memories in scope are returned, ordered pinned first,
        then confidence descending, then most recently updated.
        """
        ...

    def get_pinned_memories(self, scope: Scope, limit: int) -> List[Memory]:
        """Retrievable pinned memories in scope, highest confidence first."""
        ...

    def find_duplicate_memory(self, owner_id: str, title: str, content: str) -> Optional[Memory]:
        """
        Find a non-rejected memory of the owner whose title contains ``title``
        or whose content contains the first 50 characters of ``content``.
        """
        ...

    def reject_low_confidence_candidates(self, scope: Scope, threshold: float, reason: str) -> int:
        """Reject candidates below ``threshold``; returns the number rejected."""
        ...

    def list_memories_missing_embedding(
        self, limit: int, scope: Optional[Scope] = None
    ) -> List[Memory]:
        """Active memories without an embedding, oldest first."""
        ...

    def count_memories_missing_embedding(self, scope: Optional[Scope] = None) -> int:
        """Count active memories without an embedding."""
        ...

    def list_embedded_memories(self) -> List[Memory]:
        """Active memories that have an embedding (used to rebuild a vector index)."""
        ...

    def set_memory_embedding(self, memory_id: str, embedding: List[float]) -> bool:
        """Store a memory's embedding; returns False if the memory is gone."""
        ...


class KnowledgeStore(Protocol):
    """Protocol for knowledge sources and their chunks."""

    def add_source(self, source: KnowledgeSource) -> str:
        """Store a knowledge source; returns its ID."""
        ...

    def get_source(self, source_id: str, scope: Optional[Scope] = None) -> Optional[KnowledgeSource]:
        """Retrieve a source, optionally requiring it to be in scope."""
        ...

    def update_source(self, source_id: str, updates: dict) -> Optional[KnowledgeSource]:
        """Update fields of a source and bump ``updated_at``."""
        ...

    def add_chunk(self, chunk: KnowledgeChunk) -> str:
        """Store a chunk; returns its ID."""
        ...

    def delete_chunks(self, source_id: str) -> int:
        """Delete every chunk of a source; returns the number deleted."""
        ...

    def get_chunks(self, source_id: str) -> List[KnowledgeChunk]:
        """All chunks of a source ordered by chunk index."""
        ...

    def get_visible_chunks(
        self, chunk_ids: List[str], scope: Scope
    ) -> List[Tuple[KnowledgeChunk, KnowledgeSource]]:
        """
        Load the retrievable chunks among ``chunk_ids`` with their sources.

        Chunks of sources that are not ``ready`` or out of scope are omitted.
        """
        ...

    def keyword_search_chunks(
        self, query: str, scope: Scope, limit: int
    ) -> List[Tuple[KnowledgeChunk, KnowledgeSource]]:
        """Case-insensitive substring search over chunk content (ready sources only)."""
        ...

    def list_chunks_missing_embedding(
        self, limit: int, scope: Optional[Scope] = None
    ) -> List[KnowledgeChunk]:
        """Chunks without an embedding, oldest first."""
        ...

    def count_chunks_missing_embedding(self, scope: Optional[Scope] = None) -> int:
        """Count chunks without an embedding."""
        ...

    def list_embedded_chunks(self) -> List[Tuple[KnowledgeChunk, KnowledgeSource]]:
        """Chunks that have an embedding, with their sources."""
        ...

    def set_chunk_embedding(self, chunk_id: str, embedding: List[float]) -> bool:
        """Store a chunk's embedding; returns False if the chunk is gone."""
        ...


class ConversationStore(Protocol):
    """Protocol for conversation messages."""

    def add_message(self, message: ConversationMessage) -> str:
        """Durably record a message; returns its ID."""
        ...

    def get_message(self, message_id: str) -> Optional[ConversationMessage]:
        """Retrieve a message by ID."""
        ...

    def get_recent_messages(self, conversation_id: str, limit: int) -> List[ConversationMessage]:
        """The last ``limit`` messages of a conversation, oldest first."""
        ...


class ProvenanceStore(Protocol):
    """Protocol for the links between answers and the fragments they cite."""

    def add_memory_refs(self, refs: List[MemoryRef]) -> int:
        """Store memory links; returns the number stored."""
        ...

    def add_knowledge_refs(self, refs: List[KnowledgeRef]) -> int:
        """Store knowledge chunk links; returns the number stored."""
        ...

    def get_memory_refs(self, assistant_message_id: str) -> List[MemoryRef]:
        """Memory links of one assistant message."""
        ...

    def get_knowledge_refs(self, assistant_message_id: str) -> List[KnowledgeRef]:
        """Knowledge links of one assistant message."""
        ...

    def get_cited_source_versions(
        self, conversation_id: str, source_ids: List[str]
    ) -> Dict[str, int]:
        """Most recently cited version of each source within a conversation."""
        ...


class VectorIndex(Protocol):
    """
    Protocol for a similarity-search index over one fragment kind.

    The index stores (id, vector, payload) points; payload keys are used as
    exact-match filters (e.g. ``owner_id``, ``project_id``, ``source_id``).
    """

    def upsert(self, point_id: str, vector: List[float], payload: dict) -> None:
        """Insert or replace a point."""
        ...

    def delete(self, point_ids: List[str]) -> int:
        """Delete points by ID; returns the number deleted."""
        ...

    def delete_by_filter(self, filters: dict) -> int:
        """Delete every point whose payload matches ``filters``."""
        ...

    def search(
        self, query_embedding: List[float], top_k: int, filters: Optional[dict] = None
    ) -> List[VectorHit]:
        """Highest-scoring points first."""
        ...
