"""
In-memory record storage implementation.

Provides a simple in-memory store for memories, knowledge sources, chunks,
conversation messages and provenance links, suitable for testing and
single-instance development. For production, use the SQLAlchemy
implementation.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from casual_grounding.models import (
    ConversationMessage,
    KnowledgeChunk,
    KnowledgeRef,
    KnowledgeSource,
    Memory,
    MemoryRef,
    Scope,
)

logger = logging.getLogger(__name__)


def _in_scope(owner_id: str, project_id: Optional[str], scope: Optional[Scope]) -> bool:
    if scope is None:
        return True
    if owner_id != scope.owner_id:
        return False
    if scope.project_id is not None and project_id != scope.project_id:
        return False
    return True


def _memory_rank(memory: Memory):
    return (not memory.pinned, -memory.confidence, -memory.updated_at.timestamp())


class InMemoryRecordStore:
    """
    In-memory implementation of the MemoryStore, KnowledgeStore,
    ConversationStore and ProvenanceStore protocols.

    Records are copied on the way in and out so callers cannot mutate
    stored state by accident. Every method holds one lock, since callers
    reach the store from worker threads. Data is lost on restart.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._memories: Dict[str, Memory] = {}
        self._sources: Dict[str, KnowledgeSource] = {}
        self._chunks: Dict[str, KnowledgeChunk] = {}
        self._messages: Dict[str, ConversationMessage] = {}
        self._memory_refs: List[MemoryRef] = []
        self._knowledge_refs: List[KnowledgeRef] = []

        logger.info("InMemoryRecordStore initialized")

    # Memories

    def add_memory(self, memory: Memory) -> str:
        with self._lock:
            self._memories[memory.id] = memory.model_copy(deep=True)
        logger.debug(f"Inserted memory {memory.id}: '{memory.title[:50]}'")
        return memory.id

    def get_memory(self, memory_id: str) -> Optional[Memory]:
        with self._lock:
            memory = self._memories.get(memory_id)
            return memory.model_copy(deep=True) if memory else None

    def update_memory(self, memory_id: str, updates: dict) -> Optional[Memory]:
        with self._lock:
            memory = self._memories.get(memory_id)
            if memory is None:
                logger.warning(f"Cannot update memory {memory_id}: not found")
                return None

            updated = memory.model_copy(update={**updates, "updated_at": datetime.now()})
            self._memories[memory_id] = updated
            return updated.model_copy(deep=True)

    def get_visible_memories(self, memory_ids: List[str], scope: Scope) -> List[Memory]:
        wanted = set(memory_ids)
        with self._lock:
            return [
                memory.model_copy(deep=True)
                for memory in self._memories.values()
                if memory.id in wanted
                and memory.is_retrievable
                and _in_scope(memory.owner_id, memory.project_id, scope)
            ]

    def keyword_search_memories(self, query: str, scope: Scope, limit: int) -> List[Memory]:
        needle = query.strip().lower()
        if not needle:
            return []

        with self._lock:
            matches = [
                memory
                for memory in self._memories.values()
                if memory.is_retrievable
                and _in_scope(memory.owner_id, memory.project_id, scope)
                and (needle in memory.title.lower() or needle in memory.content.lower())
            ]
            matches.sort(key=_memory_rank)
            return [memory.model_copy(deep=True) for memory in matches[:limit]]

    def get_pinned_memories(self, scope: Scope, limit: int) -> List[Memory]:
        with self._lock:
            pinned = [
                memory
                for memory in self._memories.values()
                if memory.pinned
                and memory.is_retrievable
                and _in_scope(memory.owner_id, memory.project_id, scope)
            ]
            pinned.sort(key=_memory_rank)
            return [memory.model_copy(deep=True) for memory in pinned[:limit]]

    def find_duplicate_memory(self, owner_id: str, title: str, content: str) -> Optional[Memory]:
        title_needle = title.lower()
        content_needle = content[:50].lower()
        with self._lock:
            for memory in self._memories.values():
                if memory.owner_id != owner_id or memory.status == "rejected":
                    continue
                if title_needle in memory.title.lower() or content_needle in memory.content.lower():
                    return memory.model_copy(deep=True)
        return None

    def reject_low_confidence_candidates(self, scope: Scope, threshold: float, reason: str) -> int:
        now = datetime.now()
        count = 0
        with self._lock:
            for memory_id, memory in list(self._memories.items()):
                if (
                    memory.status == "candidate"
                    and memory.confidence < threshold
                    and _in_scope(memory.owner_id, memory.project_id, scope)
                ):
                    self._memories[memory_id] = memory.model_copy(
                        update={
                            "status": "rejected",
                            "reviewed_at": now,
                            "rejected_reason": reason,
                            "updated_at": now,
                        }
                    )
                    count += 1

        logger.info(f"Rejected {count} low-confidence candidates (threshold={threshold})")
        return count

    def _memories_missing_embedding(self, scope: Optional[Scope]) -> List[Memory]:
        # Caller holds the lock.
        return [
            memory
            for memory in self._memories.values()
            if memory.embedding is None
            and memory.is_active
            and _in_scope(memory.owner_id, memory.project_id, scope)
        ]

    def list_memories_missing_embedding(
        self, limit: int, scope: Optional[Scope] = None
    ) -> List[Memory]:
        with self._lock:
            missing = sorted(self._memories_missing_embedding(scope), key=lambda m: m.created_at)
            return [memory.model_copy(deep=True) for memory in missing[:limit]]

    def count_memories_missing_embedding(self, scope: Optional[Scope] = None) -> int:
        with self._lock:
            return len(self._memories_missing_embedding(scope))

    def list_embedded_memories(self) -> List[Memory]:
        with self._lock:
            return [
                memory.model_copy(deep=True)
                for memory in self._memories.values()
                if memory.embedding is not None and memory.is_active
            ]

    def set_memory_embedding(self, memory_id: str, embedding: List[float]) -> bool:
        with self._lock:
            memory = self._memories.get(memory_id)
            if memory is None:
                return False
            self._memories[memory_id] = memory.model_copy(update={"embedding": list(embedding)})
            return True

    # Knowledge sources and chunks

    def add_source(self, source: KnowledgeSource) -> str:
        with self._lock:
            self._sources[source.id] = source.model_copy(deep=True)
        logger.debug(f"Inserted knowledge source {source.id} ({source.type})")
        return source.id

    def get_source(self, source_id: str, scope: Optional[Scope] = None) -> Optional[KnowledgeSource]:
        with self._lock:
            source = self._sources.get(source_id)
            if source is None or not _in_scope(source.owner_id, source.project_id, scope):
                return None
            return source.model_copy(deep=True)

    def update_source(self, source_id: str, updates: dict) -> Optional[KnowledgeSource]:
        with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                logger.warning(f"Cannot update source {source_id}: not found")
                return None

            updated = source.model_copy(update={**updates, "updated_at": datetime.now()})
            self._sources[source_id] = updated
            return updated.model_copy(deep=True)

    def add_chunk(self, chunk: KnowledgeChunk) -> str:
        with self._lock:
            if chunk.source_id not in self._sources:
                raise KeyError(f"Unknown knowledge source {chunk.source_id}")
            self._chunks[chunk.id] = chunk.model_copy(deep=True)
        return chunk.id

    def delete_chunks(self, source_id: str) -> int:
        with self._lock:
            doomed = [cid for cid, chunk in self._chunks.items() if chunk.source_id == source_id]
            for chunk_id in doomed:
                del self._chunks[chunk_id]

        logger.debug(f"Deleted {len(doomed)} chunks of source {source_id}")
        return len(doomed)

    def get_chunks(self, source_id: str) -> List[KnowledgeChunk]:
        with self._lock:
            chunks = [chunk for chunk in self._chunks.values() if chunk.source_id == source_id]
            chunks.sort(key=lambda c: c.chunk_index)
            return [chunk.model_copy(deep=True) for chunk in chunks]

    def _visible_pair(
        self, chunk: KnowledgeChunk, scope: Scope
    ) -> Optional[Tuple[KnowledgeChunk, KnowledgeSource]]:
        # Caller holds the lock.
        source = self._sources.get(chunk.source_id)
        if source is None or source.status != "ready":
            return None
        if not _in_scope(source.owner_id, source.project_id, scope):
            return None
        return chunk.model_copy(deep=True), source.model_copy(deep=True)

    def get_visible_chunks(
        self, chunk_ids: List[str], scope: Scope
    ) -> List[Tuple[KnowledgeChunk, KnowledgeSource]]:
        pairs = []
        with self._lock:
            for chunk_id in chunk_ids:
                chunk = self._chunks.get(chunk_id)
                if chunk is None:
                    continue
                pair = self._visible_pair(chunk, scope)
                if pair is not None:
                    pairs.append(pair)
        return pairs

    def keyword_search_chunks(
        self, query: str, scope: Scope, limit: int
    ) -> List[Tuple[KnowledgeChunk, KnowledgeSource]]:
        needle = query.strip().lower()
        if not needle:
            return []

        pairs = []
        with self._lock:
            for chunk in self._chunks.values():
                if needle not in chunk.content.lower():
                    continue
                pair = self._visible_pair(chunk, scope)
                if pair is not None:
                    pairs.append(pair)
                if len(pairs) >= limit:
                    break
        return pairs

    def _chunks_missing_embedding(self, scope: Optional[Scope]) -> List[KnowledgeChunk]:
        # Caller holds the lock.
        missing = []
        for chunk in self._chunks.values():
            if chunk.embedding is not None:
                continue
            source = self._sources.get(chunk.source_id)
            if source is not None and _in_scope(source.owner_id, source.project_id, scope):
                missing.append(chunk)
        return missing

    def list_chunks_missing_embedding(
        self, limit: int, scope: Optional[Scope] = None
    ) -> List[KnowledgeChunk]:
        with self._lock:
            missing = sorted(self._chunks_missing_embedding(scope), key=lambda c: c.created_at)
            return [chunk.model_copy(deep=True) for chunk in missing[:limit]]

    def count_chunks_missing_embedding(self, scope: Optional[Scope] = None) -> int:
        with self._lock:
            return len(self._chunks_missing_embedding(scope))

    def list_embedded_chunks(self) -> List[Tuple[KnowledgeChunk, KnowledgeSource]]:
        with self._lock:
            return [
                (chunk.model_copy(deep=True), self._sources[chunk.source_id].model_copy(deep=True))
                for chunk in self._chunks.values()
                if chunk.embedding is not None and chunk.source_id in self._sources
            ]

    def set_chunk_embedding(self, chunk_id: str, embedding: List[float]) -> bool:
        with self._lock:
            chunk = self._chunks.get(chunk_id)
            if chunk is None:
                return False
            self._chunks[chunk_id] = chunk.model_copy(update={"embedding": list(embedding)})
            return True

    # Conversation messages

    def add_message(self, message: ConversationMessage) -> str:
        with self._lock:
            self._messages[message.id] = message.model_copy(deep=True)
        return message.id

    def get_message(self, message_id: str) -> Optional[ConversationMessage]:
        with self._lock:
            message = self._messages.get(message_id)
            return message.model_copy(deep=True) if message else None

    def get_recent_messages(self, conversation_id: str, limit: int) -> List[ConversationMessage]:
        if limit <= 0:
            return []
        with self._lock:
            # Insertion order breaks created_at ties.
            messages = [m for m in self._messages.values() if m.conversation_id == conversation_id]
            messages = sorted(messages, key=lambda m: m.created_at)[-limit:]
            return [message.model_copy(deep=True) for message in messages]

    # Provenance

    def add_memory_refs(self, refs: List[MemoryRef]) -> int:
        with self._lock:
            self._memory_refs.extend(ref.model_copy() for ref in refs)
        return len(refs)

    def add_knowledge_refs(self, refs: List[KnowledgeRef]) -> int:
        with self._lock:
            self._knowledge_refs.extend(ref.model_copy() for ref in refs)
        return len(refs)

    def get_memory_refs(self, assistant_message_id: str) -> List[MemoryRef]:
        with self._lock:
            return [r for r in self._memory_refs if r.assistant_message_id == assistant_message_id]

    def get_knowledge_refs(self, assistant_message_id: str) -> List[KnowledgeRef]:
        with self._lock:
            return [
                r for r in self._knowledge_refs if r.assistant_message_id == assistant_message_id
            ]

    def get_cited_source_versions(
        self, conversation_id: str, source_ids: List[str]
    ) -> Dict[str, int]:
        wanted = set(source_ids)
        versions: Dict[str, int] = {}
        with self._lock:
            refs = sorted(self._knowledge_refs, key=lambda r: r.created_at)
        for ref in refs:
            if (
                ref.conversation_id == conversation_id
                and ref.source_id in wanted
                and ref.source_version is not None
            ):
                versions[ref.source_id] = ref.source_version
        return versions
