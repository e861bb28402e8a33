import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from casual_grounding.embeddings.indexer import EmbeddingIndexer
from casual_grounding.extractors.base import MemoryCandidateExtractor
from casual_grounding.models import Memory, MemoryCandidate, MemoryType, Scope
from casual_grounding.storage.protocols import MemoryStore

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {"type", "title", "content", "confidence", "pinned", "is_active", "project_id"}
REINDEX_FIELDS = {"title", "content", "project_id"}
LOW_CONFIDENCE_THRESHOLD = 0.55


@dataclass
class MemoryWriteResult:
    """
    Result of writing a memory.

    Attributes:
        memory: The memory as stored
        embedding_success: Whether its embedding is current. False leaves the
            memory keyword-searchable and queued for backfill.
    """

    memory: Memory
    embedding_success: bool


class MemoryService:
    """
    Memory lifecycle: create, edit, review and re-embed.

    Only approved, active memories are ever used for grounding; everything
    created here starts as a candidate.
    """

    def __init__(
        self,
        memory_store: MemoryStore,
        indexer: EmbeddingIndexer,
        extractor: Optional[MemoryCandidateExtractor] = None,
    ):
        self.memory_store = memory_store
        self.indexer = indexer
        self.extractor = extractor

    async def _embed(self, memory: Memory) -> MemoryWriteResult:
        success = await self.indexer.index_memory(memory)
        stored = await asyncio.to_thread(self.memory_store.get_memory, memory.id)
        return MemoryWriteResult(memory=stored or memory, embedding_success=success)

    async def _apply(self, memory_id: str, updates: dict) -> Optional[MemoryWriteResult]:
        current = await asyncio.to_thread(self.memory_store.get_memory, memory_id)
        if current is None:
            logger.warning(f"Memory {memory_id} not found")
            return None

        reindex = any(
            key in REINDEX_FIELDS and getattr(current, key) != value
            for key, value in updates.items()
        )
        if reindex:
            updates = {**updates, "embedding": None}
            await self.indexer.remove_memory(memory_id)

        updated = await asyncio.to_thread(self.memory_store.update_memory, memory_id, updates)
        if updated is None:
            return None
        if reindex or updated.embedding is None:
            return await self._embed(updated)
        return MemoryWriteResult(memory=updated, embedding_success=True)

    async def create(
        self,
        scope: Scope,
        type: MemoryType,
        title: str,
        content: str,
        confidence: float = 0.5,
        pinned: bool = False,
        source_message_id: Optional[str] = None,
    ) -> MemoryWriteResult:
        """
        Store a new candidate memory and embed it.

        Args:
            scope: Owner and optional project of the memory
            type: fact | preference | procedure | goal | context
            title: Short title
            content: The memory itself
            confidence: 0.0-1.0
            pinned: Pinned memories are injected into every turn when enabled
            source_message_id: Assistant message the memory was extracted from

        Returns:
            MemoryWriteResult (embedding failure is not an error)
        """
        memory = Memory(
            owner_id=scope.owner_id,
            project_id=scope.project_id,
            type=type,
            title=title.strip(),
            content=content.strip(),
            confidence=confidence,
            pinned=pinned,
            source_message_id=source_message_id,
        )
        await asyncio.to_thread(self.memory_store.add_memory, memory)
        result = await self._embed(memory)

        logger.info(
            f"Created candidate memory {memory.id} ({type}), "
            f"embedded={result.embedding_success}"
        )
        return result

    async def update(self, memory_id: str, **changes) -> Optional[MemoryWriteResult]:
        """Edit a memory; a changed title or content is re-embedded."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {sorted(unknown)}")
        return await self._apply(memory_id, changes)

    async def approve(self, memory_id: str, **edits) -> Optional[MemoryWriteResult]:
        """Approve a memory (optionally with edits), making it retrievable."""
        unknown = set(edits) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {sorted(unknown)}")

        result = await self._apply(
            memory_id,
            {**edits, "status": "approved", "reviewed_at": datetime.now(), "rejected_reason": None},
        )
        if result is not None:
            logger.info(f"Approved memory {memory_id}")
        return result

    async def reject(self, memory_id: str, reason: Optional[str] = None) -> Optional[Memory]:
        """Reject a memory; it is never used for grounding afterwards."""
        memory = await asyncio.to_thread(
            self.memory_store.update_memory,
            memory_id,
            {"status": "rejected", "reviewed_at": datetime.now(), "rejected_reason": reason},
        )
        if memory is not None:
            logger.info(f"Rejected memory {memory_id}: {reason}")
        return memory

    async def bulk_reject_low_confidence(
        self,
        scope: Scope,
        threshold: float = LOW_CONFIDENCE_THRESHOLD,
        reason: str = "low confidence",
    ) -> int:
        """Reject every candidate in scope whose confidence is below ``threshold``."""
        return await asyncio.to_thread(
            self.memory_store.reject_low_confidence_candidates, scope, threshold, reason
        )

    async def regenerate_embedding(self, memory_id: str) -> bool:
        memory = await asyncio.to_thread(self.memory_store.get_memory, memory_id)
        if memory is None:
            return False
        return await self.indexer.index_memory(memory)

    def missing_embedding_count(self, scope: Optional[Scope] = None) -> int:
        return self.memory_store.count_memories_missing_embedding(scope)

    async def save_candidates(
        self,
        scope: Scope,
        candidates: List[MemoryCandidate],
        source_message_id: Optional[str] = None,
    ) -> List[Memory]:
        """
        Store extracted candidates, skipping ones the owner already has.

        Returns:
            The memories created
        """
        saved = []
        for candidate in candidates:
            duplicate = await asyncio.to_thread(
                self.memory_store.find_duplicate_memory,
                scope.owner_id,
                candidate.title,
                candidate.content,
            )
            if duplicate is not None:
                logger.debug(f"Skipping candidate '{candidate.title}': duplicate of {duplicate.id}")
                continue

            result = await self.create(
                scope,
                type=candidate.type,
                title=candidate.title,
                content=candidate.content,
                confidence=candidate.confidence,
                source_message_id=source_message_id,
            )
            saved.append(result.memory)
        return saved

    async def extract_candidates(
        self,
        scope: Scope,
        user_text: str,
        assistant_text: str,
        source_message_id: Optional[str] = None,
    ) -> List[Memory]:
        """Run the candidate extractor over one exchange and save what it proposes."""
        if self.extractor is None:
            return []

        candidates = await self.extractor.extract(user_text, assistant_text)
        saved = await self.save_candidates(scope, candidates, source_message_id)
        logger.info(f"Saved {len(saved)} of {len(candidates)} extracted memory candidates")
        return saved
