"""
Embedding backfill.

Finds memories and chunks stored without an embedding (provider outage,
ingestion failures, rows created before embeddings existed) and embeds them
oldest first. Re-running it is always safe: embedded rows are no longer
selected.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from casual_grounding.embeddings.indexer import EmbeddingIndexer
from casual_grounding.models import KnowledgeChunk, Memory, Scope
from casual_grounding.storage.protocols import KnowledgeStore, MemoryStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class BackfillResult:
    """
    Outcome of a backfill run.

    Attributes:
        succeeded: Rows embedded and stored
        failed: Rows whose embedding failed (left for the next run)
        cancelled: Whether the run stopped on the cancellation signal
    """

    succeeded: int = 0
    failed: int = 0
    cancelled: bool = False

    def __add__(self, other: "BackfillResult") -> "BackfillResult":
        return BackfillResult(
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            cancelled=self.cancelled or other.cancelled,
        )


class EmbeddingBackfill:
    def __init__(
        self,
        indexer: EmbeddingIndexer,
        memory_store: MemoryStore,
        knowledge_store: KnowledgeStore,
        batch_limit: int = 100,
        delay: float = 0.2,
    ):
        """
        Initialize the backfill.

        Args:
            indexer: Writes embeddings to the record store and vector index
            memory_store: Source of memories missing an embedding
            knowledge_store: Source of chunks missing an embedding
            batch_limit: Maximum rows per run and kind
            delay: Seconds between provider calls
        """
        self.indexer = indexer
        self.memory_store = memory_store
        self.knowledge_store = knowledge_store
        self.batch_limit = batch_limit
        self.delay = delay

    def missing_count(self, scope: Optional[Scope] = None) -> Dict[str, int]:
        """Rows still waiting for an embedding, per kind."""
        return {
            "memories": self.memory_store.count_memories_missing_embedding(scope),
            "chunks": self.knowledge_store.count_chunks_missing_embedding(scope),
        }

    async def _run(
        self,
        kind: str,
        items: List,
        process: Callable[[object], Awaitable[bool]],
        on_progress: Optional[ProgressCallback],
        cancel_event: Optional[asyncio.Event],
    ) -> BackfillResult:
        result = BackfillResult()
        total = len(items)

        for done, item in enumerate(items, start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"{kind} backfill cancelled after {done - 1}/{total} items")
                result.cancelled = True
                break

            try:
                ok = await process(item)
            except Exception as e:
                logger.warning(f"Backfill of {kind} {item.id} failed: {e}")
                ok = False

            if ok:
                result.succeeded += 1
            else:
                result.failed += 1

            if on_progress is not None:
                on_progress(done, total)

            if self.delay > 0 and done < total:
                await asyncio.sleep(self.delay)

        logger.info(
            f"{kind} backfill finished: {result.succeeded} succeeded, {result.failed} failed"
        )
        return result

    def _limit(self, batch_limit: Optional[int]) -> int:
        if batch_limit is None:
            return self.batch_limit
        if batch_limit < 0:
            raise ValueError("batch_limit must not be negative")
        return batch_limit

    async def backfill_memories(
        self,
        scope: Optional[Scope] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        batch_limit: Optional[int] = None,
    ) -> BackfillResult:
        """
        Embed active memories that have no embedding, oldest first.

        Args:
            scope: Restrict to one owner/project (None = all)
            on_progress: Called with (done, total) after every item
            cancel_event: Checked before each item; set it to stop early
            batch_limit: Override of the configured batch limit

        Returns:
            BackfillResult; (0, 0) if the candidates could not be read
        """
        if cancel_event is not None and cancel_event.is_set():
            return BackfillResult(cancelled=True)

        limit = self._limit(batch_limit)
        try:
            memories: List[Memory] = await asyncio.to_thread(
                self.memory_store.list_memories_missing_embedding, limit, scope
            )
        except Exception as e:
            logger.error(f"Could not list memories missing embeddings: {e}")
            return BackfillResult()

        return await self._run(
            "memory", memories, self.indexer.index_memory, on_progress, cancel_event
        )

    async def _index_chunk(self, chunk: KnowledgeChunk) -> bool:
        source = await asyncio.to_thread(self.knowledge_store.get_source, chunk.source_id)
        if source is None:
            logger.warning(f"Chunk {chunk.id} has no source; skipping")
            return False
        return await self.indexer.index_chunk(chunk, source)

    async def backfill_chunks(
        self,
        scope: Optional[Scope] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        batch_limit: Optional[int] = None,
    ) -> BackfillResult:
        """Embed knowledge chunks that have no embedding, oldest first."""
        if cancel_event is not None and cancel_event.is_set():
            return BackfillResult(cancelled=True)

        limit = self._limit(batch_limit)
        try:
            chunks: List[KnowledgeChunk] = await asyncio.to_thread(
                self.knowledge_store.list_chunks_missing_embedding, limit, scope
            )
        except Exception as e:
            logger.error(f"Could not list chunks missing embeddings: {e}")
            return BackfillResult()

        return await self._run("chunk", chunks, self._index_chunk, on_progress, cancel_event)

    async def backfill(
        self,
        scope: Optional[Scope] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        batch_limit: Optional[int] = None,
    ) -> BackfillResult:
        """
        Backfill memories, then chunks; results are summed.

        ``batch_limit`` applies to each kind separately (None = configured limit).
        """
        result = await self.backfill_memories(scope, on_progress, cancel_event, batch_limit)
        if result.cancelled:
            return result
        return result + await self.backfill_chunks(
            scope, on_progress, cancel_event, batch_limit
        )
