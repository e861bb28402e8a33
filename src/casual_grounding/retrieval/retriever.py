"""
Dual-tier retrieval over memories and knowledge chunks.

The primary tier embeds the query once and ranks each store through its
vector index; hits are then re-loaded through the record store, which applies
the visibility rules (active and approved memories, chunks of ready sources,
owner and project scope). If the primary tier is disabled or fails, the
keyword tier answers instead. Both stores are searched concurrently.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from casual_grounding.embeddings.protocol import TextEmbedding
from casual_grounding.errors import RetrievalError
from casual_grounding.models import Scope
from casual_grounding.retrieval.models import (
    ChunkFragment,
    MemoryFragment,
    RetrievalResult,
    Tier,
    TierStats,
)
from casual_grounding.storage.protocols import KnowledgeStore, MemoryStore, VectorIndex

logger = logging.getLogger(__name__)


class Retriever:
    def __init__(
        self,
        memory_store: MemoryStore,
        knowledge_store: KnowledgeStore,
        embedding: Optional[TextEmbedding] = None,
        memory_index: Optional[VectorIndex] = None,
        chunk_index: Optional[VectorIndex] = None,
        memory_match_count: int = 8,
        knowledge_match_count: int = 6,
        pinned_memory_limit: int = 0,
        vector_search_enabled: bool = True,
        embedding_timeout: float = 30.0,
        search_timeout: float = 30.0,
        over_fetch: int = 3,
        stats: Optional[TierStats] = None,
    ):
        """
        Initialize the retriever.

        Args:
            memory_store: Authoritative memory records
            knowledge_store: Authoritative sources and chunks
            embedding: Query embedder (None = keyword tier only)
            memory_index: Vector index over memories (None = keyword tier only)
            chunk_index: Vector index over chunks (None = keyword tier only)
            memory_match_count: Maximum ranked memories per request
            knowledge_match_count: Maximum chunks per request
            pinned_memory_limit: Pinned memories injected ahead of ranked ones (0 = off)
            vector_search_enabled: Set False to force the keyword tier
            embedding_timeout: Seconds allowed for embedding the query
            search_timeout: Seconds allowed for each store call
            over_fetch: Index hits requested per wanted fragment, to survive
                visibility filtering of stale index entries
            stats: Shared tier counters (a private instance if omitted)
        """
        self.memory_store = memory_store
        self.knowledge_store = knowledge_store
        self.embedding = embedding
        self.memory_index = memory_index
        self.chunk_index = chunk_index
        self.memory_match_count = memory_match_count
        self.knowledge_match_count = knowledge_match_count
        self.pinned_memory_limit = pinned_memory_limit
        self.vector_search_enabled = vector_search_enabled
        self.embedding_timeout = embedding_timeout
        self.search_timeout = search_timeout
        self.over_fetch = max(1, over_fetch)
        self.stats = stats or TierStats()

    async def _call(self, func, *args):
        """Run a blocking store call in a worker thread with the search timeout."""
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.search_timeout)

    async def _embed_query(self, query: str) -> Optional[List[float]]:
        if not self.vector_search_enabled or self.embedding is None:
            return None
        if self.memory_index is None and self.chunk_index is None:
            return None

        try:
            return await asyncio.wait_for(
                self.embedding.embed_query(query), timeout=self.embedding_timeout
            )
        except Exception as e:
            logger.warning(f"Query embedding failed, using keyword search: {e}")
            return None

    def _filters(self, scope: Scope) -> dict:
        return {"owner_id": scope.owner_id, "project_id": scope.project_id}

    async def _vector_memories(
        self, query_vector: List[float], scope: Scope
    ) -> List[MemoryFragment]:
        hits = await self._call(
            self.memory_index.search,
            query_vector,
            self.memory_match_count * self.over_fetch,
            self._filters(scope),
        )
        visible = await self._call(
            self.memory_store.get_visible_memories, [hit.id for hit in hits], scope
        )
        by_id = {memory.id: memory for memory in visible}

        fragments = [
            MemoryFragment(memory=by_id[hit.id], score=hit.score)
            for hit in hits
            if hit.id in by_id
        ]
        return fragments[: self.memory_match_count]

    async def _keyword_memories(self, query: str, scope: Scope) -> List[MemoryFragment]:
        memories = await self._call(
            self.memory_store.keyword_search_memories, query, scope, self.memory_match_count
        )
        return [MemoryFragment(memory=memory) for memory in memories]

    async def _search_memories(
        self, query: str, query_vector: Optional[List[float]], scope: Scope
    ) -> Tuple[List[MemoryFragment], Tier]:
        if query_vector is not None and self.memory_index is not None:
            try:
                return await self._vector_memories(query_vector, scope), "vector"
            except Exception as e:
                logger.warning(f"Vector memory search failed, falling back to keyword: {e}")

        try:
            return await self._keyword_memories(query, scope), "keyword"
        except Exception as e:
            logger.error(f"Keyword memory search failed: {e}")
            raise RetrievalError(f"Memory search failed on both tiers: {e}") from e

    async def _vector_chunks(self, query_vector: List[float], scope: Scope) -> List[ChunkFragment]:
        hits = await self._call(
            self.chunk_index.search,
            query_vector,
            self.knowledge_match_count * self.over_fetch,
            self._filters(scope),
        )
        visible = await self._call(
            self.knowledge_store.get_visible_chunks, [hit.id for hit in hits], scope
        )
        by_id = {chunk.id: (chunk, source) for chunk, source in visible}

        fragments = []
        for hit in hits:
            if hit.id not in by_id:
                continue
            chunk, source = by_id[hit.id]
            fragments.append(ChunkFragment(chunk=chunk, source=source, score=hit.score))
        return fragments[: self.knowledge_match_count]

    async def _keyword_chunks(self, query: str, scope: Scope) -> List[ChunkFragment]:
        pairs = await self._call(
            self.knowledge_store.keyword_search_chunks, query, scope, self.knowledge_match_count
        )
        return [ChunkFragment(chunk=chunk, source=source) for chunk, source in pairs]

    async def _search_chunks(
        self, query: str, query_vector: Optional[List[float]], scope: Scope
    ) -> Tuple[List[ChunkFragment], Tier]:
        if query_vector is not None and self.chunk_index is not None:
            try:
                return await self._vector_chunks(query_vector, scope), "vector"
            except Exception as e:
                logger.warning(f"Vector knowledge search failed, falling back to keyword: {e}")

        try:
            return await self._keyword_chunks(query, scope), "keyword"
        except Exception as e:
            logger.error(f"Keyword knowledge search failed: {e}")
            raise RetrievalError(f"Knowledge search failed on both tiers: {e}") from e

    async def _with_pinned(
        self, fragments: List[MemoryFragment], scope: Scope
    ) -> List[MemoryFragment]:
        if self.pinned_memory_limit <= 0:
            return fragments

        try:
            pinned = await self._call(
                self.memory_store.get_pinned_memories, scope, self.pinned_memory_limit
            )
        except Exception as e:
            logger.warning(f"Could not load pinned memories: {e}")
            return fragments

        pinned_ids = {memory.id for memory in pinned}
        ranked = [fragment for fragment in fragments if fragment.id not in pinned_ids]
        return [MemoryFragment(memory=memory) for memory in pinned] + ranked

    async def retrieve(self, query: str, scope: Scope) -> RetrievalResult:
        """
        Retrieve memory and knowledge fragments for a query.

        Args:
            query: Natural-language query (usually the user's message)
            scope: Requesting principal and optional project

        Returns:
            RetrievalResult with ranked fragments and the tier of each store

        Raises:
            RetrievalError: If both tiers failed for either store
        """
        query = query.strip()
        if not query:
            return RetrievalResult()

        query_vector = await self._embed_query(query)

        (memories, memory_tier), (chunks, knowledge_tier) = await asyncio.gather(
            self._search_memories(query, query_vector, scope),
            self._search_chunks(query, query_vector, scope),
        )
        memories = await self._with_pinned(memories, scope)

        self.stats.record("memory", memory_tier)
        self.stats.record("knowledge", knowledge_tier)
        logger.info(
            f"Retrieved {len(memories)} memories ({memory_tier}) and "
            f"{len(chunks)} chunks ({knowledge_tier}) for owner={scope.owner_id}"
        )

        return RetrievalResult(
            memories=memories,
            chunks=chunks,
            memory_tier=memory_tier,
            knowledge_tier=knowledge_tier,
        )
