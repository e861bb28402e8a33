"""
Embedding indexer.

Computes embeddings for memories and knowledge chunks and writes them to both
the record store (so backfill can tell what is missing) and the vector index
(so the primary retrieval tier can find them).
"""

import asyncio
import logging
from typing import Optional, Tuple

from casual_grounding.embeddings.protocol import TextEmbedding
from casual_grounding.errors import EmbeddingError
from casual_grounding.models import KnowledgeChunk, KnowledgeSource, Memory
from casual_grounding.storage.protocols import KnowledgeStore, MemoryStore, VectorIndex

logger = logging.getLogger(__name__)


def memory_payload(memory: Memory) -> dict:
    return {"owner_id": memory.owner_id, "project_id": memory.project_id}


def chunk_payload(source: KnowledgeSource) -> dict:
    return {"owner_id": source.owner_id, "project_id": source.project_id, "source_id": source.id}


class EmbeddingIndexer:
    """
    Writes embeddings for memories and chunks.

    Embedding failure never raises: the record simply stays unembedded,
    which leaves it searchable by keyword and eligible for backfill.

    The index point is written before the record's embedding, so a record
    that reports an embedding is always present in the index.
    """

    def __init__(
        self,
        embedding: TextEmbedding,
        memory_store: MemoryStore,
        knowledge_store: KnowledgeStore,
        memory_index: Optional[VectorIndex] = None,
        chunk_index: Optional[VectorIndex] = None,
    ):
        self.embedding = embedding
        self.memory_store = memory_store
        self.knowledge_store = knowledge_store
        self.memory_index = memory_index
        self.chunk_index = chunk_index

    async def _embed(self, kind: str, record_id: str, text: str):
        try:
            return await self.embedding.embed_document(text)
        except (EmbeddingError, ValueError) as e:
            logger.warning(f"Failed to embed {kind} {record_id}: {e}")
            return None

    async def index_memory(self, memory: Memory) -> bool:
        """
        Embed ``"{title}\\n\\n{content}"`` of a memory and store the vector.

        Returns:
            True if the memory is now embedded, False otherwise
        """
        vector = await self._embed("memory", memory.id, memory.embedding_text)
        if vector is None:
            return False

        try:
            if self.memory_index is not None:
                await asyncio.to_thread(
                    self.memory_index.upsert, memory.id, vector, memory_payload(memory)
                )
            stored = await asyncio.to_thread(
                self.memory_store.set_memory_embedding, memory.id, vector
            )
        except Exception as e:
            logger.warning(f"Failed to store embedding of memory {memory.id}: {e}")
            return False

        if not stored:
            logger.warning(f"Memory {memory.id} disappeared before its embedding was stored")
        return stored

    async def index_chunk(self, chunk: KnowledgeChunk, source: KnowledgeSource) -> bool:
        """
        Embed a knowledge chunk and store the vector.

        Args:
            chunk: The chunk to embed
            source: Its parent source (provides the owner/project payload)

        Returns:
            True if the chunk is now embedded, False otherwise
        """
        vector = await self._embed("chunk", chunk.id, chunk.content)
        if vector is None:
            return False

        try:
            if self.chunk_index is not None:
                await asyncio.to_thread(
                    self.chunk_index.upsert, chunk.id, vector, chunk_payload(source)
                )
            stored = await asyncio.to_thread(
                self.knowledge_store.set_chunk_embedding, chunk.id, vector
            )
        except Exception as e:
            logger.warning(f"Failed to store embedding of chunk {chunk.id}: {e}")
            return False

        return stored

    async def remove_source_chunks(self, source_id: str) -> int:
        """Drop every indexed point of a source (before its chunks are recreated)."""
        if self.chunk_index is None:
            return 0
        return await asyncio.to_thread(self.chunk_index.delete_by_filter, {"source_id": source_id})

    async def remove_memory(self, memory_id: str) -> int:
        """Drop a memory's indexed point (its content changed or it was deleted)."""
        if self.memory_index is None:
            return 0
        return await asyncio.to_thread(self.memory_index.delete, [memory_id])

    def restore_indexes(self) -> Tuple[int, int]:
        """
        Load every stored embedding into the vector indexes.

        A process-local index starts empty while the record store still holds
        embeddings, so it must be refilled before the first search or the
        primary tier would find nothing. No provider calls are made.

        Returns:
            (memories restored, chunks restored)
        """
        memories = chunks = 0
        if self.memory_index is not None:
            for memory in self.memory_store.list_embedded_memories():
                self.memory_index.upsert(memory.id, memory.embedding, memory_payload(memory))
                memories += 1
        if self.chunk_index is not None:
            for chunk, source in self.knowledge_store.list_embedded_chunks():
                self.chunk_index.upsert(chunk.id, chunk.embedding, chunk_payload(source))
                chunks += 1

        logger.info(f"Restored {memories} memory and {chunks} chunk embeddings into the indexes")
        return memories, chunks
