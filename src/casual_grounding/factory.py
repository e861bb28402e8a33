"""
Wiring of the default component graph from ``GroundingSettings``.

Example:
    >>> settings = GroundingSettings()
    >>> grounding = build_grounding(settings)
    >>> result = await grounding.chat.send_turn(scope, "conv-1", "How do we close the books?")
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import create_engine

from casual_grounding.backfill.reconciler import EmbeddingBackfill
from casual_grounding.chat_service import ChatService
from casual_grounding.config import GroundingSettings
from casual_grounding.embeddings.indexer import EmbeddingIndexer
from casual_grounding.embeddings.openai_embedding import OpenAIEmbedding
from casual_grounding.extractors.base import MemoryCandidateExtractor
from casual_grounding.generation.openai_streamer import OpenAIStreamingGenerator
from casual_grounding.generation.protocol import Generator
from casual_grounding.ingestion.fetchers import default_fetchers
from casual_grounding.ingestion.pipeline import IngestionPipeline
from casual_grounding.memory_service import MemoryService
from casual_grounding.retrieval.models import TierStats
from casual_grounding.retrieval.retriever import Retriever
from casual_grounding.storage.records.sqlalchemy import SQLAlchemyRecordStore
from casual_grounding.storage.vector.memory import InMemoryVectorIndex
from casual_grounding.storage.vector.qdrant import QdrantVectorIndex
from casual_grounding.tasks import BackgroundTaskQueue

logger = logging.getLogger(__name__)


@dataclass
class Grounding:
    """The wired services; ``store`` backs every record protocol."""

    store: SQLAlchemyRecordStore
    memory_index: Union[InMemoryVectorIndex, QdrantVectorIndex]
    chunk_index: Union[InMemoryVectorIndex, QdrantVectorIndex]
    indexer: EmbeddingIndexer
    retriever: Retriever
    chat: ChatService
    memories: MemoryService
    ingestion: IngestionPipeline
    backfill: EmbeddingBackfill
    tasks: BackgroundTaskQueue
    tier_stats: TierStats


def build_grounding(
    settings: GroundingSettings,
    embedding: Optional[OpenAIEmbedding] = None,
    generator: Optional[Generator] = None,
    extractor: Optional[MemoryCandidateExtractor] = None,
    storage_root: Optional[str] = None,
) -> Grounding:
    """
    Build the default component graph.

    Args:
        settings: Configuration
        embedding: Embedder override (default: OpenAIEmbedding from settings)
        generator: Generator override (default: OpenAIStreamingGenerator)
        extractor: Enables post-turn memory candidate extraction
        storage_root: Directory PDF locators are resolved against

    Returns:
        Grounding
    """
    store = SQLAlchemyRecordStore(create_engine(settings.database_url))
    store.create_tables()

    embedding = embedding or OpenAIEmbedding(
        model=settings.embedding_model,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        dimensions=settings.embedding_dimension,
        timeout=settings.embedding_timeout,
    )
    generator = generator or OpenAIStreamingGenerator(
        model=settings.chat_model,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.generation_timeout,
    )

    if settings.uses_qdrant:
        memory_index = QdrantVectorIndex(
            settings.qdrant_memory_collection,
            dimension=embedding.dimension,
            host=settings.qdrant_host,
            port=settings.qdrant_port,
        )
        chunk_index = QdrantVectorIndex(
            settings.qdrant_chunk_collection,
            dimension=embedding.dimension,
            host=settings.qdrant_host,
            port=settings.qdrant_port,
        )
    else:
        memory_index = InMemoryVectorIndex(settings.qdrant_memory_collection)
        chunk_index = InMemoryVectorIndex(settings.qdrant_chunk_collection)

    indexer = EmbeddingIndexer(embedding, store, store, memory_index, chunk_index)
    if not settings.uses_qdrant:
        # Process-local indexes start empty; refill them from the database.
        indexer.restore_indexes()
    tier_stats = TierStats()
    retriever = Retriever(
        store,
        store,
        embedding=embedding,
        memory_index=memory_index,
        chunk_index=chunk_index,
        memory_match_count=settings.memory_match_count,
        knowledge_match_count=settings.knowledge_match_count,
        pinned_memory_limit=settings.pinned_memory_limit,
        vector_search_enabled=settings.vector_search_enabled,
        embedding_timeout=settings.embedding_timeout,
        search_timeout=settings.search_timeout,
        stats=tier_stats,
    )
    tasks = BackgroundTaskQueue()
    memories = MemoryService(store, indexer, extractor=extractor)
    chat = ChatService(
        store,
        store,
        retriever,
        generator,
        memory_service=memories,
        task_queue=tasks,
        history_limit=settings.history_limit,
    )
    ingestion = IngestionPipeline(
        store,
        indexer,
        default_fetchers(storage_root=storage_root, timeout=settings.search_timeout),
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        delay=settings.ingest_delay,
    )
    backfill = EmbeddingBackfill(
        indexer,
        store,
        store,
        batch_limit=settings.backfill_batch_limit,
        delay=settings.backfill_delay,
    )

    logger.info(
        f"Grounding built (database={store.engine.url}, "
        f"vector={'qdrant' if settings.uses_qdrant else 'in-memory'})"
    )
    return Grounding(
        store=store,
        memory_index=memory_index,
        chunk_index=chunk_index,
        indexer=indexer,
        retriever=retriever,
        chat=chat,
        memories=memories,
        ingestion=ingestion,
        backfill=backfill,
        tasks=tasks,
        tier_stats=tier_stats,
    )
