"""
Knowledge source ingestion.

One run fetches a source's text, chunks it, replaces the source's chunks and
embeds each new chunk. The source is ``processing`` for the duration, which
keeps its chunks out of retrieval while they are being replaced.
"""

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from casual_grounding.chunking import DEFAULT_CHUNK_SIZE, DEFAULT_OVERLAP, chunk_text
from casual_grounding.embeddings.indexer import EmbeddingIndexer
from casual_grounding.errors import FetchError, IngestionError, SourceNotFoundError
from casual_grounding.ingestion.fetchers.base import DocumentFetcher, FetchedDocument
from casual_grounding.models import KnowledgeChunk, KnowledgeSource, Scope, SourceStatus
from casual_grounding.storage.protocols import KnowledgeStore

logger = logging.getLogger(__name__)

MIN_TEXT_CHARS = 10
CHUNKS_PER_PAGE_ESTIMATE = 3


@dataclass
class IngestResult:
    """
    Outcome of ingesting one source.

    Attributes:
        source_id: The source
        chunks_created: Chunks stored (embedded or not)
        chunks_failed: Chunks that could not be stored
        chunks_unembedded: Stored chunks whose embedding failed; they are
            keyword-searchable and picked up by the backfill
        extracted_chars: Length of the extracted text
        version: Source version after the run
        status: Final source status ("ready" or "error")
    """

    source_id: str
    chunks_created: int
    chunks_failed: int
    chunks_unembedded: int
    extracted_chars: int
    version: int
    status: SourceStatus


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class IngestionPipeline:
    def __init__(
        self,
        knowledge_store: KnowledgeStore,
        indexer: EmbeddingIndexer,
        fetchers: Dict[str, DocumentFetcher],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_OVERLAP,
        delay: float = 0.1,
        fetch_timeout: float = 60.0,
    ):
        """
        Initialize the pipeline.

        Args:
            knowledge_store: Sources and chunks
            indexer: Embeds chunks into the record store and vector index
            fetchers: Fetcher per source type (see ``default_fetchers``)
            chunk_size: Target chunk length in characters
            chunk_overlap: Characters shared by consecutive chunks
            delay: Seconds between chunk embeddings
            fetch_timeout: Seconds allowed for fetching the document
        """
        self.knowledge_store = knowledge_store
        self.indexer = indexer
        self.fetchers = fetchers
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.delay = delay
        self.fetch_timeout = fetch_timeout

    async def _update(self, source_id: str, updates: dict) -> Optional[KnowledgeSource]:
        return await asyncio.to_thread(self.knowledge_store.update_source, source_id, updates)

    async def _fail(self, source: KnowledgeSource, message: str) -> None:
        logger.error(f"Ingestion of source {source.id} failed: {message}")
        try:
            await self._update(
                source.id, {"status": "error", "metadata": {**source.metadata, "error": message}}
            )
        except Exception as e:
            logger.error(f"Could not record error status of source {source.id}: {e}")

    async def _fetch(self, source: KnowledgeSource, credential: Optional[str]) -> FetchedDocument:
        fetcher = self.fetchers.get(source.type)
        if fetcher is None:
            raise FetchError(f"No fetcher registered for source type {source.type}")

        try:
            document = await asyncio.wait_for(
                fetcher.fetch(source.locator, credential), timeout=self.fetch_timeout
            )
        except asyncio.TimeoutError as e:
            raise FetchError(f"Fetching {source.type} source timed out") from e

        if len(document.text.strip()) < MIN_TEXT_CHARS:
            raise FetchError(f"No text could be extracted from {source.type} source")
        return document

    def _chunk_metadata(self, source: KnowledgeSource, index: int) -> dict:
        if source.type == "pdf":
            return {"page_estimate": index // CHUNKS_PER_PAGE_ESTIMATE + 1}
        return {}

    async def ingest(
        self, source_id: str, scope: Scope, credential: Optional[str] = None
    ) -> IngestResult:
        """
        Ingest (or re-sync) a knowledge source.

        Args:
            source_id: The source to ingest
            scope: Requesting principal; the source must be in scope
            credential: Bearer token for the source API, if it needs one

        Returns:
            IngestResult. Status is "error" only when no chunk could be stored.

        Raises:
            SourceNotFoundError: If the source does not exist in scope
            IngestionError: If the document could not be fetched, had no text or
                could not be stored (the source is marked "error" with the
                message first; unexpected errors are wrapped)
        """
        source = await asyncio.to_thread(self.knowledge_store.get_source, source_id, scope)
        if source is None:
            raise SourceNotFoundError(f"Knowledge source {source_id} not found")

        await self._update(source.id, {"status": "processing"})
        logger.info(f"Ingesting {source.type} source {source.id} ({source.name})")

        try:
            return await self._ingest_document(source, credential)
        except IngestionError as e:
            await self._fail(source, str(e))
            raise
        except Exception as e:
            await self._fail(source, f"{type(e).__name__}: {e}")
            raise IngestionError(f"Ingestion of source {source.id} failed: {e}") from e

    async def _ingest_document(
        self, source: KnowledgeSource, credential: Optional[str]
    ) -> IngestResult:
        document = await self._fetch(source, credential)

        text = document.text.strip()
        digest = content_hash(text)
        previous_digest = source.metadata.get("content_hash")
        version = source.version
        if previous_digest is not None and previous_digest != digest:
            version += 1

        pieces = chunk_text(text, chunk_size=self.chunk_size, overlap=self.chunk_overlap)

        try:
            await self.indexer.remove_source_chunks(source.id)
        except Exception as e:
            logger.warning(f"Could not remove indexed chunks of source {source.id}: {e}")
        await asyncio.to_thread(self.knowledge_store.delete_chunks, source.id)

        created = failed = unembedded = 0
        for index, content in enumerate(pieces):
            chunk = KnowledgeChunk(
                source_id=source.id,
                chunk_index=index,
                content=content,
                metadata=self._chunk_metadata(source, index),
            )
            try:
                await asyncio.to_thread(self.knowledge_store.add_chunk, chunk)
            except Exception as e:
                logger.warning(f"Failed to store chunk {index} of source {source.id}: {e}")
                failed += 1
                continue

            created += 1
            if not await self.indexer.index_chunk(chunk, source):
                unembedded += 1

            if self.delay > 0 and index < len(pieces) - 1:
                await asyncio.sleep(self.delay)

        status: SourceStatus = "ready" if created > 0 else "error"
        metadata = {key: value for key, value in source.metadata.items() if key != "error"}
        metadata.update(
            {
                "chunks_count": created,
                "chunks_failed": failed,
                "chunks_unembedded": unembedded,
                "extracted_chars": len(text),
                "content_hash": digest,
            }
        )
        if document.title:
            metadata["document_title"] = document.title
        if status == "error":
            metadata["error"] = f"All {failed} chunks failed to store"

        await self._update(
            source.id,
            {
                "status": status,
                "version": version,
                "last_synced_at": datetime.now(),
                "metadata": metadata,
            },
        )

        if unembedded:
            logger.warning(f"{unembedded} chunks of source {source.id} are stored without embeddings")
        logger.info(
            f"Ingested source {source.id} v{version}: {created} chunks created, "
            f"{failed} failed, status={status}"
        )

        return IngestResult(
            source_id=source.id,
            chunks_created=created,
            chunks_failed=failed,
            chunks_unembedded=unembedded,
            extracted_chars=len(text),
            version=version,
            status=status,
        )
