"""
Knowledge source ingestion: fetch, chunk, embed.
"""

from casual_grounding.ingestion.fetchers import (
    DocumentFetcher,
    FetchedDocument,
    GoogleDocFetcher,
    GoogleDriveFetcher,
    NotionPageFetcher,
    PDFFetcher,
    default_fetchers,
)
from casual_grounding.ingestion.pipeline import IngestionPipeline, IngestResult

__all__ = [
    "IngestionPipeline",
    "IngestResult",
    "DocumentFetcher",
    "FetchedDocument",
    "PDFFetcher",
    "NotionPageFetcher",
    "GoogleDocFetcher",
    "GoogleDriveFetcher",
    "default_fetchers",
]
