"""
Document fetchers, one per knowledge source type.
"""

from typing import Dict, Optional

import requests

from casual_grounding.ingestion.fetchers.base import (
    BearerHTTPFetcher,
    DocumentFetcher,
    FetchedDocument,
)
from casual_grounding.ingestion.fetchers.google import GoogleDocFetcher, GoogleDriveFetcher
from casual_grounding.ingestion.fetchers.notion import NotionPageFetcher
from casual_grounding.ingestion.fetchers.pdf import PDFFetcher


def default_fetchers(
    storage_root: Optional[str] = None,
    session: Optional[requests.Session] = None,
    timeout: float = 30.0,
) -> Dict[str, DocumentFetcher]:
    """Fetcher registry keyed by source type."""
    session = session or requests.Session()
    return {
        "pdf": PDFFetcher(storage_root=storage_root),
        "wiki-page": NotionPageFetcher(session=session, timeout=timeout),
        "doc-export": GoogleDocFetcher(session=session, timeout=timeout),
        "cloud-file": GoogleDriveFetcher(session=session, timeout=timeout),
    }


__all__ = [
    "DocumentFetcher",
    "FetchedDocument",
    "BearerHTTPFetcher",
    "PDFFetcher",
    "NotionPageFetcher",
    "GoogleDocFetcher",
    "GoogleDriveFetcher",
    "default_fetchers",
]
