"""
Document fetcher interface and shared HTTP plumbing.

A fetcher turns a source locator (file path, page id, document id) and an
optional bearer credential into plain text. Acquiring the credential is the
caller's concern.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import requests

from casual_grounding.errors import FetchError

logger = logging.getLogger(__name__)


@dataclass
class FetchedDocument:
    """
    Text extracted from a remote or stored document.

    Attributes:
        text: Extracted plain text
        title: Document title when the source reports one
        metadata: Source-specific details (page count, mime type, ...)
    """

    text: str
    title: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class DocumentFetcher(Protocol):
    """Protocol for document fetchers, one per source type."""

    async def fetch(self, locator: str, credential: Optional[str] = None) -> FetchedDocument:
        """
        Fetch a document and extract its text.

        Args:
            locator: External id, URL or storage path of the document
            credential: Bearer token for the source API, if it needs one

        Returns:
            FetchedDocument

        Raises:
            FetchError: If the document cannot be fetched or read
        """
        ...


class BearerHTTPFetcher:
    """
    Base for fetchers that call a JSON/text HTTP API with a bearer token.

    ``requests`` is blocking, so the whole fetch runs in a worker thread.
    """

    source_label = "http"

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self, credential: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {credential}"}

    def _get(self, url: str, credential: str, params: Optional[dict] = None) -> requests.Response:
        try:
            response = self.session.get(
                url, headers=self._headers(credential), params=params, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise FetchError(f"{self.source_label} request failed: {e}") from e

        if not response.ok:
            raise FetchError(
                f"{self.source_label} API error ({response.status_code}): {response.text[:200]}"
            )
        return response

    def _get_json(self, url: str, credential: str, params: Optional[dict] = None) -> dict:
        response = self._get(url, credential, params)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"{self.source_label} returned invalid JSON") from e

    def _fetch_sync(self, locator: str, credential: str) -> FetchedDocument:
        raise NotImplementedError

    async def fetch(self, locator: str, credential: Optional[str] = None) -> FetchedDocument:
        if not credential:
            raise FetchError(f"{self.source_label} requires an access token")
        if not locator:
            raise FetchError(f"{self.source_label} locator is empty")

        logger.debug(f"Fetching {self.source_label} document {locator}")
        return await asyncio.to_thread(self._fetch_sync, locator, credential)
