"""Fetchers for Google Docs (doc-export) and Google Drive files (cloud-file)."""

import logging
from typing import Optional

import requests

from casual_grounding.errors import FetchError
from casual_grounding.ingestion.fetchers.base import BearerHTTPFetcher, FetchedDocument

logger = logging.getLogger(__name__)

DOCS_API_URL = "https://docs.googleapis.com/v1"
DRIVE_API_URL = "https://www.googleapis.com/drive/v3"

# Google-native formats and the plain format each is exported as
EXPORT_FORMATS = {
    "application/vnd.google-apps.document": "text/plain",
    "application/vnd.google-apps.spreadsheet": "text/csv",
    "application/vnd.google-apps.presentation": "text/plain",
}


def document_to_text(document: dict) -> str:
    """Concatenate the text runs of every paragraph in a Docs API document."""
    parts = []
    for element in (document.get("body") or {}).get("content", []):
        paragraph = element.get("paragraph")
        if not paragraph:
            continue
        for run in paragraph.get("elements", []):
            content = (run.get("textRun") or {}).get("content")
            if content:
                parts.append(content)
    return "".join(parts)


class GoogleDocFetcher(BearerHTTPFetcher):
    """Reads a Google Doc through the Docs API."""

    source_label = "Google Docs"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        base_url: str = DOCS_API_URL,
    ):
        super().__init__(session=session, timeout=timeout)
        self.base_url = base_url.rstrip("/")

    def _fetch_sync(self, locator: str, credential: str) -> FetchedDocument:
        document = self._get_json(f"{self.base_url}/documents/{locator}", credential)
        return FetchedDocument(
            text=document_to_text(document),
            title=document.get("title"),
            metadata={"revision_id": document.get("revisionId")},
        )


class GoogleDriveFetcher(BearerHTTPFetcher):
    """
    Reads a Drive file: Google-native documents are exported to text or CSV,
    ``text/*`` files are downloaded as-is; anything else is rejected.
    """

    source_label = "Google Drive"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        base_url: str = DRIVE_API_URL,
    ):
        super().__init__(session=session, timeout=timeout)
        self.base_url = base_url.rstrip("/")

    def _fetch_sync(self, locator: str, credential: str) -> FetchedDocument:
        file_url = f"{self.base_url}/files/{locator}"
        meta = self._get_json(file_url, credential, params={"fields": "name,mimeType"})
        mime_type = meta.get("mimeType", "")

        if mime_type in EXPORT_FORMATS:
            response = self._get(
                f"{file_url}/export", credential, params={"mimeType": EXPORT_FORMATS[mime_type]}
            )
        elif mime_type.startswith("text/"):
            response = self._get(file_url, credential, params={"alt": "media"})
        else:
            raise FetchError(
                f"Unsupported file type: {mime_type or 'unknown'}. "
                "Supported: Google Docs, Sheets, Slides and text files."
            )

        logger.debug(f"Drive file {locator} ({mime_type}): {len(response.text)} chars")
        return FetchedDocument(
            text=response.text, title=meta.get("name"), metadata={"mime_type": mime_type}
        )
