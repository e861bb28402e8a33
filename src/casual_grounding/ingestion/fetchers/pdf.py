"""PDF text extraction with PyMuPDF."""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Union

import fitz

from casual_grounding.errors import FetchError
from casual_grounding.ingestion.fetchers.base import FetchedDocument

logger = logging.getLogger(__name__)


class PDFFetcher:
    """
    Extracts the text layer of a stored PDF, page by page.

    Image-only PDFs have no text layer and come back (nearly) empty; the
    ingestion pipeline rejects them as too short.
    """

    def __init__(self, storage_root: Optional[Union[str, Path]] = None):
        """
        Args:
            storage_root: Directory locators are resolved against. Locators
                may not escape it. None = locators are plain paths.
        """
        self.storage_root = Path(storage_root).resolve() if storage_root else None

    def _resolve(self, locator: str) -> Path:
        if self.storage_root is None:
            return Path(locator)

        path = (self.storage_root / locator).resolve()
        if not path.is_relative_to(self.storage_root):
            raise FetchError(f"PDF locator {locator} is outside the storage root")
        return path

    def _extract(self, path: Path) -> FetchedDocument:
        if not path.is_file():
            raise FetchError(f"PDF not found: {path}")

        try:
            with fitz.open(str(path)) as doc:
                pages = [page.get_text() for page in doc]
                title = (doc.metadata or {}).get("title") or None
        except Exception as e:
            raise FetchError(f"Could not read PDF {path.name}: {e}") from e

        text = "\n".join(page.strip() for page in pages if page.strip())
        logger.debug(f"Extracted {len(text)} chars from {len(pages)} pages of {path.name}")
        return FetchedDocument(text=text, title=title, metadata={"page_count": len(pages)})

    async def fetch(self, locator: str, credential: Optional[str] = None) -> FetchedDocument:
        """Extract text from the PDF at ``locator`` (the credential is unused)."""
        return await asyncio.to_thread(self._extract, self._resolve(locator))
