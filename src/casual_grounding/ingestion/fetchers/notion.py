"""Wiki-page fetcher for the Notion API."""

import logging
from typing import List, Optional

import requests

from casual_grounding.ingestion.fetchers.base import BearerHTTPFetcher, FetchedDocument

logger = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"


def blocks_to_text(blocks: List[dict]) -> str:
    """
    Flatten Notion blocks to text, one line per block with rich text.

    Nested ``children`` (when the caller expanded them) are flattened in order.
    """
    lines = []
    for block in blocks:
        content = block.get(block.get("type", ""), None)
        if isinstance(content, dict):
            for key in ("rich_text", "title"):
                if isinstance(content.get(key), list):
                    lines.append("".join(part.get("plain_text", "") for part in content[key]))
        if block.get("children"):
            lines.append(blocks_to_text(block["children"]))
    return "\n".join(lines)


def page_title(page: dict) -> Optional[str]:
    properties = page.get("properties") or {}
    for prop in properties.values():
        if prop.get("type") == "title" and prop.get("title"):
            return "".join(part.get("plain_text", "") for part in prop["title"]) or None
    return None


class NotionPageFetcher(BearerHTTPFetcher):
    """Fetches the top-level blocks of a Notion page, following pagination."""

    source_label = "Notion"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        base_url: str = NOTION_API_URL,
        page_size: int = 100,
    ):
        super().__init__(session=session, timeout=timeout)
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size

    def _headers(self, credential: str) -> dict:
        return {**super()._headers(credential), "Notion-Version": NOTION_VERSION}

    def _list_blocks(self, page_id: str, credential: str) -> List[dict]:
        blocks: List[dict] = []
        params = {"page_size": self.page_size}
        while True:
            data = self._get_json(
                f"{self.base_url}/blocks/{page_id}/children", credential, params=params
            )
            blocks.extend(data.get("results", []))
            if not data.get("has_more") or not data.get("next_cursor"):
                return blocks
            params = {"page_size": self.page_size, "start_cursor": data["next_cursor"]}

    def _fetch_sync(self, locator: str, credential: str) -> FetchedDocument:
        blocks = self._list_blocks(locator, credential)
        page = self._get_json(f"{self.base_url}/pages/{locator}", credential)

        text = blocks_to_text(blocks)
        logger.debug(f"Notion page {locator}: {len(blocks)} blocks, {len(text)} chars")
        return FetchedDocument(
            text=text,
            title=page_title(page),
            metadata={"block_count": len(blocks), "last_edited": page.get("last_edited_time")},
        )
