"""
Citation footer extraction.

The generator is told to end its answer with exactly one object of the form
``{"memory_ids": [...], "knowledge_chunk_ids": [...]}``. The match is
anchored at the end of the answer so citation-shaped text quoted earlier in
the prose is never mistaken for the footer.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger(__name__)

MEMORY_KEY = "memory_ids"
CHUNK_KEY = "knowledge_chunk_ids"

_KEY = rf'"(?:{MEMORY_KEY}|{CHUNK_KEY})"'
_ARRAY = r"\[[^\[\]]*\]"
FOOTER_PATTERN = re.compile(
    rf"\{{\s*{_KEY}\s*:\s*{_ARRAY}\s*,\s*{_KEY}\s*:\s*{_ARRAY}\s*\}}\s*\Z"
)


@dataclass
class CitationResult:
    """
    Outcome of citation extraction.

    Attributes:
        visible_text: The answer without its footer (trimmed)
        memory_ids: Memory ids named by the footer, in order, without duplicates
        chunk_ids: Chunk ids named by the footer, in order, without duplicates
        found: Whether a well-formed footer was present
    """

    visible_text: str
    memory_ids: List[str] = field(default_factory=list)
    chunk_ids: List[str] = field(default_factory=list)
    found: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.memory_ids and not self.chunk_ids


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


def _string_list(value) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError("citation ids must be a list of strings")
    return _unique(value)


def extract_citations(text: str) -> CitationResult:
    """
    Split an answer into visible prose and its citation footer.

    Never raises: a missing or malformed footer yields the full trimmed text
    and empty id lists. Running it again on ``visible_text`` returns the same
    text with empty lists.

    Args:
        text: Full generated answer

    Returns:
        CitationResult

    Example:
        >>> result = extract_citations('The answer is 42.\\n\\n{"memory_ids":["m1"],"knowledge_chunk_ids":[]}')
        >>> result.visible_text, result.memory_ids, result.chunk_ids
        ('The answer is 42.', ['m1'], [])
    """
    trimmed = (text or "").strip()
    match = FOOTER_PATTERN.search(trimmed)
    if match is None:
        return CitationResult(visible_text=trimmed)

    try:
        footer = json.loads(match.group(0))
        if set(footer) != {MEMORY_KEY, CHUNK_KEY}:
            raise ValueError(f"unexpected keys {sorted(footer)}")
        memory_ids = _string_list(footer[MEMORY_KEY])
        chunk_ids = _string_list(footer[CHUNK_KEY])
    except ValueError as e:
        logger.warning(f"Malformed citation footer ignored: {e}")
        return CitationResult(visible_text=trimmed)

    visible = trimmed[: match.start()].strip()
    if FOOTER_PATTERN.search(visible):
        # Only one footer is allowed; two means the model echoed the format.
        logger.warning("Answer ends with more than one citation footer; ignoring both")
        return CitationResult(visible_text=trimmed)

    return CitationResult(
        visible_text=visible, memory_ids=memory_ids, chunk_ids=chunk_ids, found=True
    )
