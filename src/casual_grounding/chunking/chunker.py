"""
Boundary-aware text chunking.

Splits extracted document text into overlapping windows, preferring to end a
window on a sentence terminator and otherwise on whitespace, so chunks rarely
cut through a word or a sentence.
"""

import logging
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 800
DEFAULT_OVERLAP = 100

SENTENCE_TERMINATORS = ".!?。！？"


@dataclass(frozen=True)
class ChunkSpan:
    """A chunk together with its [start, end) offsets in the source text."""

    start: int
    end: int
    text: str


def _find_boundary(text: str, start: int, end: int, chunk_size: int) -> int:
    """Return the cut position for the window [start, end), or ``end`` for a hard cut."""
    floor = start + chunk_size // 2

    for pos in range(end, floor, -1):
        if text[pos - 1] in SENTENCE_TERMINATORS:
            return pos

    for pos in range(end, floor, -1):
        if text[pos].isspace():
            return pos

    return end


def chunk_spans(
    text: str, chunk_size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_OVERLAP
) -> List[ChunkSpan]:
    """
    Split text into overlapping, boundary-aware spans.

    Args:
        text: Raw extracted text
        chunk_size: Maximum window length in characters
        overlap: Characters shared between consecutive windows

    Returns:
        Spans in document order with strictly increasing start offsets.
        Whitespace-only windows are skipped.

    Raises:
        ValueError: If chunk_size is not positive or overlap is negative
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0:
        raise ValueError("overlap must not be negative")

    spans: List[ChunkSpan] = []
    length = len(text)
    start = 0

    while start < length:
        end = min(start + chunk_size, length)
        chunk_end = end
        if end < length:
            chunk_end = _find_boundary(text, start, end, chunk_size)

        piece = text[start:chunk_end].strip()
        if piece:
            spans.append(ChunkSpan(start=start, end=chunk_end, text=piece))

        if chunk_end >= length:
            break

        # Overlap must never stall the cursor.
        start = max(chunk_end - overlap, start + 1, 0)

    return spans


def chunk_text(
    text: str, chunk_size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_OVERLAP
) -> List[str]:
    """
    Split text into overlapping, boundary-aware chunks.

    Example:
        >>> chunk_text("A. B. C. D. " * 3, chunk_size=10, overlap=2)[0]
        'A. B. C.'
    """
    chunks = [span.text for span in chunk_spans(text, chunk_size, overlap)]
    logger.debug(f"Chunked {len(text)} chars into {len(chunks)} chunks (size={chunk_size})")
    return chunks
