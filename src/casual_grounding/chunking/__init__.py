"""
Text chunking shared by every ingestion adapter.
"""

from casual_grounding.chunking.chunker import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_OVERLAP,
    ChunkSpan,
    chunk_spans,
    chunk_text,
)

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_OVERLAP",
    "ChunkSpan",
    "chunk_spans",
    "chunk_text",
]
