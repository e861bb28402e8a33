"""
Dual-tier retrieval of grounding fragments.
"""

from casual_grounding.retrieval.models import (
    ChunkFragment,
    MemoryFragment,
    RetrievalResult,
    Tier,
    TierStats,
)
from casual_grounding.retrieval.retriever import Retriever

__all__ = [
    "Retriever",
    "RetrievalResult",
    "MemoryFragment",
    "ChunkFragment",
    "Tier",
    "TierStats",
]
