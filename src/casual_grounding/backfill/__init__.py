"""
Backfill of missing embeddings.
"""

from casual_grounding.backfill.reconciler import BackfillResult, EmbeddingBackfill

__all__ = [
    "BackfillResult",
    "EmbeddingBackfill",
]
