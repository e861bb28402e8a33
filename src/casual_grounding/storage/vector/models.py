"""
Models for vector indexes.

Defines the data structures returned by vector index implementations.
"""

from pydantic import BaseModel


class VectorHit(BaseModel):
    """
    A single similarity-search hit.

    Attributes:
        id: Point ID (the memory or chunk ID)
        score: Similarity score, higher is more similar
    """

    id: str
    score: float
