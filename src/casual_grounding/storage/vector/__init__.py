"""
Vector index implementations.
"""

from casual_grounding.storage.vector.memory import InMemoryVectorIndex
from casual_grounding.storage.vector.models import VectorHit
from casual_grounding.storage.vector.qdrant import QdrantVectorIndex

__all__ = [
    "VectorHit",
    "InMemoryVectorIndex",
    "QdrantVectorIndex",
]
