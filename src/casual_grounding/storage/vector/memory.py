"""
In-memory vector index implementation.

Provides a simple in-memory index with brute-force cosine similarity,
suitable for testing and development. For production, use the Qdrant
implementation.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from casual_grounding.storage.vector.models import VectorHit

logger = logging.getLogger(__name__)


class InMemoryVectorIndex:
    """
    In-memory implementation of the VectorIndex protocol.

    Stores vectors and payloads in a dictionary guarded by a lock, since
    callers reach the index from worker threads. Data is lost on restart.
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._lock = threading.Lock()
        # point id -> {vector, payload}
        self._points: Dict[str, Dict[str, Any]] = {}

        logger.info(f"InMemoryVectorIndex initialized (name={name})")

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)

    def upsert(self, point_id: str, vector: List[float], payload: dict) -> None:
        """Insert or replace a point."""
        point = {"vector": list(vector), "payload": dict(payload)}
        with self._lock:
            self._points[point_id] = point
        logger.debug(f"Upserted point {point_id} into {self.name}")

    def delete(self, point_ids: List[str]) -> int:
        """Delete points by ID."""
        count = 0
        with self._lock:
            for point_id in point_ids:
                if self._points.pop(point_id, None) is not None:
                    count += 1
        return count

    def delete_by_filter(self, filters: dict) -> int:
        """Delete every point whose payload matches the filters."""
        with self._lock:
            doomed = [
                point_id
                for point_id, point in self._points.items()
                if self._matches_filters(point["payload"], filters)
            ]
            for point_id in doomed:
                del self._points[point_id]

        logger.debug(f"Deleted {len(doomed)} points from {self.name} (filters={filters})")
        return len(doomed)

    def _cosine_similarity(self, vec1: List[float], vec2: List[float]) -> float:
        """Calculate cosine similarity between two vectors."""
        if len(vec1) != len(vec2):
            raise ValueError("Vectors must have the same length")

        dot_product = sum(a * b for a, b in zip(vec1, vec2))
        magnitude1 = sum(a * a for a in vec1) ** 0.5
        magnitude2 = sum(b * b for b in vec2) ** 0.5

        if magnitude1 == 0 or magnitude2 == 0:
            return 0.0

        return dot_product / (magnitude1 * magnitude2)

    def _matches_filters(self, payload: dict, filters: Optional[dict]) -> bool:
        """Exact-match filtering on payload keys; None values are ignored."""
        if not filters:
            return True

        for key, value in filters.items():
            if value is None:
                continue
            if payload.get(key) != value:
                return False

        return True

    def search(
        self,
        query_embedding: List[float],
        top_k: int,
        filters: Optional[dict] = None,
    ) -> List[VectorHit]:
        """Search for points by cosine similarity."""
        with self._lock:
            points = list(self._points.items())

        results = []
        for point_id, point in points:
            if not self._matches_filters(point["payload"], filters):
                continue

            score = self._cosine_similarity(query_embedding, point["vector"])
            results.append(VectorHit(id=point_id, score=score))

        # Sort by score (highest first) and limit to top_k
        results.sort(key=lambda hit: hit.score, reverse=True)
        results = results[:top_k]

        logger.debug(f"{len(results)} results found in {self.name}")

        return results

    def clear(self):
        """Clear ALL points from the index."""
        with self._lock:
            count = len(self._points)
            self._points.clear()
        logger.info(f"Cleared all points from {self.name} ({count} total)")
