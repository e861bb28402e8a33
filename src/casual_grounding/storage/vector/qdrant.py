import logging
from typing import List, Optional

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from casual_grounding.storage.vector.models import VectorHit

logger = logging.getLogger(__name__)


class QdrantVectorIndex:
    def __init__(
        self,
        collection_name: str,
        dimension: int,
        host: str = "localhost",
        port: int = 6333,
        client: Optional[QdrantClient] = None,
    ):
        """
        Initialize a Qdrant-backed vector index.

        One index holds one fragment kind (memories or knowledge chunks).

        Args:
            collection_name: Collection name (e.g. "memories", "knowledge_chunks")
            dimension: Embedding dimension of every point in the collection
            host: Qdrant host (default: localhost)
            port: Qdrant port (default: 6333)
            client: Pre-built client (e.g. QdrantClient(":memory:") in tests)
        """
        self.client = client or QdrantClient(host=host, port=port)
        self.collection_name = collection_name
        self.dimension = dimension
        self._init_collection()

    def _init_collection(self):
        if not self.client.collection_exists(self.collection_name):
            self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(size=self.dimension, distance=Distance.COSINE),
            )
            logger.info(
                f"Created Qdrant collection {self.collection_name} (size={self.dimension})"
            )

    def _build_filter(self, filters: Optional[dict]) -> Optional[Filter]:
        if not filters:
            return None

        conditions = [
            FieldCondition(key=key, match=MatchValue(value=value))
            for key, value in filters.items()
            if value is not None
        ]
        return Filter(must=conditions) if conditions else None

    def upsert(self, point_id: str, vector: List[float], payload: dict) -> None:
        """
        Insert or replace a point.

        Args:
            point_id: Memory or chunk ID (a UUID string)
            vector: The embedding vector
            payload: Filterable attributes (owner_id, project_id, source_id)
        """
        self.client.upsert(
            collection_name=self.collection_name,
            points=[PointStruct(id=point_id, vector=vector, payload=payload)],
        )
        logger.debug(f"Upserted point {point_id} into {self.collection_name}")

    def delete(self, point_ids: List[str]) -> int:
        if not point_ids:
            return 0

        self.client.delete(
            collection_name=self.collection_name,
            points_selector=PointIdsList(points=list(point_ids)),
        )
        return len(point_ids)

    def delete_by_filter(self, filters: dict) -> int:
        """
        Delete every point matching the payload filters.

        Returns:
            Number of points deleted
        """
        qdrant_filter = self._build_filter(filters)
        if qdrant_filter is None:
            raise ValueError("Refusing to delete with an empty filter")

        count = self.client.count(
            collection_name=self.collection_name, count_filter=qdrant_filter, exact=True
        ).count
        if count > 0:
            self.client.delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(filter=qdrant_filter),
            )
        logger.info(f"Deleted {count} points from {self.collection_name} (filters={filters})")
        return count

    def search(
        self,
        query_embedding: List[float],
        top_k: int,
        filters: Optional[dict] = None,
    ) -> List[VectorHit]:
        response = self.client.query_points(
            collection_name=self.collection_name,
            query=query_embedding,
            query_filter=self._build_filter(filters),
            limit=top_k,
            with_payload=False,
            with_vectors=False,
        )

        hits = [VectorHit(id=str(point.id), score=point.score) for point in response.points]
        logger.debug(f"{len(hits)} hits found in {self.collection_name}")
        return hits
