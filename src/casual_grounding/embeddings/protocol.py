"""
Text embedding protocol for casual-grounding.

Provides a unified interface for embedding memories, knowledge chunks and
queries into dense vectors for similarity search.
"""

from typing import List, Protocol

from typing_extensions import runtime_checkable


@runtime_checkable
class TextEmbedding(Protocol):
    """
    Protocol for text embedding providers.

    All implementations must:

    1. Return vectors of exactly ``dimension`` elements, or raise
    2. Never substitute a placeholder (e.g. zero) vector on failure
    3. Raise ``EmbeddingError`` for provider errors, timeouts and
       dimension mismatches, so callers can degrade to keyword search

    Example:
        >>> embedder = OpenAIEmbedding(dimensions=1536)
        >>> vector = await embedder.embed_document("Quarterly close checklist")
        >>> len(vector) == embedder.dimension
        True
    """

    @property
    def dimension(self) -> int:
        """
        Vector dimension produced by this embedder.

        All vectors in one vector index share this dimension; it is checked
        against every provider response.
        """
        ...

    @property
    def model_name(self) -> str:
        """Identifier of the embedding model."""
        ...

    async def embed_document(self, text: str) -> List[float]:
        """
        Generate embedding for content to be stored (memory or chunk).

        Args:
            text: Document text to embed

        Returns:
            Embedding vector of length ``dimension``

        Raises:
            ValueError: If text is empty
            EmbeddingError: If the provider fails or the dimension is wrong
        """
        ...

    async def embed_query(self, text: str) -> List[float]:
        """
        Generate embedding for a search query.

        Args:
            text: Query text to embed

        Returns:
            Embedding vector of length ``dimension``

        Raises:
            ValueError: If text is empty
            EmbeddingError: If the provider fails or the dimension is wrong
        """
        ...
