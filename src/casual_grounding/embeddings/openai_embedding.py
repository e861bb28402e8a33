"""OpenAI embedding adapter for casual-grounding."""

import asyncio
import logging
import os
from typing import List, Optional

from openai import AsyncOpenAI, OpenAIError

from casual_grounding.errors import EmbeddingError

logger = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbedding:
    """
    Embedding adapter using OpenAI's embedding API.

    One request per text. Every response is checked against the configured
    dimension; a mismatch is reported as ``EmbeddingError`` rather than
    stored, because vectors of a different size cannot share an index.

    Also compatible with OpenAI-compatible APIs (Azure, OpenRouter, etc.)

    Example:
        >>> embedder = OpenAIEmbedding(model="text-embedding-3-small")
        >>> vector = await embedder.embed_query("How do we close the books?")
        >>> len(vector)
        1536
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize OpenAI embedder.

        Args:
            model: OpenAI model name (default: text-embedding-3-small)
            api_key: OpenAI API key (None = use OPENAI_API_KEY env var)
            base_url: Custom endpoint (None = official OpenAI)
            dimensions: Expected output dimension; required for unknown models
            timeout: Per-request timeout in seconds
            max_retries: Number of SDK-level retry attempts
            client: Pre-built client (tests, shared connection pools)
        """
        if dimensions is None:
            if model not in DEFAULT_DIMENSIONS:
                raise ValueError(f"Unknown embedding model {model}; pass dimensions explicitly")
            dimensions = DEFAULT_DIMENSIONS[model]

        self._model = model
        self._dimension = dimensions
        # Only the 3rd generation models accept a custom output size.
        self._send_dimensions = model.startswith("text-embedding-3")
        self._timeout = timeout
        self._client = client or AsyncOpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

        logger.info(f"OpenAI embedder initialized: {model} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        """Vector dimension produced by this model."""
        return self._dimension

    @property
    def model_name(self) -> str:
        """Identifier of the OpenAI model."""
        return self._model

    async def _embed_single(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        kwargs = {"model": self._model, "input": text}
        if self._send_dimensions:
            kwargs["dimensions"] = self._dimension

        try:
            response = await asyncio.wait_for(
                self._client.embeddings.create(**kwargs), timeout=self._timeout
            )
        except asyncio.TimeoutError as e:
            raise EmbeddingError(f"Embedding request timed out after {self._timeout}s") from e
        except OpenAIError as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        if not response.data:
            raise EmbeddingError("Embedding response contained no data")

        vector = list(response.data[0].embedding)
        if len(vector) != self._dimension:
            raise EmbeddingError(
                f"Embedding dimension mismatch: expected {self._dimension}, got {len(vector)}"
            )
        return vector

    async def embed_document(self, text: str) -> List[float]:
        """
        Generate embedding for a memory or chunk.

        OpenAI models don't distinguish documents from queries, so this is
        identical to embed_query().
        """
        return await self._embed_single(text)

    async def embed_query(self, text: str) -> List[float]:
        """Generate embedding for a search query."""
        return await self._embed_single(text)
