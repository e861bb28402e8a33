"""
Text embedding abstractions for casual-grounding.

Provides a protocol-based embedding interface with an OpenAI adapter, and the
indexer that writes embeddings to the record store and the vector index.
"""

from casual_grounding.embeddings.indexer import EmbeddingIndexer
from casual_grounding.embeddings.openai_embedding import OpenAIEmbedding
from casual_grounding.embeddings.protocol import TextEmbedding

__all__ = [
    "TextEmbedding",
    "OpenAIEmbedding",
    "EmbeddingIndexer",
]
