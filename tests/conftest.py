"""Shared fakes and fixtures."""

from typing import List, Optional

import pytest

from casual_grounding.errors import EmbeddingError, GenerationError
from casual_grounding.models import KnowledgeChunk, KnowledgeSource, Memory, Scope
from casual_grounding.storage.records.memory import InMemoryRecordStore
from casual_grounding.storage.vector.memory import InMemoryVectorIndex

VOCABULARY = ["books", "travel", "coffee", "deploy"]


class KeywordEmbedding:
    """
    Deterministic embedder: one dimension per vocabulary word plus a bias.

    Texts sharing vocabulary words end up close together, which is enough to
    exercise ranking without a provider.
    """

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[str] = []

    @property
    def dimension(self) -> int:
        return len(VOCABULARY) + 1

    @property
    def model_name(self) -> str:
        return "keyword-test"

    def _vector(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingError("provider down")
        if not text.strip():
            raise ValueError("Cannot embed empty text")
        lowered = text.lower()
        return [1.0 if word in lowered else 0.0 for word in VOCABULARY] + [0.1]

    async def embed_document(self, text: str) -> List[float]:
        return self._vector(text)

    async def embed_query(self, text: str) -> List[float]:
        return self._vector(text)


class ScriptedGenerator:
    """Yields a fixed list of pieces, optionally failing after some of them."""

    def __init__(self, pieces: List[str], fail_after: Optional[int] = None):
        self.pieces = pieces
        self.fail_after = fail_after
        self.requests = []
        self.closed = False

    @property
    def model_name(self) -> str:
        return "scripted"

    async def stream(self, request):
        self.requests.append(request)
        try:
            for index, piece in enumerate(self.pieces):
                if self.fail_after is not None and index >= self.fail_after:
                    raise GenerationError("provider dropped the stream")
                yield piece
        finally:
            self.closed = True


@pytest.fixture
def scope():
    return Scope(owner_id="user-1")


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def embedding():
    return KeywordEmbedding()


@pytest.fixture
def memory_index():
    return InMemoryVectorIndex("memories")


@pytest.fixture
def chunk_index():
    return InMemoryVectorIndex("knowledge_chunks")


def make_memory(title: str, content: str, owner_id: str = "user-1", **kwargs) -> Memory:
    """An approved, active memory unless overridden."""
    kwargs.setdefault("status", "approved")
    return Memory(owner_id=owner_id, title=title, content=content, **kwargs)


def make_source(name: str = "Handbook", owner_id: str = "user-1", **kwargs) -> KnowledgeSource:
    kwargs.setdefault("status", "ready")
    kwargs.setdefault("type", "doc-export")
    kwargs.setdefault("locator", "doc-123")
    return KnowledgeSource(owner_id=owner_id, name=name, **kwargs)


def make_chunk(source: KnowledgeSource, content: str, index: int = 0, **kwargs) -> KnowledgeChunk:
    return KnowledgeChunk(source_id=source.id, chunk_index=index, content=content, **kwargs)
