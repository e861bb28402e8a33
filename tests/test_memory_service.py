"""
Unit tests for MemoryService.

Uses the in-memory record store and vector index with a deterministic
embedder, so every lifecycle step can be checked end to end.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from casual_grounding.embeddings import EmbeddingIndexer
from casual_grounding.memory_service import MemoryService
from casual_grounding.models import MemoryCandidate, Scope
from tests.conftest import KeywordEmbedding, make_memory


@pytest.fixture
def indexer(store, embedding, memory_index):
    return EmbeddingIndexer(embedding, store, store, memory_index=memory_index)


@pytest.fixture
def memory_service(store, indexer):
    return MemoryService(store, indexer)


@pytest.mark.asyncio
async def test_create_stores_embedded_candidate(memory_service, store, memory_index, scope):
    result = await memory_service.create(
        scope, "procedure", "  Close ", " Close the books on day five ", confidence=0.7
    )

    assert result.embedding_success is True
    memory = store.get_memory(result.memory.id)
    assert memory.status == "candidate"
    assert memory.title == "Close"
    assert memory.content == "Close the books on day five"
    assert memory.embedding is not None
    assert len(memory_index) == 1


@pytest.mark.asyncio
async def test_create_survives_embedding_failure(store, scope):
    indexer = EmbeddingIndexer(KeywordEmbedding(fail=True), store, store)
    service = MemoryService(store, indexer)

    result = await service.create(scope, "fact", "Fiscal year", "Ends in March")

    assert result.embedding_success is False
    assert store.get_memory(result.memory.id) is not None
    assert service.missing_embedding_count() == 1


@pytest.mark.asyncio
async def test_content_change_reembeds(memory_service, store, memory_index, embedding, scope):
    created = await memory_service.create(scope, "fact", "Books", "Close the books")

    result = await memory_service.update(created.memory.id, content="Book travel with the portal")

    assert result.embedding_success is True
    assert result.memory.embedding == [1.0, 1.0, 0.0, 0.0, 0.1]
    assert embedding.calls[-1] == "Books\n\nBook travel with the portal"
    assert len(memory_index) == 1


@pytest.mark.asyncio
async def test_non_content_change_does_not_reembed(memory_service, embedding, scope):
    created = await memory_service.create(scope, "fact", "Books", "Close the books")
    calls_before = len(embedding.calls)

    result = await memory_service.update(created.memory.id, confidence=0.9, pinned=True)

    assert result.memory.pinned is True
    assert result.memory.embedding is not None
    assert len(embedding.calls) == calls_before


@pytest.mark.asyncio
async def test_failed_reembed_clears_stale_embedding(store, memory_index, scope):
    embedding = KeywordEmbedding()
    service = MemoryService(store, EmbeddingIndexer(embedding, store, store, memory_index))
    created = await service.create(scope, "fact", "Books", "Close the books")
    embedding.fail = True

    result = await service.update(created.memory.id, content="Something new")

    assert result.embedding_success is False
    assert store.get_memory(created.memory.id).embedding is None
    assert len(memory_index) == 0


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields(memory_service, scope):
    created = await memory_service.create(scope, "fact", "Books", "Close the books")

    with pytest.raises(ValueError):
        await memory_service.update(created.memory.id, owner_id="someone-else")


@pytest.mark.asyncio
async def test_update_missing_memory(memory_service):
    assert await memory_service.update("missing", content="x") is None


@pytest.mark.asyncio
async def test_approve_makes_memory_retrievable(memory_service, store, scope):
    created = await memory_service.create(scope, "fact", "Books", "Close the books")

    result = await memory_service.approve(created.memory.id, title="Books close")

    memory = store.get_memory(created.memory.id)
    assert memory.status == "approved"
    assert memory.reviewed_at is not None
    assert memory.title == "Books close"
    assert memory.is_retrievable
    assert result.embedding_success is True


@pytest.mark.asyncio
async def test_reject(memory_service, store, scope):
    created = await memory_service.create(scope, "fact", "Books", "Close the books")

    rejected = await memory_service.reject(created.memory.id, reason="wrong")

    assert rejected.status == "rejected"
    assert rejected.rejected_reason == "wrong"
    assert not store.get_memory(created.memory.id).is_retrievable


@pytest.mark.asyncio
async def test_bulk_reject_low_confidence(memory_service, store, scope):
    weak = await memory_service.create(scope, "fact", "Weak", "maybe", confidence=0.3)
    strong = await memory_service.create(scope, "fact", "Strong", "surely", confidence=0.9)

    assert await memory_service.bulk_reject_low_confidence(scope) == 1

    assert store.get_memory(weak.memory.id).status == "rejected"
    assert store.get_memory(strong.memory.id).status == "candidate"


@pytest.mark.asyncio
async def test_regenerate_embedding(store, memory_index, scope):
    memory = make_memory("Books", "Close the books")
    store.add_memory(memory)
    service = MemoryService(store, EmbeddingIndexer(KeywordEmbedding(), store, store, memory_index))

    assert await service.regenerate_embedding(memory.id) is True
    assert await service.regenerate_embedding("missing") is False
    assert store.get_memory(memory.id).embedding is not None


@pytest.mark.asyncio
async def test_save_candidates_skips_duplicates(memory_service, store, scope):
    store.add_memory(make_memory("Fiscal year", "The fiscal year ends in March"))
    candidates = [
        MemoryCandidate(type="fact", title="Fiscal year", content="FY ends March", confidence=0.8),
        MemoryCandidate(type="preference", title="Reports", content="Send CSV", confidence=0.6),
    ]

    saved = await memory_service.save_candidates(scope, candidates, source_message_id="msg-1")

    assert [memory.title for memory in saved] == ["Reports"]
    assert saved[0].source_message_id == "msg-1"
    assert saved[0].status == "candidate"


@pytest.mark.asyncio
async def test_extract_candidates_uses_extractor(store, indexer):
    extractor = Mock()
    extractor.extract = AsyncMock(
        return_value=[
            MemoryCandidate(type="goal", title="Q3 goal", content="Ship billing", confidence=0.7)
        ]
    )
    service = MemoryService(store, indexer, extractor=extractor)
    scope = Scope(owner_id="user-1", project_id="billing")

    saved = await service.extract_candidates(scope, "Our Q3 goal is billing", "Got it.")

    assert len(saved) == 1
    assert saved[0].project_id == "billing"
    extractor.extract.assert_awaited_once_with("Our Q3 goal is billing", "Got it.")


@pytest.mark.asyncio
async def test_extract_candidates_without_extractor(memory_service, scope):
    assert await memory_service.extract_candidates(scope, "u", "a") == []
