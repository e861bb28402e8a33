"""Tests for the embedding indexer."""

from unittest.mock import Mock

import pytest

from casual_grounding.embeddings import EmbeddingIndexer
from tests.conftest import KeywordEmbedding, make_chunk, make_memory, make_source


@pytest.fixture
def indexer(store, embedding, memory_index, chunk_index):
    return EmbeddingIndexer(embedding, store, store, memory_index, chunk_index)


@pytest.mark.asyncio
async def test_index_memory_writes_store_and_index(indexer, store, memory_index, embedding):
    memory = make_memory("Books", "close the books", project_id="alpha")
    store.add_memory(memory)

    assert await indexer.index_memory(memory) is True

    assert store.get_memory(memory.id).embedding == [1.0, 0.0, 0.0, 0.0, 0.1]
    assert embedding.calls == ["Books\n\nclose the books"]
    hits = memory_index.search([1.0, 0.0, 0.0, 0.0, 0.1], 5, {"project_id": "alpha"})
    assert [hit.id for hit in hits] == [memory.id]


@pytest.mark.asyncio
async def test_index_memory_failure_leaves_memory_unembedded(store, memory_index):
    indexer = EmbeddingIndexer(KeywordEmbedding(fail=True), store, store, memory_index)
    memory = make_memory("Books", "close the books")
    store.add_memory(memory)

    assert await indexer.index_memory(memory) is False

    assert store.get_memory(memory.id).embedding is None
    assert len(memory_index) == 0


@pytest.mark.asyncio
async def test_index_failure_does_not_store_embedding(store, embedding):
    broken_index = Mock()
    broken_index.upsert = Mock(side_effect=ConnectionError("index down"))
    indexer = EmbeddingIndexer(embedding, store, store, memory_index=broken_index)
    memory = make_memory("Books", "close the books")
    store.add_memory(memory)

    assert await indexer.index_memory(memory) is False
    assert store.get_memory(memory.id).embedding is None


@pytest.mark.asyncio
async def test_index_chunk_payload_carries_source(indexer, store, chunk_index):
    source = make_source()
    store.add_source(source)
    chunk = make_chunk(source, "deploy checklist")
    store.add_chunk(chunk)

    assert await indexer.index_chunk(chunk, source) is True

    assert store.get_chunks(source.id)[0].embedding is not None
    assert chunk_index.search([0, 0, 0, 1.0, 0.1], 5, {"source_id": source.id})[0].id == chunk.id


@pytest.mark.asyncio
async def test_remove_source_chunks(indexer, store, chunk_index):
    source = make_source()
    store.add_source(source)
    for i in range(3):
        chunk = make_chunk(source, f"deploy step {i}", index=i)
        store.add_chunk(chunk)
        await indexer.index_chunk(chunk, source)

    assert await indexer.remove_source_chunks(source.id) == 3
    assert len(chunk_index) == 0


@pytest.mark.asyncio
async def test_remove_without_index_is_a_no_op(store, embedding):
    indexer = EmbeddingIndexer(embedding, store, store)

    assert await indexer.remove_memory("m1") == 0
    assert await indexer.remove_source_chunks("s1") == 0


def test_restore_indexes_from_stored_embeddings(store, embedding, memory_index, chunk_index):
    memory = make_memory("Coffee", "beans", embedding=[0.0, 0.0, 1.0, 0.0, 0.1], project_id="alpha")
    store.add_memory(memory)
    store.add_memory(make_memory("Travel", "unembedded"))
    source = make_source("Handbook")
    store.add_source(source)
    chunk = make_chunk(source, "Books close", embedding=[1.0, 0.0, 0.0, 0.0, 0.1])
    store.add_chunk(chunk)
    indexer = EmbeddingIndexer(embedding, store, store, memory_index, chunk_index)

    assert indexer.restore_indexes() == (1, 1)

    assert embedding.calls == []
    hits = memory_index.search([0.0, 0.0, 1.0, 0.0, 0.1], 5, {"project_id": "alpha"})
    assert [hit.id for hit in hits] == [memory.id]
    hits = chunk_index.search([1.0, 0.0, 0.0, 0.0, 0.1], 5, {"source_id": source.id})
    assert [hit.id for hit in hits] == [chunk.id]
