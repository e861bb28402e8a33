"""
Behavioural tests shared by the record store implementations.

Every test runs against the in-memory store and the SQLAlchemy store on an
in-memory SQLite database.
"""

import threading
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine

from casual_grounding.models import ConversationMessage, KnowledgeRef, MemoryRef, Scope
from casual_grounding.storage import InMemoryRecordStore, SQLAlchemyRecordStore
from tests.conftest import make_chunk, make_memory, make_source


@pytest.fixture(params=["memory", "sqlalchemy"])
def record_store(request):
    if request.param == "memory":
        return InMemoryRecordStore()
    store = SQLAlchemyRecordStore(create_engine("sqlite:///:memory:"))
    store.create_tables()
    return store


def message(conversation_id, role, content, **kwargs):
    return ConversationMessage(
        conversation_id=conversation_id, owner_id="user-1", role=role, content=content, **kwargs
    )


# Memories


def test_memory_round_trip(record_store):
    memory = make_memory("Fiscal year", "Ends in March", embedding=[0.1, 0.2], pinned=True)

    record_store.add_memory(memory)
    loaded = record_store.get_memory(memory.id)

    assert loaded.title == "Fiscal year"
    assert loaded.embedding == [0.1, 0.2]
    assert loaded.pinned is True
    assert record_store.get_memory("missing") is None


def test_update_memory(record_store):
    memory = make_memory("Fiscal year", "Ends in March", embedding=[0.1])
    record_store.add_memory(memory)

    updated = record_store.update_memory(memory.id, {"content": "Ends in June", "embedding": None})

    assert updated.content == "Ends in June"
    assert updated.embedding is None
    assert updated.updated_at >= memory.updated_at
    assert record_store.update_memory("missing", {"content": "x"}) is None


def test_visible_memories_apply_status_and_scope(record_store):
    approved = make_memory("A", "a", project_id="alpha")
    candidate = make_memory("B", "b", status="candidate")
    inactive = make_memory("C", "c", is_active=False)
    foreign = make_memory("D", "d", owner_id="user-2")
    other_project = make_memory("E", "e", project_id="beta")
    memories = [approved, candidate, inactive, foreign, other_project]
    for memory in memories:
        record_store.add_memory(memory)
    ids = [memory.id for memory in memories]

    visible = record_store.get_visible_memories(ids, Scope(owner_id="user-1"))
    assert {m.id for m in visible} == {approved.id, other_project.id}

    in_alpha = record_store.get_visible_memories(ids, Scope(owner_id="user-1", project_id="alpha"))
    assert [m.id for m in in_alpha] == [approved.id]


def test_keyword_search_memories(record_store, scope):
    now = datetime.now()
    older = make_memory("Close", "Books close on day 5", confidence=0.7, updated_at=now - timedelta(days=1))
    newer = make_memory("Close", "Books close on day 6", confidence=0.7, updated_at=now)
    pinned = make_memory("Tone", "short answers about BOOKS", confidence=0.2, pinned=True)
    rejected = make_memory("Books", "rejected books", status="rejected")
    for memory in (older, newer, pinned, rejected):
        record_store.add_memory(memory)

    found = record_store.keyword_search_memories("books", scope, limit=10)

    assert [m.id for m in found] == [pinned.id, newer.id, older.id]
    assert record_store.keyword_search_memories("books", scope, limit=1)[0].id == pinned.id
    assert record_store.keyword_search_memories("  ", scope, limit=10) == []


def test_keyword_search_treats_wildcards_literally(record_store, scope):
    record_store.add_memory(make_memory("Discount", "10% off for partners"))
    record_store.add_memory(make_memory("Other", "100 units"))

    found = record_store.keyword_search_memories("0%", scope, limit=10)

    assert [m.title for m in found] == ["Discount"]


def test_pinned_memories(record_store, scope):
    low = make_memory("A", "a", pinned=True, confidence=0.2)
    high = make_memory("B", "b", pinned=True, confidence=0.9)
    record_store.add_memory(low)
    record_store.add_memory(high)
    record_store.add_memory(make_memory("C", "c"))
    record_store.add_memory(make_memory("D", "d", pinned=True, status="candidate"))

    assert [m.id for m in record_store.get_pinned_memories(scope, 5)] == [high.id, low.id]
    assert len(record_store.get_pinned_memories(scope, 1)) == 1


def test_find_duplicate_memory(record_store):
    existing = make_memory("Fiscal year end", "The fiscal year ends in March", status="candidate")
    record_store.add_memory(existing)
    record_store.add_memory(make_memory("Old", "rejected thing", status="rejected"))

    assert record_store.find_duplicate_memory("user-1", "fiscal year", "unrelated").id == existing.id
    assert record_store.find_duplicate_memory("user-1", "x", "The fiscal year ends").id == existing.id
    assert record_store.find_duplicate_memory("user-1", "old", "zzz") is None
    assert record_store.find_duplicate_memory("user-2", "fiscal year", "zzz") is None


def test_reject_low_confidence_candidates(record_store, scope):
    weak = make_memory("A", "a", status="candidate", confidence=0.3)
    strong = make_memory("B", "b", status="candidate", confidence=0.8)
    approved = make_memory("C", "c", confidence=0.1)
    for memory in (weak, strong, approved):
        record_store.add_memory(memory)

    assert record_store.reject_low_confidence_candidates(scope, 0.55, "low confidence") == 1

    rejected = record_store.get_memory(weak.id)
    assert rejected.status == "rejected"
    assert rejected.rejected_reason == "low confidence"
    assert rejected.reviewed_at is not None
    assert record_store.get_memory(approved.id).status == "approved"


def test_memories_missing_embedding(record_store):
    now = datetime.now()
    newest = make_memory("A", "a", created_at=now)
    oldest = make_memory("B", "b", created_at=now - timedelta(hours=2))
    embedded = make_memory("C", "c", embedding=[0.1])
    inactive = make_memory("D", "d", is_active=False)
    for memory in (newest, oldest, embedded, inactive):
        record_store.add_memory(memory)

    assert [m.id for m in record_store.list_memories_missing_embedding(10)] == [oldest.id, newest.id]
    assert record_store.count_memories_missing_embedding() == 2
    assert record_store.count_memories_missing_embedding(Scope(owner_id="user-2")) == 0

    assert record_store.set_memory_embedding(oldest.id, [0.5]) is True
    assert record_store.set_memory_embedding("missing", [0.5]) is False
    assert record_store.count_memories_missing_embedding() == 1


# Knowledge


def test_source_round_trip_and_scope(record_store):
    source = make_source("Handbook", project_id="alpha", metadata={"pages": 3})
    record_store.add_source(source)

    assert record_store.get_source(source.id).metadata == {"pages": 3}
    assert record_store.get_source(source.id, Scope(owner_id="user-1")) is not None
    assert record_store.get_source(source.id, Scope(owner_id="user-2")) is None
    assert record_store.get_source(source.id, Scope(owner_id="user-1", project_id="beta")) is None


def test_update_source(record_store):
    source = make_source(status="pending")
    record_store.add_source(source)

    updated = record_store.update_source(
        source.id, {"status": "ready", "version": 2, "metadata": {"chunks_count": 4}}
    )

    assert updated.status == "ready"
    assert updated.version == 2
    assert record_store.get_source(source.id).metadata == {"chunks_count": 4}


def test_chunks_lifecycle(record_store):
    source = make_source()
    record_store.add_source(source)
    for i in (2, 0, 1):
        record_store.add_chunk(make_chunk(source, f"part {i}", index=i, metadata={"i": i}))

    chunks = record_store.get_chunks(source.id)
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert chunks[1].metadata == {"i": 1}

    assert record_store.delete_chunks(source.id) == 3
    assert record_store.get_chunks(source.id) == []


def test_add_chunk_requires_source(record_store):
    orphan = make_chunk(make_source(), "orphan")

    with pytest.raises(KeyError):
        record_store.add_chunk(orphan)


def test_visible_chunks_only_from_ready_sources_in_scope(record_store, scope):
    ready = make_source("Ready")
    processing = make_source("Processing", status="processing")
    foreign = make_source("Foreign", owner_id="user-2")
    chunks = []
    for source in (ready, processing, foreign):
        record_store.add_source(source)
        chunk = make_chunk(source, "deploy steps")
        record_store.add_chunk(chunk)
        chunks.append(chunk)

    visible = record_store.get_visible_chunks([c.id for c in chunks], scope)
    assert [(chunk.id, source.id) for chunk, source in visible] == [(chunks[0].id, ready.id)]

    found = record_store.keyword_search_chunks("DEPLOY", scope, limit=10)
    assert [chunk.id for chunk, _ in found] == [chunks[0].id]


def test_chunks_missing_embedding(record_store, scope):
    source = make_source()
    record_store.add_source(source)
    missing = make_chunk(source, "one")
    record_store.add_chunk(missing)
    record_store.add_chunk(make_chunk(source, "two", index=1, embedding=[0.3]))

    assert [c.id for c in record_store.list_chunks_missing_embedding(10, scope)] == [missing.id]
    assert record_store.count_chunks_missing_embedding() == 1
    assert record_store.set_chunk_embedding(missing.id, [0.1]) is True
    assert record_store.count_chunks_missing_embedding(scope) == 0


# Conversations and provenance


def test_recent_messages_oldest_first(record_store):
    for i in range(5):
        record_store.add_message(message("conv-1", "user" if i % 2 == 0 else "assistant", f"m{i}"))
    record_store.add_message(message("conv-2", "user", "other"))

    recent = record_store.get_recent_messages("conv-1", 3)

    assert [m.content for m in recent] == ["m2", "m3", "m4"]
    assert record_store.get_recent_messages("conv-1", 0) == []


def test_message_round_trip(record_store):
    stored = message("conv-1", "assistant", "answer", metadata={"citation_mode": "explicit"})
    record_store.add_message(stored)

    loaded = record_store.get_message(stored.id)

    assert loaded.metadata == {"citation_mode": "explicit"}
    assert record_store.get_message("missing") is None


def test_provenance_links(record_store):
    answer = message("conv-1", "assistant", "answer")
    record_store.add_message(answer)

    record_store.add_memory_refs(
        [MemoryRef(conversation_id="conv-1", assistant_message_id=answer.id, memory_id="m1", score=0.9)]
    )
    record_store.add_knowledge_refs(
        [
            KnowledgeRef(
                conversation_id="conv-1",
                assistant_message_id=answer.id,
                chunk_id="c1",
                source_id="s1",
                source_version=1,
            )
        ]
    )

    assert [r.memory_id for r in record_store.get_memory_refs(answer.id)] == ["m1"]
    assert record_store.get_knowledge_refs(answer.id)[0].source_version == 1


def test_cited_source_versions_use_latest_citation(record_store):
    first = message("conv-1", "assistant", "first")
    second = message("conv-1", "assistant", "second")
    record_store.add_message(first)
    record_store.add_message(second)
    now = datetime.now()

    def ref(answer, version, created_at):
        return KnowledgeRef(
            conversation_id="conv-1",
            assistant_message_id=answer.id,
            chunk_id=f"c{version}",
            source_id="s1",
            source_version=version,
            created_at=created_at,
        )

    record_store.add_knowledge_refs([ref(first, 1, now - timedelta(minutes=5))])
    record_store.add_knowledge_refs([ref(second, 2, now)])

    assert record_store.get_cited_source_versions("conv-1", ["s1", "s2"]) == {"s1": 2}
    assert record_store.get_cited_source_versions("conv-2", ["s1"]) == {}


def test_list_embedded_rows(record_store):
    embedded = make_memory("Books", "close", embedding=[1.0, 0.0])
    record_store.add_memory(embedded)
    record_store.add_memory(make_memory("Travel", "book early"))
    record_store.add_memory(make_memory("Old", "gone", embedding=[0.0, 1.0], is_active=False))
    source = make_source("Handbook", status="pending")
    record_store.add_source(source)
    chunk = make_chunk(source, "Books close on day five", embedding=[1.0, 0.0])
    record_store.add_chunk(chunk)
    record_store.add_chunk(make_chunk(source, "Unembedded", index=1))

    assert [m.id for m in record_store.list_embedded_memories()] == [embedded.id]
    pairs = record_store.list_embedded_chunks()
    assert [(c.id, s.id) for c, s in pairs] == [(chunk.id, source.id)]
    assert pairs[0][0].embedding == [1.0, 0.0]


def test_in_memory_store_tolerates_concurrent_writers():
    store = InMemoryRecordStore()
    source = make_source("Handbook")
    store.add_source(source)
    scope = Scope(owner_id="user-1")
    errors = []

    def write():
        for i in range(500):
            store.add_chunk(make_chunk(source, f"books chunk {i}", index=i))

    writer = threading.Thread(target=write)
    writer.start()
    try:
        while writer.is_alive():
            store.keyword_search_chunks("books", scope, 1000)
            store.count_chunks_missing_embedding()
    except RuntimeError as e:
        errors.append(str(e))
    writer.join()

    assert errors == []
    assert len(store.get_chunks(source.id)) == 500
