"""Tests for grounded chat turns."""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from casual_grounding.chat_service import ChatService, DeltaEvent, ErrorEvent, FinalEvent
from casual_grounding.embeddings import EmbeddingIndexer
from casual_grounding.errors import RetrievalError, TurnError
from casual_grounding.memory_service import MemoryService
from casual_grounding.models import KnowledgeRef, MemoryCandidate
from casual_grounding.retrieval import Retriever
from casual_grounding.tasks import BackgroundTaskQueue
from tests.conftest import ScriptedGenerator, make_chunk, make_memory, make_source


def footer(memory_ids=(), chunk_ids=()):
    return json.dumps({"memory_ids": list(memory_ids), "knowledge_chunk_ids": list(chunk_ids)})


@pytest.fixture
def grounded(store):
    """A memory and a ready source chunk that both match "books"."""
    memory = make_memory("Close", "We close the books on day five", confidence=0.9)
    store.add_memory(memory)
    source = make_source("Close Handbook", version=1)
    store.add_source(source)
    chunk = make_chunk(source, "Books close after bank reconciliation.")
    store.add_chunk(chunk)
    return memory, source, chunk


def make_service(store, generator, **kwargs):
    return ChatService(store, store, Retriever(store, store), generator, **kwargs)


@pytest.mark.asyncio
async def test_send_turn_records_answer_and_provenance(store, scope, grounded):
    memory, source, chunk = grounded
    generator = ScriptedGenerator(["We close the ", "books on day five.\n\n", footer([memory.id])])
    service = make_service(store, generator)

    result = await service.send_turn(scope, "conv-1", "books")

    assert result.text == "We close the books on day five."
    assert result.memory_ids == [memory.id]
    assert result.chunk_ids == [chunk.id]
    assert result.citation_mode == {"memory": "explicit", "knowledge": "fallback"}
    assert result.provenance_recorded is True

    answer = store.get_message(result.assistant_message_id)
    assert answer.role == "assistant"
    assert answer.content == result.text
    assert answer.metadata["model"] == "scripted"
    assert answer.metadata["memory_ids"] == [memory.id]
    assert answer.metadata["retrieval_tiers"] == {"memory": "keyword", "knowledge": "keyword"}

    assert [r.memory_id for r in store.get_memory_refs(answer.id)] == [memory.id]
    knowledge_refs = store.get_knowledge_refs(answer.id)
    assert [(r.chunk_id, r.source_id, r.source_version) for r in knowledge_refs] == [
        (chunk.id, source.id, 1)
    ]


@pytest.mark.asyncio
async def test_context_and_history_reach_the_generator(store, scope, grounded):
    memory, _, chunk = grounded
    generator = ScriptedGenerator(["ok"])
    service = make_service(store, generator, history_limit=2)

    await service.send_turn(scope, "conv-1", "books")
    await service.send_turn(scope, "conv-1", "Books")

    request = generator.requests[-1]
    assert request.user_text == "Books"
    assert [m.content for m in request.history] == ["books", "ok"]
    assert memory.id in request.context
    assert chunk.id in request.context
    assert request.context.startswith("[CONTEXT]")


@pytest.mark.asyncio
async def test_answer_without_footer_links_everything(store, scope, grounded):
    memory, _, chunk = grounded
    service = make_service(store, ScriptedGenerator(["No footer here."]))

    result = await service.send_turn(scope, "conv-1", "books")

    assert result.text == "No footer here."
    assert result.memory_ids == [memory.id]
    assert result.chunk_ids == [chunk.id]
    assert result.citation_mode == {"memory": "fallback", "knowledge": "fallback"}


@pytest.mark.asyncio
async def test_turn_without_matches_uses_none_sections(store, scope):
    generator = ScriptedGenerator(["I do not know."])
    service = make_service(store, generator)

    result = await service.send_turn(scope, "conv-1", "What is the airspeed of a swallow?")

    assert result.memory_ids == []
    assert result.chunk_ids == []
    assert "- (none)" in generator.requests[0].context


@pytest.mark.asyncio
async def test_stream_turn_yields_deltas_then_final(store, scope, grounded):
    memory, _, _ = grounded
    service = make_service(store, ScriptedGenerator(["A", "B", "\n" + footer([memory.id])]))

    events = [event async for event in service.stream_turn(scope, "conv-1", "books")]

    assert [e.text for e in events if isinstance(e, DeltaEvent)][:2] == ["A", "B"]
    assert isinstance(events[-1], FinalEvent)
    assert events[-1].result.text == "AB"


@pytest.mark.asyncio
async def test_generation_failure_keeps_user_message(store, scope, grounded):
    service = make_service(store, ScriptedGenerator(["partial ", "answer"], fail_after=1))

    events = [event async for event in service.stream_turn(scope, "conv-1", "books")]

    assert isinstance(events[-1], ErrorEvent)
    assert "language model failed" in events[-1].message
    messages = store.get_recent_messages("conv-1", 10)
    assert [m.role for m in messages] == ["user"]


@pytest.mark.asyncio
async def test_send_turn_raises_turn_error(store, scope):
    service = make_service(store, ScriptedGenerator([]))

    with pytest.raises(TurnError, match="empty answer"):
        await service.send_turn(scope, "conv-1", "hello")

    assert len(store.get_recent_messages("conv-1", 10)) == 1


@pytest.mark.asyncio
async def test_retrieval_failure_is_a_turn_error(store, scope):
    retriever = Mock()
    retriever.retrieve = AsyncMock(side_effect=RetrievalError("db down"))
    service = ChatService(store, store, retriever, ScriptedGenerator(["x"]))

    events = [event async for event in service.stream_turn(scope, "conv-1", "books")]

    assert len(events) == 1
    assert isinstance(events[0], ErrorEvent)


def test_empty_input_is_rejected_immediately(store, scope):
    service = make_service(store, ScriptedGenerator(["x"]))

    with pytest.raises(ValueError):
        service.stream_turn(scope, "conv-1", "   ")
    with pytest.raises(ValueError):
        service.stream_turn(scope, "", "hello")
    assert store.get_recent_messages("conv-1", 10) == []


@pytest.mark.asyncio
async def test_closing_the_stream_stores_no_answer(store, scope, grounded):
    generator = ScriptedGenerator(["one ", "two ", "three"])
    service = make_service(store, generator)

    events = service.stream_turn(scope, "conv-1", "books")
    first = await events.__anext__()
    await events.aclose()

    assert isinstance(first, DeltaEvent)
    assert generator.closed is True
    assert [m.role for m in store.get_recent_messages("conv-1", 10)] == ["user"]


@pytest.mark.asyncio
async def test_provenance_failure_does_not_fail_the_turn(store, scope, grounded):
    broken = Mock()
    broken.get_cited_source_versions = Mock(return_value={})
    broken.add_memory_refs = Mock(side_effect=RuntimeError("disk full"))
    service = ChatService(store, broken, Retriever(store, store), ScriptedGenerator(["Answer."]))

    result = await service.send_turn(scope, "conv-1", "books")

    assert result.text == "Answer."
    assert result.provenance_recorded is False
    assert store.get_message(result.assistant_message_id) is not None


@pytest.mark.asyncio
async def test_knowledge_update_notice(store, scope, grounded):
    _, source, chunk = grounded
    generator = ScriptedGenerator(["Answer."])
    service = make_service(store, generator)
    first = await service.send_turn(scope, "conv-1", "books")
    store.update_source(source.id, {"version": 2})

    await service.send_turn(scope, "conv-1", "books")

    assert store.get_knowledge_refs(first.assistant_message_id)[0].source_version == 1
    assert "NOTICE:" not in generator.requests[0].context
    assert '"Close Handbook" updated v1 -> v2' in generator.requests[1].context


@pytest.mark.asyncio
async def test_memory_extraction_is_queued(store, scope, grounded, embedding):
    extractor = Mock()
    extractor.extract = AsyncMock(
        return_value=[
            MemoryCandidate(type="procedure", title="Reconcile", content="Reconcile first", confidence=0.7)
        ]
    )
    memories = MemoryService(store, EmbeddingIndexer(embedding, store, store), extractor=extractor)
    tasks = BackgroundTaskQueue(retry_delay=0)
    service = make_service(
        store, ScriptedGenerator(["Reconcile first."]), memory_service=memories, task_queue=tasks
    )

    result = await service.send_turn(scope, "conv-1", "books")
    await tasks.join()

    assert result.extraction_task.status == "succeeded"
    extractor.extract.assert_awaited_once_with("books", "Reconcile first.")
    created = store.find_duplicate_memory("user-1", "Reconcile", "Reconcile first")
    assert created.status == "candidate"
    assert created.source_message_id == result.assistant_message_id
