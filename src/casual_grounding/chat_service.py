"""
Grounded chat turns.

One turn: record the user message, retrieve fragments, assemble the grounding
context, generate (streaming deltas to the caller while accumulating), split
off the citation footer, store the assistant message, link its provenance,
then queue memory-candidate extraction in the background.
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Union

from casual_grounding.citations.extractor import extract_citations
from casual_grounding.context.assembler import (
    KnowledgeUpdate,
    assemble_context,
    find_knowledge_updates,
)
from casual_grounding.errors import GenerationError, ProvenanceError, RetrievalError, TurnError
from casual_grounding.generation.protocol import GenerationRequest, Generator
from casual_grounding.memory_service import MemoryService
from casual_grounding.models import ConversationMessage, Scope
from casual_grounding.provenance.recorder import ProvenanceRecorder, select_cited_fragments
from casual_grounding.retrieval.models import ChunkFragment, RetrievalResult
from casual_grounding.retrieval.retriever import Retriever
from casual_grounding.storage.protocols import ConversationStore, ProvenanceStore
from casual_grounding.tasks import BackgroundTaskQueue, TaskRecord

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """
    Outcome of one grounded turn.

    Attributes:
        conversation_id: The conversation
        user_message_id: The recorded user message
        assistant_message_id: The recorded assistant message
        text: Visible answer (citation footer removed)
        memory_ids: Memories linked to the answer
        chunk_ids: Knowledge chunks linked to the answer
        citation_mode: Per kind, "explicit" (cited by the model) or "fallback"
            (everything that was injected)
        retrieval: Fragments the answer was grounded in
        provenance_recorded: False if writing the links failed
        extraction_task: Background memory-candidate extraction, if queued
    """

    conversation_id: str
    user_message_id: str
    assistant_message_id: str
    text: str
    memory_ids: List[str] = field(default_factory=list)
    chunk_ids: List[str] = field(default_factory=list)
    citation_mode: Dict[str, str] = field(default_factory=dict)
    retrieval: Optional[RetrievalResult] = None
    provenance_recorded: bool = True
    extraction_task: Optional[TaskRecord] = None


@dataclass
class DeltaEvent:
    """An incremental piece of the answer."""

    text: str
    type: str = "delta"


@dataclass
class FinalEvent:
    """The turn completed; carries the final summary."""

    result: TurnResult
    type: str = "final"


@dataclass
class ErrorEvent:
    """The turn failed; the user message stays recorded, no answer was stored."""

    message: str
    type: str = "error"


TurnEvent = Union[DeltaEvent, FinalEvent, ErrorEvent]


class ChatService:
    def __init__(
        self,
        conversation_store: ConversationStore,
        provenance_store: ProvenanceStore,
        retriever: Retriever,
        generator: Generator,
        memory_service: Optional[MemoryService] = None,
        task_queue: Optional[BackgroundTaskQueue] = None,
        history_limit: int = 10,
    ):
        """
        Initialize the chat service.

        Args:
            conversation_store: Conversation messages
            provenance_store: Links between answers and fragments
            retriever: Dual-tier fragment retrieval
            generator: Streaming or single-response answer generator
            memory_service: Enables post-turn memory candidate extraction
            task_queue: Runs the extraction in the background (required for it)
            history_limit: Earlier messages sent with each turn
        """
        self.conversation_store = conversation_store
        self.provenance_store = provenance_store
        self.retriever = retriever
        self.generator = generator
        self.recorder = ProvenanceRecorder(conversation_store, provenance_store)
        self.memory_service = memory_service
        self.task_queue = task_queue
        self.history_limit = history_limit

    def _validate(self, conversation_id: str, user_text: str) -> None:
        if not conversation_id or not conversation_id.strip():
            raise ValueError("conversation_id is required")
        if not user_text or not user_text.strip():
            raise ValueError("user_text must not be empty")

    async def _load_history(
        self, conversation_id: str, exclude_id: str
    ) -> List[ConversationMessage]:
        if self.history_limit <= 0:
            return []
        recent = await asyncio.to_thread(
            self.conversation_store.get_recent_messages, conversation_id, self.history_limit + 1
        )
        history = [message for message in recent if message.id != exclude_id]
        return history[-self.history_limit :]

    async def _knowledge_updates(
        self, conversation_id: str, chunks: List[ChunkFragment]
    ) -> List[KnowledgeUpdate]:
        source_ids = list(dict.fromkeys(fragment.source.id for fragment in chunks))
        if not source_ids:
            return []
        try:
            cited_versions = await asyncio.to_thread(
                self.provenance_store.get_cited_source_versions, conversation_id, source_ids
            )
        except Exception as e:
            logger.warning(f"Could not load cited source versions: {e}")
            return []
        return find_knowledge_updates(chunks, cited_versions)

    def _queue_extraction(
        self, scope: Scope, user_text: str, answer: str, assistant_message_id: str
    ) -> Optional[TaskRecord]:
        if self.memory_service is None or self.task_queue is None or not answer:
            return None

        memory_service = self.memory_service
        return self.task_queue.submit(
            f"extract-memories:{assistant_message_id}",
            lambda: memory_service.extract_candidates(
                scope, user_text, answer, source_message_id=assistant_message_id
            ),
        )

    async def _run_turn(
        self, scope: Scope, conversation_id: str, user_text: str
    ) -> AsyncIterator[TurnEvent]:
        user_text = user_text.strip()
        user_message = ConversationMessage(
            conversation_id=conversation_id, owner_id=scope.owner_id, role="user", content=user_text
        )
        try:
            await asyncio.to_thread(self.conversation_store.add_message, user_message)
        except Exception as e:
            logger.error(f"Failed to record user message: {e}")
            raise TurnError(f"Could not record your message: {e}") from e

        try:
            history = await self._load_history(conversation_id, user_message.id)
            retrieval = await self.retriever.retrieve(user_text, scope)
        except RetrievalError as e:
            raise TurnError(f"Could not search memories and knowledge: {e}") from e
        except Exception as e:
            logger.error(f"Failed to load conversation history: {e}")
            raise TurnError(f"Could not load the conversation: {e}") from e

        updates = await self._knowledge_updates(conversation_id, retrieval.chunks)
        context = assemble_context(retrieval.memories, retrieval.chunks, updates)
        request = GenerationRequest(context=context, user_text=user_text, history=history)

        parts = []
        try:
            async with aclosing(self.generator.stream(request)) as stream:
                async for delta in stream:
                    parts.append(delta)
                    yield DeltaEvent(text=delta)
        except GenerationError as e:
            raise TurnError(f"The language model failed: {e}") from e

        full_text = "".join(parts)
        if not full_text.strip():
            raise TurnError("The language model returned an empty answer")

        citations = extract_citations(full_text)
        if not citations.found:
            logger.warning("Answer has no usable citation footer; linking all injected fragments")
        cited = select_cited_fragments(citations, retrieval)

        assistant_message = ConversationMessage(
            conversation_id=conversation_id,
            owner_id=scope.owner_id,
            role="assistant",
            content=citations.visible_text,
            metadata={
                "model": self.generator.model_name,
                "memory_ids": cited.memory_ids,
                "knowledge_chunk_ids": cited.chunk_ids,
                "citation_mode": cited.citation_mode,
                "retrieval_tiers": {
                    "memory": retrieval.memory_tier,
                    "knowledge": retrieval.knowledge_tier,
                },
            },
        )
        try:
            await asyncio.to_thread(self.conversation_store.add_message, assistant_message)
        except Exception as e:
            logger.error(f"Failed to record assistant message: {e}")
            raise TurnError(f"Could not save the answer: {e}") from e

        provenance_recorded = True
        try:
            await self.recorder.record(conversation_id, assistant_message.id, cited, retrieval)
        except ProvenanceError as e:
            logger.error(f"Provenance for {assistant_message.id} not recorded: {e}")
            provenance_recorded = False

        extraction_task = self._queue_extraction(
            scope, user_text, citations.visible_text, assistant_message.id
        )

        logger.info(
            f"Turn complete in {conversation_id}: {len(cited.memory_ids)} memories, "
            f"{len(cited.chunk_ids)} chunks cited ({cited.citation_mode})"
        )
        yield FinalEvent(
            result=TurnResult(
                conversation_id=conversation_id,
                user_message_id=user_message.id,
                assistant_message_id=assistant_message.id,
                text=citations.visible_text,
                memory_ids=cited.memory_ids,
                chunk_ids=cited.chunk_ids,
                citation_mode=cited.citation_mode,
                retrieval=retrieval,
                provenance_recorded=provenance_recorded,
                extraction_task=extraction_task,
            )
        )

    async def _stream(
        self, scope: Scope, conversation_id: str, user_text: str
    ) -> AsyncIterator[TurnEvent]:
        try:
            async with aclosing(self._run_turn(scope, conversation_id, user_text)) as events:
                async for event in events:
                    yield event
        except TurnError as e:
            logger.error(f"Turn failed in {conversation_id}: {e}")
            yield ErrorEvent(message=str(e))

    def stream_turn(
        self, scope: Scope, conversation_id: str, user_text: str
    ) -> AsyncIterator[TurnEvent]:
        """
        Run a turn, yielding DeltaEvents as the answer streams, then one
        FinalEvent (or an ErrorEvent if the turn failed).

        Closing the iterator early cancels the provider request; no assistant
        message is stored in that case.

        Raises:
            ValueError: Immediately, if conversation_id or user_text is empty
        """
        self._validate(conversation_id, user_text)
        return self._stream(scope, conversation_id, user_text)

    async def send_turn(self, scope: Scope, conversation_id: str, user_text: str) -> TurnResult:
        """
        Run a turn and return its final result.

        Raises:
            ValueError: If conversation_id or user_text is empty
            TurnError: If the turn failed (the user message stays recorded)
        """
        self._validate(conversation_id, user_text)

        result = None
        async with aclosing(self._run_turn(scope, conversation_id, user_text)) as events:
            async for event in events:
                if isinstance(event, FinalEvent):
                    result = event.result
        return result
