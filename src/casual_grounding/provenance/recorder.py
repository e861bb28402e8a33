"""
Provenance recording.

Links an assistant message to the fragments it was grounded in. Ids cited by
the model are kept only if they were part of the turn's context; when a kind
ends up with no valid citations, every fragment of that kind that was
injected is linked instead.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Literal

from casual_grounding.citations.extractor import CitationResult
from casual_grounding.errors import ProvenanceError
from casual_grounding.models import KnowledgeRef, MemoryRef
from casual_grounding.retrieval.models import RetrievalResult
from casual_grounding.storage.protocols import ConversationStore, ProvenanceStore

logger = logging.getLogger(__name__)

CitationMode = Literal["explicit", "fallback"]


@dataclass
class CitedFragments:
    """
    Fragment ids to link to one assistant message.

    Attributes:
        memory_ids: Memory ids to link
        chunk_ids: Chunk ids to link
        memory_mode: "explicit" if the model cited memories, else "fallback"
        knowledge_mode: "explicit" if the model cited chunks, else "fallback"
        dropped_ids: Cited ids that were not in the turn's context
    """

    memory_ids: List[str] = field(default_factory=list)
    chunk_ids: List[str] = field(default_factory=list)
    memory_mode: CitationMode = "fallback"
    knowledge_mode: CitationMode = "fallback"
    dropped_ids: List[str] = field(default_factory=list)

    @property
    def citation_mode(self) -> dict:
        return {"memory": self.memory_mode, "knowledge": self.knowledge_mode}


def select_cited_fragments(citations: CitationResult, retrieval: RetrievalResult) -> CitedFragments:
    """
    Decide which fragments to link, applying the per-kind fallback.

    Args:
        citations: Extracted footer
        retrieval: Fragments injected into the turn's context

    Returns:
        CitedFragments
    """
    injected_memory_ids = retrieval.memory_ids
    injected_chunk_ids = retrieval.chunk_ids
    known_memory_ids = set(injected_memory_ids)
    known_chunk_ids = set(injected_chunk_ids)

    memory_ids = [i for i in citations.memory_ids if i in known_memory_ids]
    chunk_ids = [i for i in citations.chunk_ids if i in known_chunk_ids]
    dropped = [i for i in citations.memory_ids if i not in memory_ids] + [
        i for i in citations.chunk_ids if i not in chunk_ids
    ]
    if dropped:
        logger.warning(f"Ignoring {len(dropped)} cited ids that were not in context: {dropped}")

    selection = CitedFragments(dropped_ids=dropped)
    if memory_ids:
        selection.memory_ids = memory_ids
        selection.memory_mode = "explicit"
    else:
        selection.memory_ids = list(injected_memory_ids)

    if chunk_ids:
        selection.chunk_ids = chunk_ids
        selection.knowledge_mode = "explicit"
    else:
        selection.chunk_ids = list(injected_chunk_ids)

    return selection


class ProvenanceRecorder:
    def __init__(self, conversation_store: ConversationStore, provenance_store: ProvenanceStore):
        self.conversation_store = conversation_store
        self.provenance_store = provenance_store

    def _write(
        self,
        conversation_id: str,
        assistant_message_id: str,
        cited: CitedFragments,
        retrieval: RetrievalResult,
    ) -> tuple:
        if self.conversation_store.get_message(assistant_message_id) is None:
            raise ProvenanceError(
                f"Assistant message {assistant_message_id} must exist before provenance is written"
            )

        memories = {fragment.id: fragment for fragment in retrieval.memories}
        chunks = {fragment.id: fragment for fragment in retrieval.chunks}

        memory_refs = [
            MemoryRef(
                conversation_id=conversation_id,
                assistant_message_id=assistant_message_id,
                memory_id=memory_id,
                score=memories[memory_id].score,
            )
            for memory_id in cited.memory_ids
            if memory_id in memories
        ]
        knowledge_refs = [
            KnowledgeRef(
                conversation_id=conversation_id,
                assistant_message_id=assistant_message_id,
                chunk_id=chunk_id,
                score=chunks[chunk_id].score,
                source_id=chunks[chunk_id].source.id,
                source_version=chunks[chunk_id].source.version,
            )
            for chunk_id in cited.chunk_ids
            if chunk_id in chunks
        ]

        if memory_refs:
            self.provenance_store.add_memory_refs(memory_refs)
        if knowledge_refs:
            self.provenance_store.add_knowledge_refs(knowledge_refs)
        return len(memory_refs), len(knowledge_refs)

    async def record(
        self,
        conversation_id: str,
        assistant_message_id: str,
        cited: CitedFragments,
        retrieval: RetrievalResult,
    ) -> tuple:
        """
        Persist one link per cited memory and per cited chunk.

        Args:
            conversation_id: Conversation the message belongs to
            assistant_message_id: The (already stored) assistant message
            cited: Output of ``select_cited_fragments``
            retrieval: The turn's retrieval result (provides scores and source versions)

        Returns:
            (memory links written, knowledge links written)

        Raises:
            ProvenanceError: If the message does not exist or the store fails
        """
        try:
            counts = await asyncio.to_thread(
                self._write, conversation_id, assistant_message_id, cited, retrieval
            )
        except ProvenanceError:
            raise
        except Exception as e:
            logger.error(f"Failed to write provenance for {assistant_message_id}: {e}")
            raise ProvenanceError(f"Failed to write provenance: {e}") from e

        logger.info(
            f"Recorded provenance for {assistant_message_id}: "
            f"{counts[0]} memories ({cited.memory_mode}), {counts[1]} chunks ({cited.knowledge_mode})"
        )
        return counts
