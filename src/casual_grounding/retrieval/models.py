"""
Data structures for retrieval.

Defines the fragments a turn can be grounded in and the per-request result:
- MemoryFragment: A retrievable memory with its similarity score
- ChunkFragment: A knowledge chunk with its parent source and score
- RetrievalResult: Both fragment lists plus the tier that served each store
- TierStats: Process-wide counters of which tier served each store
"""

import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Tuple

from casual_grounding.models import KnowledgeChunk, KnowledgeSource, Memory

Tier = Literal["vector", "keyword"]
StoreKind = Literal["memory", "knowledge"]


@dataclass
class MemoryFragment:
    """
    A memory considered for citation in one turn.

    Attributes:
        memory: The memory record
        score: Similarity to the query; None when keyword search or pinned
            injection supplied it
    """

    memory: Memory
    score: Optional[float] = None

    @property
    def id(self) -> str:
        return self.memory.id


@dataclass
class ChunkFragment:
    """
    A knowledge chunk considered for citation in one turn.

    Attributes:
        chunk: The chunk record
        source: Its parent source (always ``ready`` at retrieval time)
        score: Similarity to the query; None when keyword search supplied it
    """

    chunk: KnowledgeChunk
    source: KnowledgeSource
    score: Optional[float] = None

    @property
    def id(self) -> str:
        return self.chunk.id


@dataclass
class RetrievalResult:
    """
    Result of retrieving grounding fragments for one query.

    Attributes:
        memories: Memory fragments, pinned injections first, then by rank
        chunks: Chunk fragments by rank
        memory_tier: Tier that served the memory store
        knowledge_tier: Tier that served the knowledge store
    """

    memories: List[MemoryFragment] = field(default_factory=list)
    chunks: List[ChunkFragment] = field(default_factory=list)
    memory_tier: Tier = "keyword"
    knowledge_tier: Tier = "keyword"

    @property
    def memory_ids(self) -> List[str]:
        return [fragment.id for fragment in self.memories]

    @property
    def chunk_ids(self) -> List[str]:
        return [fragment.id for fragment in self.chunks]

    @property
    def is_empty(self) -> bool:
        return not self.memories and not self.chunks


class TierStats:
    """
    Thread-safe counters of which tier served each store.

    A growing ``("memory", "keyword")`` count while vector search is enabled
    means the primary tier is failing.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Counter = Counter()

    def record(self, store: StoreKind, tier: Tier) -> None:
        with self._lock:
            self._counts[(store, tier)] += 1

    def count(self, store: StoreKind, tier: Tier) -> int:
        with self._lock:
            return self._counts[(store, tier)]

    def snapshot(self) -> Dict[Tuple[str, str], int]:
        with self._lock:
            return dict(self._counts)

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
