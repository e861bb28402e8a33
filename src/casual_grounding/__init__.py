"""
casual-grounding: Context-augmented generation over memories and ingested knowledge.

Core components:
- chunking: Boundary-aware overlapping text chunks
- embeddings: Embedding protocol, OpenAI adapter and the indexer
- retrieval: Dual-tier (vector, keyword) search over memories and chunks
- context: Grounding context assembly
- generation: Streaming and single-response generators
- citations: Citation footer extraction
- provenance: Links between answers and the fragments they cite
- backfill: Embedding backfill for unembedded records
- ingestion: Fetch, chunk and embed knowledge sources
- storage: Protocols plus in-memory, SQLAlchemy and Qdrant backends
"""

__version__ = "0.1.0"

from casual_grounding.chat_service import (
    ChatService,
    DeltaEvent,
    ErrorEvent,
    FinalEvent,
    TurnResult,
)
from casual_grounding.config import GroundingSettings
from casual_grounding.factory import Grounding, build_grounding
from casual_grounding.memory_service import MemoryService
from casual_grounding.models import (
    ConversationMessage,
    KnowledgeChunk,
    KnowledgeRef,
    KnowledgeSource,
    Memory,
    MemoryCandidate,
    MemoryRef,
    Scope,
)

__all__ = [
    "__version__",
    # Models
    "Scope",
    "Memory",
    "MemoryCandidate",
    "KnowledgeSource",
    "KnowledgeChunk",
    "ConversationMessage",
    "MemoryRef",
    "KnowledgeRef",
    # Services
    "GroundingSettings",
    "Grounding",
    "build_grounding",
    "ChatService",
    "MemoryService",
    "TurnResult",
    "DeltaEvent",
    "FinalEvent",
    "ErrorEvent",
]
