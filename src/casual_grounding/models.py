import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MemoryType = Literal["fact", "preference", "procedure", "goal", "context"]
MemoryStatus = Literal["candidate", "approved", "rejected"]
SourceType = Literal["pdf", "doc-export", "wiki-page", "cloud-file"]
SourceStatus = Literal["pending", "processing", "ready", "error"]
MessageRole = Literal["user", "assistant"]

MEMORY_TYPES = ("fact", "preference", "procedure", "goal", "context")


def new_id() -> str:
    return str(uuid.uuid4())


class Scope(BaseModel):
    """The principal a request acts for, optionally narrowed to one project."""

    model_config = ConfigDict(frozen=True)

    owner_id: str = Field(..., description="Requesting principal")
    project_id: Optional[str] = Field(default=None, description="Optional project scope")


class Memory(BaseModel):
    id: str = Field(default_factory=new_id)
    owner_id: str
    project_id: Optional[str] = None
    type: MemoryType = "fact"
    title: str
    content: str
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    pinned: bool = False
    is_active: bool = True
    status: MemoryStatus = "candidate"
    embedding: Optional[List[float]] = Field(
        default=None, description="Absent until embedded; keyword search still applies"
    )
    source_message_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejected_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def embedding_text(self) -> str:
        return f"{self.title}\n\n{self.content}"

    @property
    def is_retrievable(self) -> bool:
        return self.is_active and self.status == "approved"


class KnowledgeSource(BaseModel):
    id: str = Field(default_factory=new_id)
    owner_id: str
    project_id: Optional[str] = None
    name: str
    type: SourceType
    locator: str = Field(..., description="External id, URL or storage path of the document")
    status: SourceStatus = "pending"
    version: int = Field(default=1, ge=1)
    last_synced_at: Optional[datetime] = None
    metadata: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class KnowledgeChunk(BaseModel):
    id: str = Field(default_factory=new_id)
    source_id: str
    chunk_index: int = Field(..., ge=0)
    content: str
    embedding: Optional[List[float]] = None
    metadata: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)


class ConversationMessage(BaseModel):
    id: str = Field(default_factory=new_id)
    conversation_id: str
    owner_id: str
    role: MessageRole
    content: str
    metadata: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)


class MemoryRef(BaseModel):
    """Provenance link between an assistant message and a cited memory."""

    id: str = Field(default_factory=new_id)
    conversation_id: str
    assistant_message_id: str
    memory_id: str
    score: Optional[float] = None
    created_at: datetime = Field(default_factory=datetime.now)


class KnowledgeRef(BaseModel):
    """Provenance link between an assistant message and a cited knowledge chunk."""

    id: str = Field(default_factory=new_id)
    conversation_id: str
    assistant_message_id: str
    chunk_id: str
    score: Optional[float] = None
    source_id: Optional[str] = None
    source_version: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.now)


class MemoryCandidate(BaseModel):
    """A memory proposed by the post-turn extractor, pending review."""

    type: MemoryType
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0.0, le=1.0)
    dedupe_key: Optional[str] = None
