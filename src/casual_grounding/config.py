"""
Settings for casual-grounding.

Values come from the environment (prefix ``GROUNDING_``) or a ``.env`` file.
Components never read settings themselves; callers pass the relevant values
into constructors, which keeps every component usable without a settings
object.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GroundingSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GROUNDING_", env_file=".env", extra="ignore", populate_by_name=True
    )

    # Providers
    openai_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GROUNDING_OPENAI_API_KEY", "OPENAI_API_KEY"),
    )
    openai_base_url: Optional[str] = None
    chat_model: str = "gpt-4.1-mini"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = Field(default=1536, gt=0)

    # Retrieval
    memory_match_count: int = Field(default=8, ge=1)
    knowledge_match_count: int = Field(default=6, ge=1)
    pinned_memory_limit: int = Field(default=0, ge=0)
    vector_search_enabled: bool = True
    history_limit: int = Field(default=10, ge=0)

    # Chunking
    chunk_size: int = Field(default=800, gt=0)
    chunk_overlap: int = Field(default=100, ge=0)

    # Timeouts (seconds)
    embedding_timeout: float = 30.0
    search_timeout: float = 30.0
    generation_timeout: float = 120.0

    # Rate limiting (seconds between provider calls)
    ingest_delay: float = 0.1
    backfill_delay: float = 0.2
    backfill_batch_limit: int = Field(default=100, ge=1)

    # Storage
    database_url: str = "sqlite:///grounding.db"
    qdrant_host: Optional[str] = None
    qdrant_port: int = 6333
    qdrant_memory_collection: str = "memories"
    qdrant_chunk_collection: str = "knowledge_chunks"

    @property
    def uses_qdrant(self) -> bool:
        return self.qdrant_host is not None
