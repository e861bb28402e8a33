"""
Exception hierarchy for casual-grounding.

Degraded outcomes (keyword fallback, malformed citation footer, unembedded
chunks) are reported in results and are not represented here.
"""


class GroundingError(Exception):
    """Base class for all casual-grounding errors."""


class EmbeddingError(GroundingError):
    """The embedding provider failed, timed out or returned a bad vector."""


class RetrievalError(GroundingError):
    """Both retrieval tiers failed for a store."""


class GenerationError(GroundingError):
    """The language-model provider failed before or during generation."""


class ProvenanceError(GroundingError):
    """Provenance links could not be written."""


class IngestionError(GroundingError):
    """A knowledge source could not be ingested."""


class SourceNotFoundError(IngestionError):
    """The knowledge source does not exist in the requested scope."""


class TurnError(GroundingError):
    """A chat turn failed; the user message stays recorded."""


class FetchError(IngestionError):
    """A document could not be fetched or its text could not be extracted."""
