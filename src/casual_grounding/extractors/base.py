"""
Base protocol for memory candidate extractors.
"""

from typing import List, Protocol

from casual_grounding.models import MemoryCandidate


class MemoryCandidateExtractor(Protocol):
    """
    Protocol for memory candidate extractors.

    This is a Protocol (PEP 544), meaning any class that implements
    the extract() method with this signature is compatible - no
    inheritance required.
    """

    async def extract(self, user_text: str, assistant_text: str) -> List[MemoryCandidate]:
        """
        Propose durable memories from one exchange.

        Args:
            user_text: The user's message
            assistant_text: The visible answer (citation footer removed)

        Returns:
            List of MemoryCandidate (possibly empty; never raises for bad LLM output)
        """
        ...
