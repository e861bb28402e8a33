"""
Protocol and request shape for answer generators.
"""

from dataclasses import dataclass, field
from typing import AsyncIterator, List, Protocol

from casual_grounding.models import ConversationMessage


@dataclass
class GenerationRequest:
    """
    Everything a generator needs for one turn.

    Attributes:
        context: Grounding text (sent as the system message)
        user_text: The new user utterance
        history: Earlier messages of the conversation, oldest first, not
            including the new user utterance
    """

    context: str
    user_text: str
    history: List[ConversationMessage] = field(default_factory=list)


class Generator(Protocol):
    """
    Protocol for answer generators.

    A streaming provider yields text deltas as they arrive; a non-streaming
    provider yields the whole answer once. Either way the concatenation of
    the yielded pieces is the full answer.
    """

    @property
    def model_name(self) -> str:
        """Identifier of the model producing answers."""
        ...

    def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        """
        Generate an answer as a sequence of text pieces.

        Closing the iterator early aborts the provider request.

        Raises:
            GenerationError: If the provider fails before or during generation
        """
        ...
