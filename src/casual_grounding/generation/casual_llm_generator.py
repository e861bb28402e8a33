"""Non-streaming generator backed by a casual-llm provider."""

import asyncio
import logging
from typing import AsyncIterator, List

from casual_llm import AssistantMessage, ChatMessage, LLMProvider, SystemMessage, UserMessage

from casual_grounding.errors import GenerationError
from casual_grounding.generation.protocol import GenerationRequest

logger = logging.getLogger(__name__)


class CasualLLMGenerator:
    """
    Generator for providers that answer in one blocking response.

    Yields the whole answer once, so it can stand in anywhere a streaming
    generator is expected.
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        model_name: str = "casual-llm",
        timeout: float = 120.0,
        temperature: float = 0.3,
    ):
        self.llm_provider = llm_provider
        self._model_name = model_name
        self.timeout = timeout
        self.temperature = temperature

    @property
    def model_name(self) -> str:
        return self._model_name

    def _build_messages(self, request: GenerationRequest) -> List[ChatMessage]:
        messages: List[ChatMessage] = [SystemMessage(content=request.context)]
        for message in request.history:
            if message.role == "assistant":
                messages.append(AssistantMessage(content=message.content))
            else:
                messages.append(UserMessage(content=message.content))
        messages.append(UserMessage(content=request.user_text))
        return messages

    async def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        try:
            response = await asyncio.wait_for(
                self.llm_provider.chat(
                    messages=self._build_messages(request), temperature=self.temperature
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise GenerationError(f"LLM request timed out after {self.timeout}s") from e
        except Exception as e:
            logger.error(f"LLM request failed: {e}")
            raise GenerationError(f"LLM request failed: {e}") from e

        content = response.content or ""
        logger.debug(f"LLM answered with {len(content)} chars")
        if content:
            yield content
