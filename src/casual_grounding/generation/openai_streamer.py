"""OpenAI streaming chat-completions generator."""

import asyncio
import logging
import os
from typing import AsyncIterator, List, Optional

from openai import AsyncOpenAI, OpenAIError

from casual_grounding.errors import GenerationError
from casual_grounding.generation.protocol import GenerationRequest

logger = logging.getLogger(__name__)


def build_chat_messages(request: GenerationRequest) -> List[dict]:
    """System context, then history, then the new user message."""
    messages = [{"role": "system", "content": request.context}]
    messages.extend({"role": m.role, "content": m.content} for m in request.history)
    messages.append({"role": "user", "content": request.user_text})
    return messages


class OpenAIStreamingGenerator:
    """
    Generator that relays chat-completion tokens as they arrive.

    A failure to open the stream is raised before anything is yielded, so
    callers never see partial output from a request that was rejected.
    Closing the iterator (e.g. the consumer disconnects) closes the HTTP
    response instead of draining it.

    Also compatible with OpenAI-compatible APIs (Azure, OpenRouter, etc.)
    """

    def __init__(
        self,
        model: str = "gpt-4.1-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        temperature: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize the streaming generator.

        Args:
            model: Chat model name
            api_key: OpenAI API key (None = use OPENAI_API_KEY env var)
            base_url: Custom endpoint (None = official OpenAI)
            timeout: Seconds allowed to open the stream, and per read
            temperature: Sampling temperature (None = provider default)
            client: Pre-built client (tests, shared connection pools)
        """
        self._model = model
        self._timeout = timeout
        self._temperature = temperature
        self._client = client or AsyncOpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
        )

        logger.info(f"OpenAI streaming generator initialized: {model}")

    @property
    def model_name(self) -> str:
        return self._model

    async def _open(self, request: GenerationRequest):
        kwargs = {
            "model": self._model,
            "messages": build_chat_messages(request),
            "stream": True,
        }
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature

        try:
            return await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs), timeout=self._timeout
            )
        except asyncio.TimeoutError as e:
            raise GenerationError(f"Chat request timed out after {self._timeout}s") from e
        except OpenAIError as e:
            raise GenerationError(f"Chat request failed: {e}") from e

    async def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        stream = await self._open(request)
        received = 0
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    received += len(delta)
                    yield delta
        except Exception as e:
            logger.error(f"Chat stream broke after {received} chars: {e}")
            raise GenerationError(f"Chat stream interrupted: {e}") from e
        finally:
            await stream.close()

        logger.debug(f"Chat stream finished ({received} chars)")
