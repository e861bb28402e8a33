"""
Answer generators: a streaming OpenAI adapter and a blocking casual-llm adapter.
"""

from casual_grounding.generation.casual_llm_generator import CasualLLMGenerator
from casual_grounding.generation.openai_streamer import (
    OpenAIStreamingGenerator,
    build_chat_messages,
)
from casual_grounding.generation.protocol import GenerationRequest, Generator

__all__ = [
    "Generator",
    "GenerationRequest",
    "OpenAIStreamingGenerator",
    "CasualLLMGenerator",
    "build_chat_messages",
]
