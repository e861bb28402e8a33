"""Tests for LLM memory candidate extraction."""

import json
from unittest.mock import AsyncMock, Mock

import pytest
from casual_llm import SystemMessage, UserMessage

from casual_grounding.extractors import MEMORY_CANDIDATE_PROMPT, LLMMemoryCandidateExtractor


class MockLLMProvider:
    """Mock LLM provider for testing."""

    def __init__(self, response_content: str):
        self.response_content = response_content
        self.chat = AsyncMock(return_value=Mock(content=response_content))


def candidate(**overrides):
    item = {
        "type": "fact",
        "title": "Fiscal year",
        "content": "The fiscal year ends in March",
        "confidence": 0.8,
    }
    item.update(overrides)
    return item


@pytest.mark.asyncio
async def test_extract_candidates():
    provider = MockLLMProvider(json.dumps({"memories": [candidate()]}))
    extractor = LLMMemoryCandidateExtractor(provider)

    candidates = await extractor.extract("Our fiscal year ends in March", "Noted.")

    assert len(candidates) == 1
    assert candidates[0].type == "fact"
    assert candidates[0].title == "Fiscal year"
    assert candidates[0].confidence == 0.8


@pytest.mark.asyncio
async def test_prompt_and_exchange_are_sent():
    provider = MockLLMProvider(json.dumps({"memories": []}))
    extractor = LLMMemoryCandidateExtractor(provider, max_candidates=2)

    await extractor.extract("Remember I prefer CSV", "Will do.")

    kwargs = provider.chat.call_args.kwargs
    system, user = kwargs["messages"]
    assert isinstance(system, SystemMessage)
    assert isinstance(user, UserMessage)
    assert system.content == MEMORY_CANDIDATE_PROMPT.format(max_candidates=2)
    assert user.content == "User: Remember I prefer CSV\n\nAssistant: Will do."
    assert kwargs["response_format"] == "json"


@pytest.mark.asyncio
async def test_bare_list_response_is_accepted():
    provider = MockLLMProvider(json.dumps([candidate(type="preference")]))

    candidates = await LLMMemoryCandidateExtractor(provider).extract("u", "a")

    assert [c.type for c in candidates] == ["preference"]


@pytest.mark.asyncio
async def test_candidates_are_capped():
    items = [candidate(title=f"T{i}") for i in range(5)]
    provider = MockLLMProvider(json.dumps({"memories": items}))

    candidates = await LLMMemoryCandidateExtractor(provider, max_candidates=3).extract("u", "a")

    assert [c.title for c in candidates] == ["T0", "T1", "T2"]


@pytest.mark.asyncio
async def test_invalid_items_are_dropped():
    items = [
        candidate(type="opinion"),
        candidate(title=""),
        candidate(confidence=1.7),
        "not an object",
        candidate(title="Kept"),
    ]
    provider = MockLLMProvider(json.dumps({"memories": items}))

    candidates = await LLMMemoryCandidateExtractor(provider, max_candidates=5).extract("u", "a")

    assert [c.title for c in candidates] == ["Kept"]


@pytest.mark.asyncio
async def test_invalid_json_returns_nothing():
    provider = MockLLMProvider("not json")

    assert await LLMMemoryCandidateExtractor(provider).extract("u", "a") == []


@pytest.mark.asyncio
async def test_provider_failure_returns_nothing():
    provider = MockLLMProvider("")
    provider.chat = AsyncMock(side_effect=RuntimeError("rate limited"))

    assert await LLMMemoryCandidateExtractor(provider).extract("u", "a") == []
