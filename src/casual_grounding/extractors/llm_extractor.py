import json
import logging
from typing import List

from casual_llm import LLMProvider, SystemMessage, UserMessage
from pydantic import ValidationError

from casual_grounding.extractors.prompts import MEMORY_CANDIDATE_PROMPT
from casual_grounding.models import MEMORY_TYPES, MemoryCandidate

logger = logging.getLogger(__name__)


class LLMMemoryCandidateExtractor:
    """Proposes memory candidates from a finished chat turn."""

    def __init__(
        self,
        llm_provider: LLMProvider,
        prompt: str = MEMORY_CANDIDATE_PROMPT,
        max_candidates: int = 3,
    ):
        self.llm_provider = llm_provider
        self.prompt = prompt
        self.max_candidates = max_candidates

    async def extract(self, user_text: str, assistant_text: str) -> List[MemoryCandidate]:
        candidates: List[MemoryCandidate] = []

        llm_messages = [
            SystemMessage(content=self.prompt.format(max_candidates=self.max_candidates)),
            UserMessage(content=f"User: {user_text}\n\nAssistant: {assistant_text}"),
        ]

        try:
            logger.debug("Extracting memory candidates")
            response = await self.llm_provider.chat(
                messages=llm_messages, response_format="json", temperature=0.2
            )
            response_data = json.loads(response.content)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse memory extraction JSON: {e}")
            return candidates
        except Exception as e:
            logger.error(f"Memory LLM Failed: {e}")
            return candidates

        # Some models return the bare list despite the instructions
        items = response_data.get("memories", []) if isinstance(response_data, dict) else response_data
        if not isinstance(items, list):
            logger.warning("Memory extraction response has no memory list")
            return candidates

        for item in items[: self.max_candidates]:
            if not isinstance(item, dict) or item.get("type") not in MEMORY_TYPES:
                logger.debug(f"Dropping invalid memory candidate: {item}")
                continue
            try:
                candidates.append(
                    MemoryCandidate(
                        type=item["type"],
                        title=str(item.get("title", "")).strip(),
                        content=str(item.get("content", "")).strip(),
                        confidence=float(item.get("confidence", 0.5)),
                        dedupe_key=item.get("dedupe_key"),
                    )
                )
            except (ValidationError, TypeError, ValueError) as e:
                logger.debug(f"Dropping invalid memory candidate: {e}")

        logger.info(f"Extracted {len(candidates)} memory candidates")

        return candidates
