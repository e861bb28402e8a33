"""
Memory candidate extraction from finished chat turns.
"""

from casual_grounding.extractors.base import MemoryCandidateExtractor
from casual_grounding.extractors.llm_extractor import LLMMemoryCandidateExtractor
from casual_grounding.extractors.prompts import MEMORY_CANDIDATE_PROMPT

__all__ = [
    "MemoryCandidateExtractor",
    "LLMMemoryCandidateExtractor",
    "MEMORY_CANDIDATE_PROMPT",
]
