"""
Citation footer extraction.
"""

from casual_grounding.citations.extractor import CitationResult, extract_citations

__all__ = [
    "CitationResult",
    "extract_citations",
]
