"""
Grounding context assembly.
"""

from casual_grounding.context.assembler import (
    NONE_MARKER,
    KnowledgeUpdate,
    assemble_context,
    find_knowledge_updates,
    format_chunk_line,
    format_memory_line,
)

__all__ = [
    "NONE_MARKER",
    "KnowledgeUpdate",
    "assemble_context",
    "find_knowledge_updates",
    "format_chunk_line",
    "format_memory_line",
]
