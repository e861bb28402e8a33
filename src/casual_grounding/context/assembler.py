"""
Grounding context assembly.

Renders retrieved fragments into the system text sent to the generator. The
layout is deterministic: an optional knowledge-update notice, one section per
fragment kind (``- (none)`` when empty), then the rules block that mandates
the citation footer.
"""

import json
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from casual_grounding.retrieval.models import ChunkFragment, MemoryFragment

NONE_MARKER = "- (none)"

CITATION_FOOTER_EXAMPLE = '{"memory_ids":[...],"knowledge_chunk_ids":[...]}'

RULES = f"""[RULES]
- Ground your answer in the MEMORY and KNOWLEDGE sections above.
- Treat pinned memories as standing instructions.
- If the context does not contain the answer, say that you do not know.
- Do not invent identifiers; cite only ids that appear above.
- End your answer with exactly one JSON object listing the ids you actually used,
  with nothing after it:
  {CITATION_FOOTER_EXAMPLE}"""


@dataclass
class KnowledgeUpdate:
    """A cited source that has been re-synced since it was last cited in the conversation."""

    source_name: str
    old_version: int
    new_version: int


def _one_line(text: str) -> str:
    return " ".join(text.split())


def _format_score(score: Optional[float]) -> str:
    return "" if score is None else f"{score:.3f}"


def format_memory_line(fragment: MemoryFragment) -> str:
    memory = fragment.memory
    return (
        f"- (id:{memory.id} score:{_format_score(fragment.score)} "
        f"pinned:{str(memory.pinned).lower()} confidence:{memory.confidence:.2f}) "
        f"[{memory.type}] {_one_line(memory.title)}: {_one_line(memory.content)}"
    )


def format_chunk_line(fragment: ChunkFragment) -> str:
    source = fragment.source
    meta = json.dumps(fragment.chunk.metadata, sort_keys=True, ensure_ascii=False)
    return (
        f"- (chunk_id:{fragment.chunk.id} score:{_format_score(fragment.score)} "
        f"source:{_one_line(source.name)} v{source.version} meta:{meta}) "
        f"{_one_line(fragment.chunk.content)}"
    )


def format_update_notice(updates: Sequence[KnowledgeUpdate]) -> str:
    changes = "; ".join(
        f'"{u.source_name}" updated v{u.old_version} -> v{u.new_version}' for u in updates
    )
    return f"NOTICE: referenced material changed since it was last cited ({changes}). Answer from the latest version."


def find_knowledge_updates(
    chunks: Sequence[ChunkFragment], cited_versions: Dict[str, int]
) -> List[KnowledgeUpdate]:
    """
    Compare the sources of this turn's chunks with the versions cited earlier.

    Args:
        chunks: Chunk fragments retrieved for this turn
        cited_versions: source_id -> version last cited in the conversation

    Returns:
        One update per source whose current version is newer
    """
    updates = []
    seen = set()
    for fragment in chunks:
        source = fragment.source
        if source.id in seen:
            continue
        seen.add(source.id)

        old_version = cited_versions.get(source.id)
        if old_version is not None and old_version < source.version:
            updates.append(KnowledgeUpdate(source.name, old_version, source.version))
    return updates


def assemble_context(
    memories: Sequence[MemoryFragment],
    chunks: Sequence[ChunkFragment],
    updates: Optional[Sequence[KnowledgeUpdate]] = None,
) -> str:
    """
    Build the grounding text for one turn.

    Args:
        memories: Memory fragments in rank order
        chunks: Chunk fragments in rank order
        updates: Optional knowledge-update notices

    Returns:
        The grounding context

    Example:
        >>> print(assemble_context([], []).splitlines()[:5])
        ['[CONTEXT]', '## MEMORY', '- (none)', '', '## KNOWLEDGE']
    """
    memory_lines = [format_memory_line(fragment) for fragment in memories] or [NONE_MARKER]
    chunk_lines = [format_chunk_line(fragment) for fragment in chunks] or [NONE_MARKER]

    parts = []
    if updates:
        parts.append(format_update_notice(updates))
        parts.append("")

    parts.append("[CONTEXT]")
    parts.append("## MEMORY")
    parts.extend(memory_lines)
    parts.append("")
    parts.append("## KNOWLEDGE")
    parts.extend(chunk_lines)
    parts.append("")
    parts.append(RULES)
    parts.append("[/CONTEXT]")
    return "\n".join(parts)
