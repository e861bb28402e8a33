"""
Provenance links between answers and the fragments they cite.
"""

from casual_grounding.provenance.recorder import (
    CitedFragments,
    ProvenanceRecorder,
    select_cited_fragments,
)

__all__ = [
    "CitedFragments",
    "ProvenanceRecorder",
    "select_cited_fragments",
]
