"""
Record store implementations.
"""

from casual_grounding.storage.records.memory import InMemoryRecordStore
from casual_grounding.storage.records.sqlalchemy import SQLAlchemyRecordStore

__all__ = [
    "InMemoryRecordStore",
    "SQLAlchemyRecordStore",
]
