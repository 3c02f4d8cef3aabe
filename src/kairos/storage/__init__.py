"""Kairos storage layer."""

from kairos.storage.base import PlannerStore
from kairos.storage.memory_store import MemoryStore
from kairos.storage.sqlite_store import SQLiteStore

__all__ = ["MemoryStore", "PlannerStore", "SQLiteStore"]
