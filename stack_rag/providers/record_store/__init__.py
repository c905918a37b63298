"""Record store implementations."""

from stack_rag.providers.record_store.memory_record_store import InMemoryRecordStore, matches_where

__all__ = ["InMemoryRecordStore", "matches_where"]
