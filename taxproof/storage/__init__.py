"""
Storage Module
==============

Keyed persistence for proof and payment records.

Usage:
    from taxproof.storage import InMemoryRecordStore

    store = InMemoryRecordStore()
    await store.insert_proof(record)
    record = await store.get_proof(record.id, owner="user-1")
"""

from taxproof.storage.base import RecordStore
from taxproof.storage.memory import InMemoryRecordStore


__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
]
