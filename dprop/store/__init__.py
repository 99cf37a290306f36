"""
Record store layer for dprop.

All store IO lives here and ONLY here. Services talk to a RecordStore.
"""

from dprop.store.base import RecordStore, SubscriptionHandle
from dprop.store.http import HttpRecordStore
from dprop.store.memory import MemoryStore

__all__ = [
    "RecordStore",
    "SubscriptionHandle",
    "MemoryStore",
    "HttpRecordStore",
]
