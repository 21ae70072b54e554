"""Persistence layer - key/value media, change bus and persisted values."""

from .change_bus import ChangeBus, InMemoryChangeBus, SqliteChangeBus
from .kv_store import (
    KeyValueStore,
    MemoryKeyValueStore,
    SqliteKeyValueStore,
    namespaced_key,
)
from .persisted import PersistedValue

__all__ = [
    "ChangeBus",
    "InMemoryChangeBus",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "PersistedValue",
    "SqliteChangeBus",
    "SqliteKeyValueStore",
    "namespaced_key",
]
