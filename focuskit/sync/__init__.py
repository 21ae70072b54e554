"""Remote synchronization: CRUD stores, collections, reconciliation, optimistic mutations."""

from .collections import RemoteCollectionClient
from .entities import QUOTES, SESSIONS, TASKS, EntitySpec
from .mutations import OptimisticMutationEngine, SyncReport
from .reconciler import merge, newest_first
from .remote_store import InMemoryRemoteStore, RemoteStore, RestRemoteStore

__all__ = [
    "EntitySpec",
    "InMemoryRemoteStore",
    "OptimisticMutationEngine",
    "QUOTES",
    "RemoteCollectionClient",
    "RemoteStore",
    "RestRemoteStore",
    "SESSIONS",
    "SyncReport",
    "TASKS",
    "merge",
    "newest_first",
]
