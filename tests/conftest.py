"""Global fixtures: temp DB, in-memory store/bus/remote, manual ticker."""

import tempfile
from pathlib import Path
from typing import Callable, Optional

import pytest

from focuskit.database import InMemoryChangeBus, MemoryKeyValueStore
from focuskit.models import Quote, SessionLogEntry, Task
from focuskit.sync import (
    QUOTES,
    SESSIONS,
    TASKS,
    InMemoryRemoteStore,
    OptimisticMutationEngine,
    RemoteCollectionClient,
)
from focuskit.utils.dispatch import InlineDispatcher

PRINCIPAL = "user-1"


class ManualTicker:
    """Ticker driven by the test instead of a clock."""

    def __init__(self) -> None:
        self._callback: Optional[Callable[[], None]] = None
        self.starts = 0

    @property
    def running(self) -> bool:
        return self._callback is not None

    def start(self, callback: Callable[[], None]) -> None:
        if self._callback is not None:
            return
        self._callback = callback
        self.starts += 1

    def stop(self) -> None:
        self._callback = None

    def advance(self, ticks: int = 1) -> None:
        for _ in range(ticks):
            if self._callback is None:
                return
            self._callback()


@pytest.fixture
def temp_db_path() -> Path:
    """Temporary SQLite path (cleaned up after test)."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = Path(f.name)
    yield path
    if path.exists():
        path.unlink(missing_ok=True)


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def bus() -> InMemoryChangeBus:
    return InMemoryChangeBus()


@pytest.fixture
def remote() -> InMemoryRemoteStore:
    """Reachable in-memory remote store; call ``set_online(False)`` to cut it off."""
    return InMemoryRemoteStore()


@pytest.fixture
def dispatcher() -> InlineDispatcher:
    return InlineDispatcher()


@pytest.fixture
def ticker() -> ManualTicker:
    return ManualTicker()


@pytest.fixture
def task_engine(
    kv_store: MemoryKeyValueStore,
    remote: InMemoryRemoteStore,
    bus: InMemoryChangeBus,
    dispatcher: InlineDispatcher,
) -> OptimisticMutationEngine[Task]:
    """Task engine for PRINCIPAL over the in-memory remote store."""
    return OptimisticMutationEngine(
        TASKS,
        kv_store,
        RemoteCollectionClient(remote, TASKS),
        PRINCIPAL,
        bus=bus,
        dispatcher=dispatcher,
    )


@pytest.fixture
def quote_engine(
    kv_store: MemoryKeyValueStore,
    remote: InMemoryRemoteStore,
    bus: InMemoryChangeBus,
    dispatcher: InlineDispatcher,
) -> OptimisticMutationEngine[Quote]:
    return OptimisticMutationEngine(
        QUOTES,
        kv_store,
        RemoteCollectionClient(remote, QUOTES),
        PRINCIPAL,
        bus=bus,
        dispatcher=dispatcher,
    )


@pytest.fixture
def session_engine(
    kv_store: MemoryKeyValueStore,
    remote: InMemoryRemoteStore,
    bus: InMemoryChangeBus,
    dispatcher: InlineDispatcher,
) -> OptimisticMutationEngine[SessionLogEntry]:
    return OptimisticMutationEngine(
        SESSIONS,
        kv_store,
        RemoteCollectionClient(remote, SESSIONS),
        PRINCIPAL,
        bus=bus,
        dispatcher=dispatcher,
    )
