"""Composition root: stores, sync engines, timer and views wired from Settings."""

import logging
from typing import Optional

from focuskit.config import Settings, get_settings
from focuskit.core.principal import PrincipalProvider
from focuskit.core.quotes import CompleteText, QuoteBook
from focuskit.core.tasks import TaskBoard
from focuskit.core.timer import IntervalTicker, SessionTimerEngine, Ticker
from focuskit.core.timer_settings import TimerSettingsStore
from focuskit.database import (
    ChangeBus,
    InMemoryChangeBus,
    KeyValueStore,
    MemoryKeyValueStore,
    SqliteChangeBus,
    SqliteKeyValueStore,
)
from focuskit.models import Quote, SessionLogEntry, Task
from focuskit.sync import (
    QUOTES,
    SESSIONS,
    TASKS,
    EntitySpec,
    OptimisticMutationEngine,
    RemoteCollectionClient,
    RemoteStore,
    RestRemoteStore,
    SyncReport,
)
from focuskit.utils.dispatch import Dispatcher, ThreadDispatcher

logger = logging.getLogger(__name__)


class Engine:
    """Owns every collaborator for one context. Depends on Settings.

    Collaborators not passed in are built from ``settings``: a SQLite
    key/value store and changelog bus (or in-memory ones), a REST remote
    store when configured, and a thread dispatcher for remote calls.

    Args:
        settings: Application settings; defaults to ``get_settings()``.
        store: Key/value medium override.
        bus: Change bus override.
        remote_store: Remote CRUD service override.
        dispatcher: Runs detached remote calls.
        ticker: Tick source for the timer.
        principal_id: Initial principal; falls back to ``settings.principal_id``.
        complete_text: Text completion function for AI quotes.
        follow_changes: Poll the SQLite changelog for other processes' writes.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        store: Optional[KeyValueStore] = None,
        bus: Optional[ChangeBus] = None,
        remote_store: Optional[RemoteStore] = None,
        dispatcher: Optional[Dispatcher] = None,
        ticker: Optional[Ticker] = None,
        principal_id: Optional[str] = None,
        complete_text: Optional[CompleteText] = None,
        follow_changes: bool = True,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store if store is not None else self._build_store()
        self._bus = bus if bus is not None else self._build_bus(follow_changes)
        self._remote_store = (
            remote_store if remote_store is not None else self._build_remote_store()
        )
        self._dispatcher = dispatcher if dispatcher is not None else ThreadDispatcher()
        self.principal = PrincipalProvider(principal_id or self._settings.principal_id)
        owner = self.principal.current()

        self.tasks_engine: OptimisticMutationEngine[Task] = self._mutation_engine(TASKS, owner)
        self.quotes_engine: OptimisticMutationEngine[Quote] = self._mutation_engine(
            QUOTES, owner
        )
        self.sessions_engine: OptimisticMutationEngine[SessionLogEntry] = self._mutation_engine(
            SESSIONS, owner
        )

        self.timer_settings = TimerSettingsStore(self._store, owner, bus=self._bus)
        self.timer = SessionTimerEngine(
            self._store,
            self.timer_settings.get(),
            principal_id=owner,
            sessions=self.sessions_engine,
            bus=self._bus,
            ticker=ticker or IntervalTicker(self._settings.tick_interval),
        )
        self.timer_settings.subscribe(self.timer.apply_settings)

        self.tasks = TaskBoard(self.tasks_engine)
        self.quotes = QuoteBook(self.quotes_engine, complete_text)
        self.principal.subscribe(self._on_principal_changed)

    # -- construction ---------------------------------------------------

    def _build_store(self) -> KeyValueStore:
        if self._settings.storage_backend == "memory":
            return MemoryKeyValueStore()
        store = SqliteKeyValueStore(self._settings.db_path)
        store.init_db()
        return store

    def _build_bus(self, follow_changes: bool) -> ChangeBus:
        if self._settings.storage_backend == "memory":
            return InMemoryChangeBus()
        bus = SqliteChangeBus(self._settings.db_path)
        bus.init_db()
        if follow_changes:
            bus.start(self._settings.bus_poll_interval)
        return bus

    def _build_remote_store(self) -> Optional[RemoteStore]:
        settings = self._settings
        if not settings.remote_enabled:
            logger.debug("No remote store configured; running local-only")
            return None
        return RestRemoteStore(
            settings.remote_url,
            settings.remote_api_key,
            access_token=settings.remote_access_token,
            timeout=settings.remote_timeout,
        )

    def _mutation_engine(self, entity: EntitySpec, owner: Optional[str]) -> OptimisticMutationEngine:
        remote = (
            RemoteCollectionClient(
                self._remote_store, entity, stale_after=self._settings.remote_stale_after
            )
            if self._remote_store is not None
            else None
        )
        return OptimisticMutationEngine(
            entity,
            self._store,
            remote,
            owner,
            bus=self._bus,
            dispatcher=self._dispatcher,
        )

    # -- operations -----------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def remote_enabled(self) -> bool:
        return self._remote_store is not None

    def _engines(self) -> list[OptimisticMutationEngine]:
        return [self.tasks_engine, self.quotes_engine, self.sessions_engine]

    def refresh(self, force: bool = False) -> None:
        """Refetch every remote collection (within the staleness window unless forced)."""
        for engine in self._engines():
            engine.refresh(force=force)

    def sync_all(self) -> dict[str, SyncReport]:
        """Push local-only records and queued deletes for every entity."""
        return {engine.entity.name: engine.sync_local_only() for engine in self._engines()}

    def pending_count(self) -> int:
        return sum(engine.pending_count for engine in self._engines())

    def wait(self, timeout: float = 10.0) -> None:
        """Block until detached remote calls have finished."""
        waiter = getattr(self._dispatcher, "wait", None)
        if waiter is not None:
            waiter(timeout)

    def close(self) -> None:
        self.timer.close()
        self.timer_settings.close()
        for engine in self._engines():
            engine.close()
        stop = getattr(self._bus, "stop", None)
        if stop is not None:
            stop()
        closer = getattr(self._remote_store, "close", None)
        if closer is not None:
            closer()

    def _on_principal_changed(self, principal_id: Optional[str]) -> None:
        for engine in self._engines():
            engine.rebind(principal_id)
        # Timer durations must match the new principal before settings are broadcast.
        self.timer.rebind(principal_id, self.timer_settings.peek(principal_id))
        self.timer_settings.rebind(principal_id)
