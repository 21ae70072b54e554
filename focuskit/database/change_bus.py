"""Cross-context change notification for the key/value store.

A context is one live process or window holding its own in-memory copy
of persisted values. Publishing a change reaches every *other* live
context; a context started later does not see old publishes and re-loads
from the store instead.
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Protocol

from focuskit.utils.events import Unsubscribe

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[str, str], None]

# Changelog rows kept behind the newest one; older rows are pruned on publish.
CHANGELOG_RETENTION = 1000


class ChangeBus(Protocol):
    """Publish/subscribe channel keyed by store key."""

    def publish(self, key: str, serialized: str, origin: str) -> None: ...

    def subscribe(self, handler: ChangeHandler, origin: str) -> Unsubscribe: ...


class _Subscribers:
    def __init__(self) -> None:
        self._entries: list[tuple[str, ChangeHandler]] = []
        self._lock = threading.Lock()

    def add(self, handler: ChangeHandler, origin: str) -> Unsubscribe:
        entry = (origin, handler)
        with self._lock:
            self._entries.append(entry)

        def _remove() -> None:
            with self._lock:
                if entry in self._entries:
                    self._entries.remove(entry)

        return _remove

    def origins(self) -> set[str]:
        with self._lock:
            return {o for o, _ in self._entries}

    def deliver(self, key: str, serialized: str, origin: str) -> None:
        with self._lock:
            targets = [h for o, h in self._entries if o != origin]
        for handler in targets:
            try:
                handler(key, serialized)
            except Exception:
                logger.exception("Change handler failed for %s", key)


class InMemoryChangeBus:
    """Synchronous bus for several contexts living in one process."""

    def __init__(self) -> None:
        self._subscribers = _Subscribers()

    def publish(self, key: str, serialized: str, origin: str) -> None:
        self._subscribers.deliver(key, serialized, origin)

    def subscribe(self, handler: ChangeHandler, origin: str) -> Unsubscribe:
        return self._subscribers.add(handler, origin)


class SqliteChangeBus:
    """Bus backed by a changelog table next to the kv table.

    Each process polls the changelog for rows written by other origins.
    Delivery is at-least-once: a row is re-delivered only if the process
    dies between reading and advancing its cursor, and handlers replace
    whole values, so a repeat is harmless.
    """

    def __init__(self, db_path: Path) -> None:
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._subscribers = _Subscribers()
        self._cursor = 0
        self._cursor_lock = threading.Lock()
        self._published_origins: set[str] = set()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def init_db(self) -> None:
        """Create the changelog table and start the cursor at its head."""
        with sqlite3.connect(self._path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_changes (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    origin TEXT NOT NULL,
                    created_at DATETIME NOT NULL
                )
            """
            )
            conn.commit()
            row = conn.execute("SELECT COALESCE(MAX(seq), 0) FROM kv_changes").fetchone()
        self._cursor = int(row[0])

    def publish(self, key: str, serialized: str, origin: str) -> None:
        """Append a change; failures are logged, the value itself is already stored."""
        now = datetime.now(timezone.utc).isoformat()
        try:
            with sqlite3.connect(self._path) as conn:
                cur = conn.execute(
                    "INSERT INTO kv_changes (key, value, origin, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (key, serialized, origin, now),
                )
                seq = cur.lastrowid or 0
                conn.execute(
                    "DELETE FROM kv_changes WHERE seq <= ?", (seq - CHANGELOG_RETENTION,)
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.warning("Failed to publish change for %s: %s", key, e)
        self._published_origins.add(origin)
        # Contexts in this process see the change without waiting for a poll.
        self._subscribers.deliver(key, serialized, origin)

    def subscribe(self, handler: ChangeHandler, origin: str) -> Unsubscribe:
        return self._subscribers.add(handler, origin)

    def poll(self) -> int:
        """Deliver changelog rows newer than the cursor. Returns rows delivered."""
        with self._cursor_lock:
            try:
                with sqlite3.connect(self._path) as conn:
                    rows = conn.execute(
                        "SELECT seq, key, value, origin FROM kv_changes "
                        "WHERE seq > ? ORDER BY seq ASC",
                        (self._cursor,),
                    ).fetchall()
            except sqlite3.Error as e:
                logger.debug("Changelog poll failed: %s", e)
                return 0
            delivered = 0
            local = self._subscribers.origins() | self._published_origins
            for seq, key, value, origin in rows:
                # Same-process publishes were delivered at publish time.
                if origin not in local:
                    self._subscribers.deliver(key, value, origin)
                    delivered += 1
                self._cursor = seq
            return delivered

    def start(self, interval: float = 0.5) -> None:
        """Poll from a daemon thread until ``stop`` is called."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()

        def _run() -> None:
            while not self._stop.wait(interval):
                self.poll()

        self._thread = threading.Thread(target=_run, name="focuskit-bus", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._thread = None
