"""Key/value storage media behind ``PersistedValue``."""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from focuskit.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

ANONYMOUS_NAMESPACE = "anonymous"


def namespaced_key(entity: str, principal_id: Optional[str]) -> str:
    """Key for one entity's state under one principal, e.g. ``task-state_u1``."""
    return f"{entity}-state_{principal_id or ANONYMOUS_NAMESPACE}"


class KeyValueStore(Protocol):
    """Persistent string-to-string medium that survives reloads."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class SqliteKeyValueStore:
    """SQLite-backed store shared by every process that opens the same file."""

    def __init__(self, db_path: Path) -> None:
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def init_db(self) -> None:
        """Create the kv table if it does not exist."""
        with sqlite3.connect(self._path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at DATETIME NOT NULL
                )
            """
            )
            conn.commit()

    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when absent or unreadable."""
        try:
            with sqlite3.connect(self._path) as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            logger.warning("Failed to read %s from %s: %s", key, self._path, e)
            return None
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        """Upsert a value.

        Raises:
            StorageUnavailableError: If the database cannot be written.
        """
        now = datetime.now(timezone.utc).isoformat()
        try:
            with sqlite3.connect(self._path) as conn:
                conn.execute(
                    """
                    INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                                   updated_at = excluded.updated_at
                    """,
                    (key, value, now),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot persist {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            with sqlite3.connect(self._path) as conn:
                conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot delete {key}: {e}") from e

    def keys(self, prefix: str = "") -> list[str]:
        with sqlite3.connect(self._path) as conn:
            rows = conn.execute(
                "SELECT key FROM kv WHERE key LIKE ? ORDER BY key", (f"{prefix}%",)
            ).fetchall()
        return [r[0] for r in rows]


class MemoryKeyValueStore:
    """Session-scoped store; contents vanish with the process.

    ``max_bytes`` simulates a storage quota: a write that would exceed it
    raises ``StorageUnavailableError`` instead of being dropped.
    """

    def __init__(self, max_bytes: Optional[int] = None) -> None:
        self._data: dict[str, str] = {}
        self._max_bytes = max_bytes
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            if self._max_bytes is not None:
                used = sum(len(v) for k, v in self._data.items() if k != key)
                if used + len(value) > self._max_bytes:
                    raise StorageUnavailableError(
                        f"Storage quota exceeded writing {key} ({self._max_bytes} bytes)"
                    )
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))
