"""Owner-scoped remote collection client with a staleness window."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from focuskit.errors import RemoteError
from focuskit.models import Record, RemoteId
from focuskit.sync.entities import EntitySpec
from focuskit.sync.remote_store import RemoteStore, Row

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=Record)

# Seconds a fetched listing stays fresh before ``list`` goes back to the store.
DEFAULT_STALE_AFTER = 300.0


class _Snapshot(Generic[RecordT]):
    def __init__(self, records: list[RecordT], fetched_at: float) -> None:
        self.records = records
        self.fetched_at = fetched_at


class RemoteCollectionClient(Generic[RecordT]):
    """List/create/update/delete for one entity type, cached per owner.

    The cached listing is the remote shadow the read-model is built from.
    Writes that succeed are folded into the cache so a refetch is not
    needed to see them.
    """

    def __init__(
        self,
        store: RemoteStore,
        entity: EntitySpec[RecordT],
        stale_after: float = DEFAULT_STALE_AFTER,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._entity = entity
        self._stale_after = stale_after
        self._clock = clock
        self._snapshots: dict[str, _Snapshot[RecordT]] = {}
        self._lock = threading.Lock()

    @property
    def entity(self) -> EntitySpec[RecordT]:
        return self._entity

    def _decode(self, row: Row) -> RecordT:
        try:
            return self._entity.from_row(row)
        except (KeyError, ValidationError) as e:
            raise RemoteError(f"Undecodable {self._entity.table} row: {e}") from e

    def list(self, owner_id: str, force: bool = False) -> list[RecordT]:
        """Return the owner's records, fetching when the cache is stale.

        Args:
            owner_id: Principal whose rows are listed.
            force: Skip the staleness window and always fetch.

        Raises:
            RemoteError: If the fetch fails.
        """
        now = self._clock()
        with self._lock:
            snapshot = self._snapshots.get(owner_id)
            if (
                snapshot is not None
                and not force
                and now - snapshot.fetched_at < self._stale_after
            ):
                return list(snapshot.records)

        rows = self._store.select(
            self._entity.table, owner_id, include_public=self._entity.include_public
        )
        records: list[RecordT] = []
        for row in rows:
            try:
                records.append(self._entity.from_row(row))
            except (KeyError, ValidationError) as e:
                logger.warning(
                    "Skipping undecodable %s row %s: %s", self._entity.table, row.get("id"), e
                )
        with self._lock:
            self._snapshots[owner_id] = _Snapshot(records, self._clock())
        return list(records)

    def cached(self, owner_id: str) -> list[RecordT]:
        """Last fetched listing for the owner, without touching the store."""
        with self._lock:
            snapshot = self._snapshots.get(owner_id)
            return list(snapshot.records) if snapshot else []

    def create(self, record: RecordT, owner_id: str) -> RecordT:
        """Insert the record; the store assigns its id.

        Raises:
            RemoteError: If the insert fails or the returned row is unusable.
        """
        row = self._store.insert(self._entity.table, self._entity.to_row(record, owner_id))
        created = self._decode(row)
        self._upsert_cached(owner_id, created)
        return created

    def update(
        self, owner_id: str, record_id: RemoteId, changes: BaseModel, now: datetime
    ) -> RecordT:
        """Patch the record's set fields.

        Raises:
            RemoteError: If the update fails.
        """
        patch = self._entity.patch_row(changes, now)
        row = self._store.update(self._entity.table, record_id.value, patch)
        updated = self._decode(row)
        self._upsert_cached(owner_id, updated)
        return updated

    def delete(self, owner_id: str, record_id: RemoteId) -> None:
        """Delete by id.

        Raises:
            RemoteError: If the delete fails.
        """
        self._store.delete(self._entity.table, record_id.value)
        self.evict(owner_id, record_id)

    def patch_cached(self, owner_id: str, record: RecordT) -> None:
        """Replace a cached record with an optimistically updated copy."""
        with self._lock:
            snapshot = self._snapshots.get(owner_id)
            if snapshot is None:
                return
            snapshot.records = [record if r.id == record.id else r for r in snapshot.records]

    def evict(self, owner_id: str, record_id: RemoteId) -> None:
        with self._lock:
            snapshot = self._snapshots.get(owner_id)
            if snapshot is not None:
                snapshot.records = [r for r in snapshot.records if r.id != record_id]

    def invalidate(self, owner_id: Optional[str] = None) -> None:
        """Drop the cached listing for one owner, or for all owners."""
        with self._lock:
            if owner_id is None:
                self._snapshots.clear()
            else:
                self._snapshots.pop(owner_id, None)

    def _upsert_cached(self, owner_id: str, record: RecordT) -> None:
        with self._lock:
            snapshot = self._snapshots.get(owner_id)
            if snapshot is None:
                # Not listed yet; keep the staleness window closed so the
                # next ``list`` still fetches.
                self._snapshots[owner_id] = _Snapshot([record], float("-inf"))
                return
            others = [r for r in snapshot.records if r.id != record.id]
            snapshot.records = [record] + others
