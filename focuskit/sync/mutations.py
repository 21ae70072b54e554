"""Optimistic create/update/delete over a local-only cache and a remote collection."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from pydantic import BaseModel

from focuskit.database import ChangeBus, KeyValueStore, PersistedValue, namespaced_key
from focuskit.errors import RemoteError
from focuskit.models import CollectionState, LocalId, Record, RecordId, RemoteId, utcnow
from focuskit.sync.collections import RemoteCollectionClient
from focuskit.sync.entities import EntitySpec
from focuskit.sync.reconciler import merge
from focuskit.utils.dispatch import Dispatcher, InlineDispatcher
from focuskit.utils.events import Listeners, Unsubscribe

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=Record)

# Fields the engine owns; callers cannot set them through create/update.
_RESERVED = frozenset({"id", "owner_id", "created_at", "updated_at"})

Changes = Union[BaseModel, dict[str, Any]]


@dataclass
class SyncReport:
    """Outcome of one ``sync_local_only`` pass."""

    synced: int = 0
    failed: int = 0
    deleted: int = 0
    pending: int = 0


class OptimisticMutationEngine(Generic[RecordT]):
    """Local-first mutations for one entity type.

    Local-only records and unacknowledged remote deletes live in a
    ``PersistedValue`` keyed per principal; the remote shadow lives in the
    ``RemoteCollectionClient`` cache. ``records()`` merges the two.

    Remote calls run through ``dispatcher`` and never raise into the
    caller. A failed create leaves the record local-only until
    ``sync_local_only``; a failed delete is queued for the same pass; a
    failed update is only logged.

    Args:
        entity: Entity descriptor.
        store: Key/value medium for the persisted collection state.
        remote: Remote collection, or ``None`` for purely local use.
        principal_id: Initial principal; ``None`` means anonymous.
        bus: Change bus for cross-context replication.
        dispatcher: Runs remote calls; defaults to inline execution.
        clock: Source of ``created_at``/``updated_at`` timestamps.
    """

    def __init__(
        self,
        entity: EntitySpec[RecordT],
        store: KeyValueStore,
        remote: Optional[RemoteCollectionClient[RecordT]] = None,
        principal_id: Optional[str] = None,
        *,
        bus: Optional[ChangeBus] = None,
        dispatcher: Optional[Dispatcher] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._entity = entity
        self._store = store
        self._remote = remote
        self._bus = bus
        self._dispatcher = dispatcher or InlineDispatcher()
        self._clock = clock
        self._principal_id = principal_id
        self._lock = threading.RLock()
        self._in_flight: set[LocalId] = set()
        self._promoted: dict[LocalId, RemoteId] = {}
        self._changed: Listeners[list[RecordT]] = Listeners()
        self._pending_changed: Listeners[int] = Listeners()
        self._promotions: Listeners[tuple[LocalId, RecordT]] = Listeners()
        self._state = self._open_state(principal_id)

    # -- state plumbing -------------------------------------------------

    def _open_state(self, principal_id: Optional[str]) -> PersistedValue:
        state = PersistedValue(
            self._store,
            namespaced_key(self._entity.name, principal_id),
            self._entity.state_model(),
            bus=self._bus,
        )
        state.subscribe(lambda _value: self._notify())
        return state

    @property
    def entity(self) -> EntitySpec[RecordT]:
        return self._entity

    @property
    def principal_id(self) -> Optional[str]:
        return self._principal_id

    @property
    def state(self) -> PersistedValue:
        """Persisted collection state (local-only records and view fields)."""
        return self._state

    def update_view(self, **fields: Any) -> CollectionState:
        """Validate and persist non-record fields of the collection state."""
        illegal = {"local_records", "pending_deletes"} & set(fields)
        if illegal:
            raise ValueError(f"Cannot set {sorted(illegal)} through update_view")
        model = self._entity.state_model
        return self._state.set(
            lambda s: model.model_validate(s.model_copy(update=fields).model_dump())
        )

    def rebind(self, principal_id: Optional[str]) -> None:
        """Switch to another principal's namespace and refetch its collection."""
        with self._lock:
            if principal_id == self._principal_id:
                return
            self._state.close()
            self._principal_id = principal_id
            self._state = self._open_state(principal_id)
            self._in_flight.clear()
            self._promoted.clear()
        self._notify()
        if self._remote_owner() is not None:
            self._dispatcher.submit(lambda: self.refresh(force=True))

    def close(self) -> None:
        self._state.close()

    def _remote_owner(self) -> Optional[str]:
        if self._remote is None:
            return None
        return self._principal_id

    def _resolve(self, record_id: RecordId) -> RecordId:
        if isinstance(record_id, LocalId):
            return self._promoted.get(record_id, record_id)
        return record_id

    def _notify(self) -> None:
        self._changed.emit(self.records())
        self._pending_changed.emit(self.pending_count)

    # -- read model -----------------------------------------------------

    def local_only(self) -> list[RecordT]:
        return list(self._state.get().local_records)

    @property
    def pending_count(self) -> int:
        """Local-only records plus queued deletes."""
        state = self._state.get()
        return len(state.local_records) + len(state.pending_deletes)

    def records(self) -> list[RecordT]:
        """Merged, newest-first collection for the current principal."""
        state = self._state.get()
        remote: list[RecordT] = []
        owner = self._remote_owner()
        if owner is not None:
            hidden = set(state.pending_deletes)
            remote = [r for r in self._remote.cached(owner) if r.id.value not in hidden]
        return merge(list(state.local_records), remote)

    def get(self, record_id: RecordId) -> Optional[RecordT]:
        target = self._resolve(record_id)
        for record in self.records():
            if record.id == target:
                return record
        return None

    def refresh(self, force: bool = False) -> list[RecordT]:
        """Fetch the remote collection (subject to staleness) and notify.

        Remote failures are logged; the cached shadow stays in place.
        """
        owner = self._remote_owner()
        if owner is not None:
            try:
                listed = self._remote.list(owner, force=force)
            except RemoteError as e:
                logger.info("Refresh of %s failed: %s", self._entity.table, e)
            else:
                present = {r.id.value for r in listed}
                # A queued delete whose row is already gone needs no retry.
                self._state.set(
                    lambda s: s.model_copy(
                        update={"pending_deletes": [d for d in s.pending_deletes if d in present]}
                    )
                    if any(d not in present for d in s.pending_deletes)
                    else s
                )
        self._notify()
        return self.records()

    # -- subscriptions --------------------------------------------------

    def subscribe(self, listener: Callable[[list[RecordT]], None]) -> Unsubscribe:
        """Receive the merged collection after every change."""
        return self._changed.add(listener)

    def on_pending_count(self, listener: Callable[[int], None]) -> Unsubscribe:
        return self._pending_changed.add(listener)

    def on_promoted(self, listener: Callable[[tuple[LocalId, RecordT]], None]) -> Unsubscribe:
        """Receive ``(local_id, remote_record)`` when a local record is promoted."""
        return self._promotions.add(listener)

    # -- mutations ------------------------------------------------------

    @staticmethod
    def _check_reserved(fields: dict[str, Any]) -> None:
        reserved = _RESERVED & set(fields)
        if reserved:
            raise ValueError(f"Fields {sorted(reserved)} are assigned by the engine")

    def create(self, fields: dict[str, Any]) -> RecordT:
        """Add a local-only record now and push it remotely in the background.

        Returns:
            The local-only record.

        Raises:
            ValueError: If ``fields`` sets an engine-owned field.
            pydantic.ValidationError: If ``fields`` do not fit the entity.
            StorageUnavailableError: If the local write fails.
        """
        self._check_reserved(fields)
        record = self._entity.record_model.model_validate(
            {
                **fields,
                "id": LocalId.new(),
                "owner_id": self._principal_id,
                "created_at": self._clock(),
            }
        )
        self._state.set(
            lambda s: s.model_copy(update={"local_records": s.local_records + [record]})
        )
        owner = self._remote_owner()
        if owner is not None:
            self._schedule_push(record, owner)
        return record

    def _schedule_push(self, record: RecordT, owner: str) -> bool:
        with self._lock:
            if record.id in self._in_flight:
                return False
            self._in_flight.add(record.id)
        state = self._state
        self._dispatcher.submit(lambda: self._push(state, record, owner))
        return True

    def _push(self, state: PersistedValue, snapshot: RecordT, owner: str) -> bool:
        try:
            created = self._remote.create(snapshot, owner)
        except RemoteError as e:
            logger.info("%s %s stays local-only: %s", self._entity.name, snapshot.id, e)
            with self._lock:
                self._in_flight.discard(snapshot.id)
            self._pending_changed.emit(self.pending_count)
            return False
        self._promote(state, snapshot, created, owner)
        return True

    def _promote(
        self, state: PersistedValue, snapshot: RecordT, created: RecordT, owner: str
    ) -> None:
        local_id = snapshot.id
        with self._lock:
            self._promoted[local_id] = created.id
            self._in_flight.discard(local_id)
        current = next((r for r in state.get().local_records if r.id == local_id), None)
        state.set(
            lambda s: s.model_copy(
                update={"local_records": [r for r in s.local_records if r.id != local_id]}
            )
        )
        logger.debug("Promoted %s %s -> %s", self._entity.name, local_id, created.id)

        if current is None:
            # Deleted locally while the create was in flight.
            self._delete_remote(state, owner, created.id)
        else:
            diff = self._entity.changed_fields(snapshot, current)
            if diff:
                changes = self._entity.update_model.model_validate(diff)
                self._update_remote(owner, created.id, changes)
        self._promotions.emit((local_id, created))
        self._notify()

    def update(self, record_id: RecordId, changes: Changes) -> Optional[RecordT]:
        """Apply ``changes`` locally now; push them remotely for remote records.

        Returns:
            The updated record, or ``None`` if the id is unknown.

        Raises:
            ValueError: If ``changes`` sets an engine-owned field.
            pydantic.ValidationError: If ``changes`` has unknown or invalid fields.
        """
        if isinstance(changes, BaseModel):
            changes = changes.model_dump(exclude_unset=True)
        self._check_reserved(changes)
        validated = self._entity.update_model.model_validate(changes)
        values = validated.model_dump(exclude_unset=True)
        now = self._clock()
        target = self._resolve(record_id)

        if isinstance(target, LocalId):
            updated: list[RecordT] = []

            def _apply(s: CollectionState) -> CollectionState:
                records = []
                for r in s.local_records:
                    if r.id == target:
                        r = self._apply_changes(r, values, now)
                        updated.append(r)
                    records.append(r)
                return s.model_copy(update={"local_records": records})

            self._state.set(_apply)
            return updated[0] if updated else None

        owner = self._remote_owner()
        current = next((r for r in self.records() if r.id == target), None)
        result = None
        if current is not None:
            result = self._apply_changes(current, values, now)
            if owner is not None:
                self._remote.patch_cached(owner, result)
            self._notify()
        if owner is not None:
            self._dispatcher.submit(lambda: self._update_remote(owner, target, validated))
        return result

    def _apply_changes(self, record: RecordT, values: dict[str, Any], now: datetime) -> RecordT:
        # Persisted records must always decode.
        return self._entity.record_model.model_validate(
            {**record.model_dump(), **values, "updated_at": now}
        )

    def _update_remote(self, owner: str, record_id: RemoteId, changes: BaseModel) -> None:
        try:
            self._remote.update(owner, record_id, changes, self._clock())
        except RemoteError as e:
            logger.warning("Remote update of %s %s failed: %s", self._entity.name, record_id, e)
            return
        self._notify()

    def delete(self, record_id: RecordId) -> bool:
        """Remove the record from the read-model now; delete remotely if confirmed.

        Returns:
            True if a record was removed from local state or the remote shadow.
        """
        target = self._resolve(record_id)
        if isinstance(target, LocalId):
            before = len(self._state.get().local_records)
            self._state.set(
                lambda s: s.model_copy(
                    update={"local_records": [r for r in s.local_records if r.id != target]}
                )
            )
            return len(self._state.get().local_records) < before

        owner = self._remote_owner()
        if owner is None:
            return False
        known = any(r.id == target for r in self._remote.cached(owner))
        self._remote.evict(owner, target)
        with self._lock:
            self._promoted = {k: v for k, v in self._promoted.items() if v != target}
        self._notify()
        state = self._state
        self._dispatcher.submit(lambda: self._delete_remote(state, owner, target))
        return known

    def _delete_remote(self, state: PersistedValue, owner: str, record_id: RemoteId) -> bool:
        try:
            self._remote.delete(owner, record_id)
        except RemoteError as e:
            logger.warning(
                "Remote delete of %s %s failed, queued for sync: %s",
                self._entity.name,
                record_id,
                e,
            )
            state.set(
                lambda s: s
                if record_id.value in s.pending_deletes
                else s.model_copy(update={"pending_deletes": s.pending_deletes + [record_id.value]})
            )
            return False
        state.set(
            lambda s: s.model_copy(
                update={"pending_deletes": [d for d in s.pending_deletes if d != record_id.value]}
            )
            if record_id.value in s.pending_deletes
            else s
        )
        return True

    def sync_local_only(self) -> SyncReport:
        """Push every local-only record and retry queued deletes, in the caller's thread.

        This is the only retry path; nothing retries in the background.
        """
        report = SyncReport()
        owner = self._remote_owner()
        if owner is None:
            report.pending = self.pending_count
            return report

        state = self._state
        for record in list(state.get().local_records):
            with self._lock:
                if record.id in self._in_flight:
                    continue
                self._in_flight.add(record.id)
            if self._push(state, record, owner):
                report.synced += 1
            else:
                report.failed += 1

        for value in list(state.get().pending_deletes):
            if self._delete_remote(state, owner, RemoteId(value=value)):
                report.deleted += 1
            else:
                report.failed += 1

        report.pending = self.pending_count
        logger.info(
            "Synced %s: %d pushed, %d deleted, %d failed",
            self._entity.table,
            report.synced,
            report.deleted,
            report.failed,
        )
        self._notify()
        return report
