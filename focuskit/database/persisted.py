"""Typed value bound to one store key, written through and kept in sync."""

import logging
import threading
import uuid
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from pydantic import TypeAdapter, ValidationError

from focuskit.database.change_bus import ChangeBus
from focuskit.database.kv_store import KeyValueStore
from focuskit.utils.dispatch import Dispatcher
from focuskit.utils.events import Listeners, Unsubscribe

logger = logging.getLogger(__name__)

T = TypeVar("T")

Updater = Union[T, Callable[[T], T]]


class PersistedValue(Generic[T]):
    """One logical key holding one typed value.

    The value is loaded synchronously at construction (falling back to
    ``default`` when absent or malformed), persisted on every ``set`` and
    replaced wholesale when another context publishes the same key.

    With ``deferred_load`` the initial value is ``default`` and the stored
    value is back-filled through ``dispatcher``; callers should treat the
    first read as provisional. A ``set`` made before the back-fill lands
    wins over it.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        default: T,
        *,
        value_type: Optional[Any] = None,
        bus: Optional[ChangeBus] = None,
        origin: Optional[str] = None,
        deferred_load: bool = False,
        dispatcher: Optional[Dispatcher] = None,
    ) -> None:
        self._store = store
        self._key = key
        self._default = default
        self._adapter: TypeAdapter[T] = TypeAdapter(value_type or type(default))
        self._bus = bus
        self._origin = origin or uuid.uuid4().hex
        self._lock = threading.RLock()
        self._listeners: Listeners[T] = Listeners()
        self._written = False

        if deferred_load:
            if dispatcher is None:
                raise ValueError("deferred_load requires a dispatcher")
            self._value = default
            dispatcher.submit(self._backfill)
        else:
            self._value = self._load()

        self._unsubscribe_bus: Optional[Unsubscribe] = (
            bus.subscribe(self._on_external_change, self._origin) if bus else None
        )

    @property
    def key(self) -> str:
        return self._key

    @property
    def origin(self) -> str:
        return self._origin

    def get(self) -> T:
        with self._lock:
            return self._value

    def set(self, updater: "Updater[T]") -> T:
        """Apply ``updater`` (a value or a function of the current value) and persist.

        Raises:
            StorageUnavailableError: If the store rejects the write. The
                in-memory value is left unchanged in that case.
        """
        with self._lock:
            value = updater(self._value) if callable(updater) else updater
            serialized = self._adapter.dump_json(value).decode("utf-8")
            self._store.set(self._key, serialized)
            self._value = value
            self._written = True
        if self._bus is not None:
            self._bus.publish(self._key, serialized, self._origin)
        self._listeners.emit(value)
        return value

    def subscribe(self, listener: Callable[[T], None]) -> Unsubscribe:
        """Call ``listener`` with the new value after local and external changes."""
        return self._listeners.add(listener)

    def reload(self) -> T:
        """Re-read the store, replacing the in-memory value."""
        value = self._load()
        with self._lock:
            self._value = value
        self._listeners.emit(value)
        return value

    def close(self) -> None:
        """Stop following external changes."""
        if self._unsubscribe_bus is not None:
            self._unsubscribe_bus()
            self._unsubscribe_bus = None

    def _decode(self, raw: str) -> T:
        return self._adapter.validate_json(raw)

    def _load(self) -> T:
        raw = self._store.get(self._key)
        if raw is None:
            return self._default
        try:
            return self._decode(raw)
        except ValidationError as e:
            logger.warning("Malformed persisted value for %s, using default: %s", self._key, e)
            return self._default

    def _backfill(self) -> None:
        value = self._load()
        with self._lock:
            if self._written:
                return
            self._value = value
        self._listeners.emit(value)

    def _on_external_change(self, key: str, serialized: str) -> None:
        if key != self._key:
            return
        try:
            value = self._decode(serialized)
        except ValidationError as e:
            logger.warning("Ignoring malformed external change for %s: %s", key, e)
            return
        with self._lock:
            self._value = value
        self._listeners.emit(value)
