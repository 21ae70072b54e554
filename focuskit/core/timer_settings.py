"""Timer durations and cadence, persisted per principal."""

from typing import Any, Callable, Optional

from focuskit.database import ChangeBus, KeyValueStore, PersistedValue, namespaced_key
from focuskit.models import TimerSettings
from focuskit.utils.events import Listeners, Unsubscribe

SETTINGS_ENTITY = "timer-settings"


class TimerSettingsStore:
    """Persisted ``TimerSettings`` with change notification.

    Listeners fire for local updates and for updates made by other
    contexts through the change bus.
    """

    def __init__(
        self,
        store: KeyValueStore,
        principal_id: Optional[str] = None,
        bus: Optional[ChangeBus] = None,
    ) -> None:
        self._store = store
        self._bus = bus
        self._principal_id = principal_id
        self._listeners: Listeners[TimerSettings] = Listeners()
        self._value = self._open(principal_id)

    def _open(self, principal_id: Optional[str]) -> PersistedValue[TimerSettings]:
        value = PersistedValue(
            self._store,
            namespaced_key(SETTINGS_ENTITY, principal_id),
            TimerSettings(),
            bus=self._bus,
        )
        value.subscribe(self._listeners.emit)
        return value

    def get(self) -> TimerSettings:
        return self._value.get()

    def update(self, **changes: Any) -> TimerSettings:
        """Merge ``changes`` into the current settings; values are clamped.

        Raises:
            ValueError: If a key is not a timer setting.
        """
        current = self._value.get()
        unknown = set(changes) - set(TimerSettings.model_fields)
        if unknown:
            raise ValueError(f"Unknown timer settings: {sorted(unknown)}")
        return self._value.set(TimerSettings.model_validate({**current.model_dump(), **changes}))

    def peek(self, principal_id: Optional[str]) -> TimerSettings:
        """Settings stored for ``principal_id``, without switching to them."""
        return PersistedValue(
            self._store, namespaced_key(SETTINGS_ENTITY, principal_id), TimerSettings()
        ).get()

    def subscribe(self, listener: Callable[[TimerSettings], None]) -> Unsubscribe:
        return self._listeners.add(listener)

    def rebind(self, principal_id: Optional[str]) -> None:
        """Follow another principal's settings and announce them."""
        if principal_id == self._principal_id:
            return
        self._value.close()
        self._principal_id = principal_id
        self._value = self._open(principal_id)
        self._listeners.emit(self._value.get())

    def close(self) -> None:
        self._value.close()
