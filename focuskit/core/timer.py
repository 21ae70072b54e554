"""Session timer state machine (focus / short break / long break)."""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from focuskit.database import ChangeBus, KeyValueStore, PersistedValue, namespaced_key
from focuskit.errors import FocusKitError
from focuskit.models import (
    FOCUS,
    LONG_BREAK,
    SESSION_TYPES,
    SHORT_BREAK,
    LocalId,
    RecordId,
    SessionDurations,
    SessionLogEntry,
    SessionLogUpdate,
    SessionType,
    TimerSettings,
    TimerState,
    utcnow,
)
from focuskit.sync.mutations import OptimisticMutationEngine
from focuskit.utils.events import Listeners, Unsubscribe

logger = logging.getLogger(__name__)

TIMER_ENTITY = "timer"


@dataclass(frozen=True)
class SessionCompleted:
    """Emitted when a session counts down to zero."""

    finished: SessionType
    upcoming: SessionType
    completed_focus_sessions: int
    session_log_id: Optional[RecordId] = None


class Ticker(Protocol):
    """Repeating timer driving ``SessionTimerEngine.tick``."""

    @property
    def running(self) -> bool: ...

    def start(self, callback: Callable[[], None]) -> None: ...

    def stop(self) -> None: ...


class IntervalTicker:
    """Calls ``callback`` every ``interval`` seconds from a daemon thread.

    Ticks are scheduled against a monotonic start time so a slow callback
    does not push later ticks back.
    """

    def __init__(self, interval: float = 1.0) -> None:
        self._interval = interval
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._stop_event is not None

    def start(self, callback: Callable[[], None]) -> None:
        if self.running:
            return
        stop_event = threading.Event()
        interval = self._interval

        def _run() -> None:
            started = time.monotonic()
            count = 0
            while True:
                count += 1
                delay = max(0.0, started + count * interval - time.monotonic())
                if stop_event.wait(delay):
                    return
                try:
                    callback()
                except Exception:
                    logger.exception("Timer tick failed")

        self._stop_event = stop_event
        self._thread = threading.Thread(target=_run, name="focuskit-ticker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        # Not joined: a tick blocked on the engine lock exits on its own
        # once it sees its event set.
        if self._stop_event is not None:
            self._stop_event.set()
        self._stop_event = None
        self._thread = None


class SessionTimerEngine:
    """Countdown over session types, persisted per principal.

    The state is loaded at construction with ``is_running`` forced off and
    ``remaining_seconds`` clamped to the configured duration; the
    normalized copy is not written back so opening a second context never
    stops a timer that is running in another one.

    Session-log entries are written through ``sessions`` as best-effort
    side effects; the tick path never waits for the remote store.

    Args:
        store: Key/value medium for the timer state.
        settings: Initial durations and cadence.
        principal_id: Current principal; ``None`` disables session logs.
        sessions: Session-log mutation engine.
        bus: Change bus for cross-context replication.
        ticker: Tick source; defaults to a one-second ``IntervalTicker``.
        clock: Timestamp source.
    """

    def __init__(
        self,
        store: KeyValueStore,
        settings: Optional[TimerSettings] = None,
        *,
        principal_id: Optional[str] = None,
        sessions: Optional[OptimisticMutationEngine[SessionLogEntry]] = None,
        bus: Optional[ChangeBus] = None,
        ticker: Optional[Ticker] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._bus = bus
        self._sessions = sessions
        self._ticker = ticker or IntervalTicker()
        self._clock = clock
        self._lock = threading.RLock()
        self._durations = SessionDurations.from_settings(settings or TimerSettings())
        self._pending_durations: Optional[SessionDurations] = None
        self._changed: Listeners[TimerState] = Listeners()
        self._completed: Listeners[SessionCompleted] = Listeners()
        self._principal_id = principal_id
        self._persisted, self._state = self._open(principal_id)
        self._unsubscribe_promoted: Optional[Unsubscribe] = (
            sessions.on_promoted(self._on_log_promoted) if sessions is not None else None
        )

    def _open(self, principal_id: Optional[str]) -> tuple[PersistedValue[TimerState], TimerState]:
        persisted = PersistedValue(
            self._store,
            namespaced_key(TIMER_ENTITY, principal_id),
            TimerState.initial(self._durations),
            bus=self._bus,
        )
        persisted.subscribe(self._on_stored_change)
        return persisted, self._normalize(persisted.get(), stop=True)

    def _normalize(self, state: TimerState, stop: bool) -> TimerState:
        duration = self._durations.for_type(state.session_type)
        update: dict = {}
        if stop and state.is_running:
            update["is_running"] = False
        if state.remaining_seconds > duration:
            update["remaining_seconds"] = duration
        return state.model_copy(update=update) if update else state

    # -- read side ------------------------------------------------------

    @property
    def state(self) -> TimerState:
        with self._lock:
            return self._state

    @property
    def stored_state(self) -> TimerState:
        """Last persisted state, which may show a timer running in another context."""
        return self._persisted.get()

    @property
    def durations(self) -> SessionDurations:
        return self._durations

    def duration_for(self, session_type: SessionType) -> int:
        return self._durations.for_type(session_type)

    def progress(self) -> float:
        """Elapsed share of the current session, 0-100."""
        state = self.state
        duration = self.duration_for(state.session_type)
        if duration <= 0:
            return 0.0
        return (duration - state.remaining_seconds) / duration * 100

    def on_change(self, listener: Callable[[TimerState], None]) -> Unsubscribe:
        return self._changed.add(listener)

    def on_completed(self, listener: Callable[[SessionCompleted], None]) -> Unsubscribe:
        return self._completed.add(listener)

    # -- transitions ----------------------------------------------------

    def _commit(self, state: TimerState) -> None:
        state = state.model_copy(update={"last_updated": self._clock()})
        previous, self._state = self._state, state
        try:
            self._persisted.set(state)
        except FocusKitError:
            self._state = previous
            raise
        self._changed.emit(state)

    def _take_pending_settings(self) -> None:
        if self._pending_durations is not None:
            self._durations = self._pending_durations
            self._pending_durations = None

    def start(self) -> bool:
        """Begin ticking. Returns False if already running."""
        with self._lock:
            if self._state.is_running:
                return False
            log_id = self._state.active_session_log_id
            if log_id is None:
                log_id = self._open_session_log()
            self._commit(
                self._state.model_copy(update={"is_running": True, "active_session_log_id": log_id})
            )
        self._ticker.start(self.tick)
        return True

    def _open_session_log(self) -> Optional[RecordId]:
        if self._sessions is None or self._principal_id is None:
            return None
        state = self._state
        try:
            entry = self._sessions.create(
                {
                    "session_type": state.session_type,
                    "duration_minutes": self.duration_for(state.session_type) // 60,
                    "completed": False,
                    "started_at": self._clock(),
                }
            )
        except (FocusKitError, ValidationError) as e:
            logger.warning("Could not open session log, timing locally: %s", e)
            return None
        # The create may already have been promoted by an inline dispatcher.
        current = self._sessions.get(entry.id)
        return current.id if current is not None else entry.id

    def pause(self) -> bool:
        """Stop ticking and keep the remaining time.

        Also stops a timer that the stored state shows running in another
        context; that context picks the paused state up from the bus.

        Returns:
            False if no timer was running.
        """
        with self._lock:
            if self._state.is_running:
                base = self._state
            else:
                stored = self._persisted.get()
                if not stored.is_running:
                    return False
                base = self._normalize(stored, stop=False)
            self._ticker.stop()
            self._commit(base.model_copy(update={"is_running": False}))
        return True

    def reset(self) -> None:
        """Restart the current session type from its full duration."""
        with self._lock:
            self._ticker.stop()
            self._take_pending_settings()
            state = self._state
            self._commit(
                state.model_copy(
                    update={
                        "remaining_seconds": self.duration_for(state.session_type),
                        "is_running": False,
                        "active_session_log_id": None,
                    }
                )
            )

    def switch_session_type(self, session_type: SessionType) -> None:
        """Jump to ``session_type`` with its full duration, stopped.

        Raises:
            ValueError: If ``session_type`` is not a known session type.
        """
        if session_type not in SESSION_TYPES:
            raise ValueError(f"Unknown session type: {session_type}")
        with self._lock:
            self._ticker.stop()
            self._take_pending_settings()
            self._commit(
                self._state.model_copy(
                    update={
                        "session_type": session_type,
                        "remaining_seconds": self.duration_for(session_type),
                        "is_running": False,
                        "active_session_log_id": None,
                    }
                )
            )

    def tick(self) -> None:
        """Advance one second; reaching zero completes the session."""
        with self._lock:
            state = self._state
            if not state.is_running:
                return
            remaining = max(0, state.remaining_seconds - 1)
            if remaining == 0:
                self._complete()
            else:
                self._commit(state.model_copy(update={"remaining_seconds": remaining}))

    def _complete(self) -> None:
        state = self._state
        self._ticker.stop()
        self._close_session_log(state.active_session_log_id)
        self._take_pending_settings()

        finished = state.session_type
        completed = state.completed_focus_sessions
        ordinal = state.session_ordinal
        if finished == FOCUS:
            cadence = self._durations.sessions_until_long_break
            upcoming = LONG_BREAK if (completed + 1) % cadence == 0 else SHORT_BREAK
            completed += 1
        else:
            upcoming = FOCUS
            ordinal += 1

        self._commit(
            state.model_copy(
                update={
                    "session_type": upcoming,
                    "remaining_seconds": self.duration_for(upcoming),
                    "is_running": False,
                    "session_ordinal": ordinal,
                    "completed_focus_sessions": completed,
                    "active_session_log_id": None,
                }
            )
        )
        logger.info("%s session complete, next: %s", finished, upcoming)
        self._completed.emit(
            SessionCompleted(
                finished=finished,
                upcoming=upcoming,
                completed_focus_sessions=completed,
                session_log_id=state.active_session_log_id,
            )
        )

    def _close_session_log(self, log_id: Optional[RecordId]) -> None:
        if log_id is None or self._sessions is None:
            return
        try:
            self._sessions.update(
                log_id, SessionLogUpdate(completed=True, completed_at=self._clock())
            )
        except (FocusKitError, ValidationError) as e:
            logger.warning("Could not close session log %s: %s", log_id, e)

    # -- configuration --------------------------------------------------

    def apply_settings(self, settings: TimerSettings) -> None:
        """Take new durations now when stopped, or at the next transition when running."""
        durations = SessionDurations.from_settings(settings)
        with self._lock:
            if self._state.is_running:
                self._pending_durations = durations
                return
            self._pending_durations = None
            if durations == self._durations:
                return
            self._durations = durations
            state = self._state
            self._commit(
                state.model_copy(
                    update={"remaining_seconds": self.duration_for(state.session_type)}
                )
            )

    def rebind(
        self, principal_id: Optional[str], settings: Optional[TimerSettings] = None
    ) -> None:
        """Switch to another principal's timer; the current one is paused first.

        Args:
            principal_id: Principal whose stored timer is loaded.
            settings: That principal's durations. The stored state is
                clamped to them but not reset.
        """
        with self._lock:
            if principal_id == self._principal_id:
                return
            if self._state.is_running:
                self.pause()
            self._persisted.close()
            self._principal_id = principal_id
            if settings is not None:
                self._durations = SessionDurations.from_settings(settings)
                self._pending_durations = None
            self._persisted, self._state = self._open(principal_id)
            self._changed.emit(self._state)

    def close(self) -> None:
        self._ticker.stop()
        self._persisted.close()
        if self._unsubscribe_promoted is not None:
            self._unsubscribe_promoted()
            self._unsubscribe_promoted = None

    # -- external events ------------------------------------------------

    def _on_stored_change(self, value: TimerState) -> None:
        with self._lock:
            if value is self._state:
                return
            # Another context wrote the timer; its copy wins wholesale.
            incoming = self._normalize(value, stop=False)
            if not incoming.is_running:
                self._ticker.stop()
            self._state = incoming
        self._changed.emit(incoming)

    def _on_log_promoted(self, promotion: tuple[LocalId, SessionLogEntry]) -> None:
        local_id, entry = promotion
        with self._lock:
            if self._state.active_session_log_id != local_id:
                return
            try:
                self._commit(self._state.model_copy(update={"active_session_log_id": entry.id}))
            except FocusKitError as e:
                logger.warning("Could not record promoted session log %s: %s", entry.id, e)
