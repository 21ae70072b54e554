"""Unit tests for the session timer state machine."""

import pytest

from focuskit.core import SessionCompleted, SessionTimerEngine
from focuskit.database import InMemoryChangeBus, MemoryKeyValueStore, namespaced_key
from focuskit.models import (
    LocalId,
    RemoteId,
    SessionLogEntry,
    TimerSettings,
    TimerState,
)
from focuskit.sync import InMemoryRemoteStore, OptimisticMutationEngine

from conftest import PRINCIPAL, ManualTicker


def _timer(store, ticker, settings=None, **kwargs) -> SessionTimerEngine:
    return SessionTimerEngine(store, settings or TimerSettings(), ticker=ticker, **kwargs)


def _run_session(timer: SessionTimerEngine, ticker: ManualTicker) -> None:
    timer.start()
    ticker.advance(timer.state.remaining_seconds)


def _assert_duration_invariant(timer: SessionTimerEngine) -> None:
    state = timer.state
    assert 0 <= state.remaining_seconds <= timer.duration_for(state.session_type)


def test_focus_session_completes_into_short_break(
    kv_store: MemoryKeyValueStore, ticker: ManualTicker
) -> None:
    """1500 ticks of focus end in a short break with one completed session."""
    timer = _timer(kv_store, ticker)
    completions: list[SessionCompleted] = []
    timer.on_completed(completions.append)

    timer.start()
    ticker.advance(1500)

    state = timer.state
    assert state.session_type == "short_break"
    assert state.completed_focus_sessions == 1
    assert state.remaining_seconds == 300
    assert not state.is_running
    assert completions == [
        SessionCompleted(finished="focus", upcoming="short_break", completed_focus_sessions=1)
    ]


def test_tick_decrements_and_clamps(kv_store: MemoryKeyValueStore, ticker: ManualTicker) -> None:
    """Ticking past zero completes once and never goes negative."""
    timer = _timer(kv_store, ticker)
    completions: list[SessionCompleted] = []
    timer.on_completed(completions.append)
    timer.start()
    ticker.advance(10)
    assert timer.state.remaining_seconds == 1490

    ticker.advance(2000)
    timer.tick()
    timer.tick()

    assert len(completions) == 1
    _assert_duration_invariant(timer)


def test_start_twice_is_noop(kv_store: MemoryKeyValueStore, ticker: ManualTicker) -> None:
    timer = _timer(kv_store, ticker)
    assert timer.start()
    assert not timer.start()
    assert ticker.starts == 1


def test_long_break_cadence(kv_store: MemoryKeyValueStore, ticker: ManualTicker) -> None:
    """With N=4, completions 4 and 8 lead to long breaks, the rest to short ones."""
    timer = _timer(kv_store, ticker, TimerSettings(sessions_until_long_break=4))
    breaks = []
    for _ in range(8):
        _run_session(timer, ticker)  # focus
        breaks.append(timer.state.session_type)
        _assert_duration_invariant(timer)
        _run_session(timer, ticker)  # break
        assert timer.state.session_type == "focus"

    assert breaks == ["short_break"] * 3 + ["long_break"] + ["short_break"] * 3 + ["long_break"]
    assert timer.state.completed_focus_sessions == 8
    assert timer.state.session_ordinal == 9


def test_pause_keeps_remaining(kv_store: MemoryKeyValueStore, ticker: ManualTicker) -> None:
    timer = _timer(kv_store, ticker)
    assert not timer.pause()
    timer.start()
    ticker.advance(100)
    assert timer.pause()
    assert not ticker.running
    assert timer.state.remaining_seconds == 1400
    assert not timer.state.is_running


def test_reset_restores_duration(kv_store: MemoryKeyValueStore, ticker: ManualTicker) -> None:
    timer = _timer(kv_store, ticker)
    timer.start()
    ticker.advance(100)
    timer.reset()
    assert timer.state.remaining_seconds == 1500
    assert not timer.state.is_running
    assert timer.state.active_session_log_id is None


def test_switch_session_type(kv_store: MemoryKeyValueStore, ticker: ManualTicker) -> None:
    timer = _timer(kv_store, ticker)
    timer.start()
    timer.switch_session_type("long_break")
    assert timer.state.session_type == "long_break"
    assert timer.state.remaining_seconds == 900
    assert not timer.state.is_running
    with pytest.raises(ValueError):
        timer.switch_session_type("nap")


def test_settings_change_while_stopped_applies_now(
    kv_store: MemoryKeyValueStore, ticker: ManualTicker
) -> None:
    """focus 25 -> 30 while stopped: remaining becomes 1800 immediately."""
    timer = _timer(kv_store, ticker)
    timer.apply_settings(TimerSettings(focus_minutes=30))
    assert timer.state.remaining_seconds == 1800


def test_settings_change_while_running_is_deferred(
    kv_store: MemoryKeyValueStore, ticker: ManualTicker
) -> None:
    """While running the change waits for the next transition."""
    timer = _timer(kv_store, ticker)
    timer.start()
    ticker.advance(10)

    timer.apply_settings(TimerSettings(focus_minutes=30, short_break_minutes=10))
    assert timer.state.remaining_seconds == 1490
    assert timer.duration_for("focus") == 1500

    ticker.advance(1490)
    assert timer.state.session_type == "short_break"
    assert timer.state.remaining_seconds == 600


def test_reload_stops_running_timer(kv_store: MemoryKeyValueStore, ticker: ManualTicker) -> None:
    """A reloaded timer is never silently resumed."""
    timer = _timer(kv_store, ticker)
    timer.start()
    ticker.advance(42)

    reloaded = _timer(kv_store, ManualTicker())

    assert not reloaded.state.is_running
    assert reloaded.state.remaining_seconds == 1458
    assert reloaded.state.session_type == "focus"
    assert reloaded.stored_state.is_running  # the stored copy is left alone


def test_reload_clamps_to_shorter_duration(kv_store: MemoryKeyValueStore) -> None:
    kv_store.set(
        namespaced_key("timer", None),
        TimerState(remaining_seconds=3000, session_type="focus").model_dump_json(),
    )
    timer = _timer(kv_store, ManualTicker(), TimerSettings(focus_minutes=25))
    assert timer.state.remaining_seconds == 1500


def test_corrupt_timer_state_uses_default(kv_store: MemoryKeyValueStore) -> None:
    kv_store.set(namespaced_key("timer", None), "{{{")
    timer = _timer(kv_store, ManualTicker())
    assert timer.state.remaining_seconds == 1500


def test_progress(kv_store: MemoryKeyValueStore, ticker: ManualTicker) -> None:
    timer = _timer(kv_store, ticker)
    assert timer.progress() == 0
    timer.start()
    ticker.advance(750)
    assert timer.progress() == pytest.approx(50.0)


def test_listener_failure_does_not_stop_ticking(
    kv_store: MemoryKeyValueStore, ticker: ManualTicker
) -> None:
    timer = _timer(kv_store, ticker)

    def _boom(state: TimerState) -> None:
        raise RuntimeError("listener failed")

    timer.on_change(_boom)
    timer.start()
    ticker.advance(3)
    assert timer.state.remaining_seconds == 1497


def test_session_log_lifecycle(
    kv_store: MemoryKeyValueStore,
    ticker: ManualTicker,
    remote: InMemoryRemoteStore,
    session_engine: OptimisticMutationEngine[SessionLogEntry],
) -> None:
    """Start opens a log entry, completion marks it completed."""
    timer = _timer(
        kv_store,
        ticker,
        TimerSettings(focus_minutes=1),
        principal_id=PRINCIPAL,
        sessions=session_engine,
    )
    timer.start()

    log_id = timer.state.active_session_log_id
    assert isinstance(log_id, RemoteId)  # promoted by the inline dispatcher
    [row] = remote.rows("focus_sessions")
    assert row["completed"] is False
    assert row["session_type"] == "focus"
    assert row["duration_minutes"] == 1

    ticker.advance(60)

    [row] = remote.rows("focus_sessions")
    assert row["completed"] is True
    assert row["completed_at"] is not None
    assert timer.state.active_session_log_id is None


def test_offline_session_log_is_completed_locally_and_synced(
    kv_store: MemoryKeyValueStore,
    ticker: ManualTicker,
    remote: InMemoryRemoteStore,
    session_engine: OptimisticMutationEngine[SessionLogEntry],
) -> None:
    remote.set_online(False)
    timer = _timer(
        kv_store,
        ticker,
        TimerSettings(focus_minutes=1),
        principal_id=PRINCIPAL,
        sessions=session_engine,
    )
    timer.start()
    assert isinstance(timer.state.active_session_log_id, LocalId)
    ticker.advance(60)

    [entry] = session_engine.local_only()
    assert entry.completed

    remote.set_online(True)
    session_engine.sync_local_only()
    [row] = remote.rows("focus_sessions")
    assert row["completed"] is True


def test_resume_after_pause_reuses_log_entry(
    kv_store: MemoryKeyValueStore,
    ticker: ManualTicker,
    remote: InMemoryRemoteStore,
    session_engine: OptimisticMutationEngine[SessionLogEntry],
) -> None:
    timer = _timer(kv_store, ticker, principal_id=PRINCIPAL, sessions=session_engine)
    timer.start()
    ticker.advance(5)
    timer.pause()
    timer.start()
    assert len(remote.rows("focus_sessions")) == 1


def test_no_log_without_principal(
    kv_store: MemoryKeyValueStore,
    ticker: ManualTicker,
    session_engine: OptimisticMutationEngine[SessionLogEntry],
) -> None:
    timer = _timer(kv_store, ticker, sessions=session_engine)
    timer.start()
    assert timer.state.active_session_log_id is None
    assert session_engine.records() == []


def test_pause_from_other_context(ticker: ManualTicker) -> None:
    """A pause written by another context stops this context's ticking."""
    store = MemoryKeyValueStore()
    bus = InMemoryChangeBus()
    runner = _timer(store, ticker, bus=bus)
    other = _timer(store, ManualTicker(), bus=bus)

    runner.start()
    ticker.advance(10)
    assert other.state.is_running  # mirrors the stored copy

    assert other.pause()

    assert not runner.state.is_running
    assert not ticker.running
    assert runner.state.remaining_seconds == 1490


def test_second_context_on_load_can_pause_stored_timer(ticker: ManualTicker) -> None:
    """A context opened after start can still pause the stored running timer."""
    store = MemoryKeyValueStore()
    bus = InMemoryChangeBus()
    runner = _timer(store, ticker, bus=bus)
    runner.start()
    ticker.advance(3)

    late = _timer(store, ManualTicker(), bus=bus)
    assert not late.state.is_running
    assert late.pause()
    assert not runner.state.is_running


def test_principal_rebind_switches_timer(
    kv_store: MemoryKeyValueStore, ticker: ManualTicker
) -> None:
    timer = _timer(kv_store, ticker)
    timer.switch_session_type("long_break")
    timer.rebind("someone")
    assert timer.state.session_type == "focus"
    timer.rebind(None)
    assert timer.state.session_type == "long_break"
