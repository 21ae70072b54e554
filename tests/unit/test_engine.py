"""Unit tests for the Engine composition root."""

from pathlib import Path

import pytest

from focuskit.config import Settings
from focuskit.core import Engine
from focuskit.database import MemoryKeyValueStore
from focuskit.sync import InMemoryRemoteStore
from focuskit.utils.dispatch import InlineDispatcher

from conftest import ManualTicker


@pytest.fixture
def engine(remote: InMemoryRemoteStore, ticker: ManualTicker) -> Engine:
    e = Engine(
        Settings(storage_backend="memory"),
        remote_store=remote,
        dispatcher=InlineDispatcher(),
        ticker=ticker,
        principal_id="u1",
    )
    yield e
    e.close()


def test_settings_change_reaches_timer(engine: Engine) -> None:
    """Updating timer settings recomputes the stopped timer."""
    engine.timer_settings.update(focus_minutes=30)
    assert engine.timer.state.remaining_seconds == 1800


def test_settings_update_rejects_unknown_key(engine: Engine) -> None:
    with pytest.raises(ValueError):
        engine.timer_settings.update(focus_seconds=10)


def test_settings_are_clamped(engine: Engine) -> None:
    updated = engine.timer_settings.update(focus_minutes=999, sessions_until_long_break=1)
    assert updated.focus_minutes == 120
    assert updated.sessions_until_long_break == 2


def test_sync_all_reports_per_entity(engine: Engine, remote: InMemoryRemoteStore) -> None:
    remote.set_online(False)
    engine.tasks.add("A")
    engine.quotes.add("Q")
    assert engine.pending_count() == 2

    remote.set_online(True)
    reports = engine.sync_all()

    assert reports["task"].synced == 1
    assert reports["quotes"].synced == 1
    assert reports["session-log"].synced == 0
    assert engine.pending_count() == 0


def test_principal_change_rebinds_everything(engine: Engine, remote: InMemoryRemoteStore) -> None:
    """Switching principal swaps collections, settings and timer namespaces."""
    remote.set_online(False)
    engine.tasks.add("u1 task")
    engine.timer_settings.update(focus_minutes=50)

    engine.principal.set("u2")

    assert engine.tasks.all_tasks() == []
    assert engine.timer_settings.get().focus_minutes == 25
    assert engine.timer.state.remaining_seconds == 1500

    engine.principal.set("u1")
    assert [t.title for t in engine.tasks.all_tasks()] == ["u1 task"]
    assert engine.timer_settings.get().focus_minutes == 50


def test_principal_switch_restores_paused_timer(
    engine: Engine, ticker: ManualTicker
) -> None:
    """A paused timer comes back with its remaining time after switching away and back."""
    engine.principal.set("b")
    engine.timer_settings.update(focus_minutes=30)
    engine.timer.start()
    ticker.advance(600)
    engine.timer.pause()
    assert engine.timer.state.remaining_seconds == 1200

    engine.principal.set("a")
    assert engine.timer.state.remaining_seconds == 1500

    engine.principal.set("b")
    assert engine.timer.state.remaining_seconds == 1200
    assert engine.timer.duration_for("focus") == 1800


def test_sign_out_keeps_anonymous_data_local(engine: Engine, remote: InMemoryRemoteStore) -> None:
    engine.principal.set(None)
    calls = len(remote.calls)
    engine.tasks.add("guest task")
    assert len(remote.calls) == calls
    assert engine.tasks.pending_count == 1


def test_local_only_without_remote(ticker: ManualTicker) -> None:
    e = Engine(
        Settings(storage_backend="memory"),
        dispatcher=InlineDispatcher(),
        ticker=ticker,
        principal_id="u1",
    )
    try:
        assert not e.remote_enabled
        e.tasks.add("offline forever")
        assert e.sync_all()["task"].pending == 1
    finally:
        e.close()


def test_sqlite_backend_persists(temp_db_path: Path, ticker: ManualTicker) -> None:
    settings = Settings(db_path=temp_db_path)
    first = Engine(settings, dispatcher=InlineDispatcher(), ticker=ticker, follow_changes=False)
    first.tasks.add("kept")
    first.timer.switch_session_type("short_break")
    first.close()

    second = Engine(settings, dispatcher=InlineDispatcher(), ticker=ManualTicker(), follow_changes=False)
    try:
        assert [t.title for t in second.tasks.all_tasks()] == ["kept"]
        assert second.timer.state.session_type == "short_break"
    finally:
        second.close()


def test_injected_store_is_used(ticker: ManualTicker) -> None:
    store = MemoryKeyValueStore()
    e = Engine(
        Settings(storage_backend="memory"),
        store=store,
        dispatcher=InlineDispatcher(),
        ticker=ticker,
    )
    try:
        e.tasks.add("stored")
        assert store.keys("task-state_") == ["task-state_anonymous"]
    finally:
        e.close()
