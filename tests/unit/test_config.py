"""Unit tests for Settings loading."""

from pathlib import Path
from typing import Any

import pytest
from pydantic import ValidationError

from focuskit.config import Settings


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch: Any) -> None:
    monkeypatch.chdir(tmp_path)
    for name in (
        "FOCUSKIT_REMOTE_URL",
        "FOCUSKIT_REMOTE_API_KEY",
        "FOCUSKIT_STORAGE_BACKEND",
        "FOCUSKIT_TICK_INTERVAL",
        "FOCUSKIT_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = Settings()
    assert settings.storage_backend == "sqlite"
    assert settings.db_path.name == "focuskit.db"
    assert settings.tick_interval == 1.0
    assert not settings.remote_enabled


def test_env_prefix(monkeypatch: Any) -> None:
    monkeypatch.setenv("FOCUSKIT_STORAGE_BACKEND", "memory")
    monkeypatch.setenv("FOCUSKIT_TICK_INTERVAL", "0.25")
    settings = Settings()
    assert settings.storage_backend == "memory"
    assert settings.tick_interval == 0.25


def test_remote_needs_url_and_key(monkeypatch: Any) -> None:
    monkeypatch.setenv("FOCUSKIT_REMOTE_URL", "https://example.supabase.co")
    assert not Settings().remote_enabled
    monkeypatch.setenv("FOCUSKIT_REMOTE_API_KEY", "anon-key")
    assert Settings().remote_enabled


def test_dotenv_file(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text("FOCUSKIT_LOG_LEVEL=DEBUG\n", encoding="utf-8")
    assert Settings().log_level == "DEBUG"


def test_invalid_backend_rejected(monkeypatch: Any) -> None:
    monkeypatch.setenv("FOCUSKIT_STORAGE_BACKEND", "redis")
    with pytest.raises(ValidationError):
        Settings()
