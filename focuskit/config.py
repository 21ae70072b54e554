"""Environment and settings (Pydantic Settings)."""

from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

# Default data directory: ~/.focuskit/data/
_data_dir = Path.home() / ".focuskit" / "data"


class Settings(BaseSettings):
    """FocusKit settings loaded from environment and .env.

    Without ``remote_url`` and ``remote_api_key`` everything stays local.
    """

    model_config = SettingsConfigDict(
        env_prefix="FOCUSKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths (key/value store and changelog share one SQLite file)
    data_dir: Path = _data_dir
    db_path: Path = _data_dir / "focuskit.db"

    # "memory" keeps state for the lifetime of the process only
    storage_backend: Literal["sqlite", "memory"] = "sqlite"

    # Remote store (PostgREST endpoint, e.g. a Supabase project URL)
    remote_url: Optional[str] = None
    remote_api_key: Optional[str] = None
    remote_access_token: Optional[str] = None
    remote_timeout: float = 10.0
    remote_stale_after: float = 300.0

    # Principal used when none is given on the command line
    principal_id: Optional[str] = None

    # Timing (seconds)
    tick_interval: float = 1.0
    bus_poll_interval: float = 0.5

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_file: Path = _data_dir / "focuskit.log"

    @property
    def remote_enabled(self) -> bool:
        return bool(self.remote_url and self.remote_api_key)


def get_settings() -> Settings:
    """Return application settings (singleton-like)."""
    return Settings()
