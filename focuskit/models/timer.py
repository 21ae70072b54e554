"""Timer state machine data: session types, persisted state, settings."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .records import RecordId, SessionType, utcnow

FOCUS: SessionType = "focus"
SHORT_BREAK: SessionType = "short_break"
LONG_BREAK: SessionType = "long_break"
SESSION_TYPES: tuple[SessionType, ...] = (FOCUS, SHORT_BREAK, LONG_BREAK)

# (default, minimum, maximum) per setting, in minutes / sessions
SETTING_BOUNDS: dict[str, tuple[int, int, int]] = {
    "focus_minutes": (25, 1, 120),
    "short_break_minutes": (5, 1, 30),
    "long_break_minutes": (15, 5, 60),
    "sessions_until_long_break": (4, 2, 8),
}


class TimerSettings(BaseModel):
    """Durations (integer minutes) and long-break cadence.

    Out-of-range values are clamped; missing or zero values fall back to
    the defaults, matching how the settings form validates input.
    """

    model_config = ConfigDict(frozen=True)

    focus_minutes: int = 25
    short_break_minutes: int = 5
    long_break_minutes: int = 15
    sessions_until_long_break: int = 4

    @field_validator(
        "focus_minutes",
        "short_break_minutes",
        "long_break_minutes",
        "sessions_until_long_break",
        mode="before",
    )
    @classmethod
    def _clamp(cls, value: Any, info: Any) -> int:
        default, low, high = SETTING_BOUNDS[info.field_name]
        try:
            number = int(value or 0)
        except (TypeError, ValueError):
            number = 0
        if number == 0:
            number = default
        return max(low, min(high, number))


class SessionDurations(BaseModel):
    """Durations in seconds, computed once from ``TimerSettings``."""

    model_config = ConfigDict(frozen=True)

    focus: int
    short_break: int
    long_break: int
    sessions_until_long_break: int

    @classmethod
    def from_settings(cls, settings: TimerSettings) -> "SessionDurations":
        return cls(
            focus=settings.focus_minutes * 60,
            short_break=settings.short_break_minutes * 60,
            long_break=settings.long_break_minutes * 60,
            sessions_until_long_break=settings.sessions_until_long_break,
        )

    def for_type(self, session_type: SessionType) -> int:
        return getattr(self, session_type)


class TimerState(BaseModel):
    """Countdown state persisted per principal."""

    remaining_seconds: int = Field(ge=0)
    is_running: bool = False
    session_type: SessionType = FOCUS
    session_ordinal: int = Field(1, ge=1)
    completed_focus_sessions: int = Field(0, ge=0)
    active_session_log_id: Optional[RecordId] = None
    last_updated: datetime = Field(default_factory=utcnow)

    @classmethod
    def initial(cls, durations: SessionDurations) -> "TimerState":
        return cls(remaining_seconds=durations.focus)
