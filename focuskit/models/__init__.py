"""Domain models."""

from .records import (
    AI_GENERATED_CATEGORY,
    CUSTOM_CATEGORY,
    LocalId,
    Priority,
    Quote,
    QuoteUpdate,
    Record,
    RecordId,
    RemoteId,
    SessionLogEntry,
    SessionLogUpdate,
    SessionType,
    Task,
    TaskUpdate,
    parse_record_id,
    utcnow,
)
from .state import CollectionState, QuoteState, SessionLogState, TaskState
from .timer import (
    FOCUS,
    LONG_BREAK,
    SESSION_TYPES,
    SHORT_BREAK,
    SessionDurations,
    TimerSettings,
    TimerState,
)

__all__ = [
    "AI_GENERATED_CATEGORY",
    "CUSTOM_CATEGORY",
    "CollectionState",
    "FOCUS",
    "LONG_BREAK",
    "LocalId",
    "Priority",
    "Quote",
    "QuoteState",
    "QuoteUpdate",
    "Record",
    "RecordId",
    "RemoteId",
    "SESSION_TYPES",
    "SHORT_BREAK",
    "SessionDurations",
    "SessionLogEntry",
    "SessionLogState",
    "SessionLogUpdate",
    "SessionType",
    "Task",
    "TaskState",
    "TaskUpdate",
    "TimerSettings",
    "TimerState",
    "parse_record_id",
    "utcnow",
]
