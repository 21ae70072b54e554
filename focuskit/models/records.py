"""Record identities and entity schemas (Task / Quote / SessionLogEntry).

Record ids live in two namespaces. A ``LocalId`` is minted by the client
for optimistic creates; a ``RemoteId`` is assigned by the remote store.
A record never changes namespace: promotion replaces the whole record.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

SessionType = Literal["focus", "short_break", "long_break"]
Priority = Literal["low", "medium", "high"]

LOCAL_ID_PREFIX = "local_"
AI_GENERATED_CATEGORY = "AI Generated"
CUSTOM_CATEGORY = "Custom"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocalId(BaseModel):
    """Client-assigned id for a record not yet confirmed by the remote store."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["local"] = "local"
    value: str

    @classmethod
    def new(cls) -> "LocalId":
        # Nanosecond prefix keeps ids sortable by creation; uuid suffix keeps
        # two creates inside one clock tick distinct.
        return cls(value=f"{LOCAL_ID_PREFIX}{time.time_ns()}_{uuid.uuid4().hex[:8]}")

    def __str__(self) -> str:
        return self.value


class RemoteId(BaseModel):
    """Id assigned by the remote store."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["remote"] = "remote"
    value: str

    def __str__(self) -> str:
        return self.value


RecordId = Annotated[Union[LocalId, RemoteId], Field(discriminator="kind")]


def parse_record_id(raw: str) -> Union[LocalId, RemoteId]:
    """Turn a user-typed id string back into a tagged id."""
    raw = raw.strip()
    if raw.startswith(LOCAL_ID_PREFIX):
        return LocalId(value=raw)
    return RemoteId(value=raw)


class Record(BaseModel):
    """Fields shared by every synchronized entity."""

    model_config = ConfigDict(extra="forbid")

    id: RecordId
    owner_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Rows from the remote store may carry naive timestamps.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_local_only(self) -> bool:
        """True while the record only exists in the local cache."""
        return isinstance(self.id, LocalId)


class Task(Record):
    """A to-do item."""

    title: str = Field(min_length=1)
    description: Optional[str] = None
    completed: bool = False
    priority: Priority = "medium"
    due_date: Optional[datetime] = None


class Quote(Record):
    """An inspirational quote, public (no owner) or user-created."""

    content: str = Field(min_length=1)
    author: Optional[str] = None
    category: Optional[str] = None
    is_custom: bool = True

    @property
    def is_ai_generated(self) -> bool:
        return self.category == AI_GENERATED_CATEGORY


class SessionLogEntry(Record):
    """Durable log of one timer session."""

    session_type: SessionType
    duration_minutes: int = Field(ge=0)
    completed: bool = False
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


def _reject_null(value: Any) -> Any:
    if value is None:
        raise ValueError("may not be null")
    return value


class TaskUpdate(BaseModel):
    """Partial task update; unknown fields are rejected.

    Fields left out are unchanged; a required field cannot be set to None.
    """

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    completed: Optional[bool] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None

    @field_validator("title", "completed", "priority")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        return _reject_null(value)


class QuoteUpdate(BaseModel):
    """Partial quote update; unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")

    content: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = None
    category: Optional[str] = None

    @field_validator("content")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        return _reject_null(value)


class SessionLogUpdate(BaseModel):
    """Partial session-log update; unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")

    completed: Optional[bool] = None
    completed_at: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, ge=0)

    @field_validator("completed", "duration_minutes")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        return _reject_null(value)
