"""Persisted per-collection state: local-only records plus view preferences."""

from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

from .records import Quote, Record, RecordId, SessionLogEntry, Task

RecordT = TypeVar("RecordT", bound=Record)

TaskFilter = Literal["all", "active", "completed"]
TaskSort = Literal["created", "priority", "due_date"]


class CollectionState(BaseModel, Generic[RecordT]):
    """What one collection keeps in the key/value store.

    ``local_records`` holds records that have not been confirmed by the
    remote store. ``pending_deletes`` holds remote id values whose delete
    has not been acknowledged yet.
    """

    local_records: list[RecordT] = Field(default_factory=list)
    pending_deletes: list[str] = Field(default_factory=list)


class TaskState(CollectionState[Task]):
    filter: TaskFilter = "all"
    sort_by: TaskSort = "created"
    selected_id: Optional[RecordId] = None


class QuoteState(CollectionState[Quote]):
    favorites: list[str] = Field(default_factory=list)
    search_term: str = ""
    selected_category: str = "all"


class SessionLogState(CollectionState[SessionLogEntry]):
    pass
