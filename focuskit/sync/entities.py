"""Per-entity descriptors binding a record schema to its remote table."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

from focuskit.models import (
    CollectionState,
    Quote,
    QuoteState,
    QuoteUpdate,
    Record,
    RemoteId,
    SessionLogEntry,
    SessionLogState,
    SessionLogUpdate,
    Task,
    TaskState,
    TaskUpdate,
)
from focuskit.sync.remote_store import OWNER_COLUMN, Row

RecordT = TypeVar("RecordT", bound=Record)


@dataclass(frozen=True)
class EntitySpec(Generic[RecordT]):
    """Everything the sync layer needs to know about one entity type.

    Attributes:
        name: Logical name; the persisted key is ``<name>-state_<principal>``.
        table: Remote table name.
        record_model: Pydantic record class.
        update_model: Partial-update class (rejects unknown fields).
        state_model: Persisted collection state class.
        columns: Remote columns written on insert/update, besides id and owner.
        include_public: Whether listings include rows with no owner.
    """

    name: str
    table: str
    record_model: type[RecordT]
    update_model: type[BaseModel]
    state_model: type[CollectionState]
    columns: frozenset[str]
    include_public: bool = False

    def to_row(self, record: RecordT, owner_id: Optional[str]) -> Row:
        """Insert payload: the record without its id, stamped with the owner."""
        data = record.model_dump(mode="json", exclude={"id", "owner_id"})
        row = {k: v for k, v in data.items() if k in self.columns}
        row[OWNER_COLUMN] = owner_id
        return row

    def patch_row(self, changes: BaseModel, now: datetime) -> Row:
        """Update payload for the set fields of ``changes``."""
        data = changes.model_dump(mode="json", exclude_unset=True)
        row = {k: v for k, v in data.items() if k in self.columns}
        if "updated_at" in self.columns:
            row["updated_at"] = now.isoformat()
        return row

    def from_row(self, row: Row) -> RecordT:
        """Map a remote row into the record shape (remote id namespace).

        Raises:
            KeyError: If the row has no id.
            pydantic.ValidationError: If the row does not fit the schema.
        """
        fields: dict[str, Any] = {
            k: row[k]
            for k in self.record_model.model_fields
            if k in row and k not in ("id", "owner_id")
        }
        fields["id"] = RemoteId(value=str(row["id"]))
        fields["owner_id"] = row.get(OWNER_COLUMN)
        return self.record_model.model_validate(fields)

    def changed_fields(self, before: RecordT, after: RecordT) -> dict[str, Any]:
        """Updatable fields whose values differ between two copies of a record."""
        return {
            name: getattr(after, name)
            for name in self.update_model.model_fields
            if getattr(before, name) != getattr(after, name)
        }


TASKS: EntitySpec[Task] = EntitySpec(
    name="task",
    table="tasks",
    record_model=Task,
    update_model=TaskUpdate,
    state_model=TaskState,
    columns=frozenset(
        {"title", "description", "completed", "priority", "due_date", "created_at", "updated_at"}
    ),
)

QUOTES: EntitySpec[Quote] = EntitySpec(
    name="quotes",
    table="quotes",
    record_model=Quote,
    update_model=QuoteUpdate,
    state_model=QuoteState,
    columns=frozenset({"content", "author", "category", "is_custom", "created_at"}),
    include_public=True,
)

SESSIONS: EntitySpec[SessionLogEntry] = EntitySpec(
    name="session-log",
    table="focus_sessions",
    record_model=SessionLogEntry,
    update_model=SessionLogUpdate,
    state_model=SessionLogState,
    columns=frozenset(
        {"session_type", "duration_minutes", "completed", "started_at", "completed_at", "created_at"}
    ),
)
