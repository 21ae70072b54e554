"""Task board: filtered, sorted view over the task mutation engine."""

from datetime import datetime, timezone
from typing import Any, Optional

from focuskit.models import LocalId, Priority, RecordId, Task, TaskState
from focuskit.sync.mutations import OptimisticMutationEngine, SyncReport

PRIORITY_RANK: dict[str, int] = {"high": 0, "medium": 1, "low": 2}


def _due_key(task: Task) -> tuple[bool, datetime]:
    due = task.due_date
    if due is None:
        return (True, datetime.min.replace(tzinfo=timezone.utc))
    if due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)
    return (False, due)


class TaskBoard:
    """Task operations plus the persisted filter/sort/selection."""

    def __init__(self, engine: OptimisticMutationEngine[Task]) -> None:
        self._engine = engine
        engine.on_promoted(self._on_promoted)

    @property
    def engine(self) -> OptimisticMutationEngine[Task]:
        return self._engine

    @property
    def view(self) -> TaskState:
        return self._engine.state.get()

    @property
    def pending_count(self) -> int:
        return self._engine.pending_count

    def all_tasks(self) -> list[Task]:
        return self._engine.records()

    def active_tasks(self) -> list[Task]:
        return [t for t in self.all_tasks() if not t.completed]

    def completed_tasks(self) -> list[Task]:
        return [t for t in self.all_tasks() if t.completed]

    def tasks(self) -> list[Task]:
        """Tasks matching the current filter, in the current sort order."""
        view = self.view
        if view.filter == "active":
            tasks = self.active_tasks()
        elif view.filter == "completed":
            tasks = self.completed_tasks()
        else:
            tasks = self.all_tasks()

        if view.sort_by == "priority":
            return sorted(tasks, key=lambda t: PRIORITY_RANK[t.priority])
        if view.sort_by == "due_date":
            return sorted(tasks, key=_due_key)
        return tasks

    def selected_task(self) -> Optional[Task]:
        selected = self.view.selected_id
        return self._engine.get(selected) if selected is not None else None

    def add(
        self,
        title: str,
        description: Optional[str] = None,
        priority: Priority = "medium",
        due_date: Optional[datetime] = None,
    ) -> Task:
        """Create a task; it shows up immediately as local-only.

        Raises:
            pydantic.ValidationError: If the title is empty.
        """
        return self._engine.create(
            {
                "title": title.strip(),
                "description": description,
                "priority": priority,
                "due_date": due_date,
            }
        )

    def edit(self, task_id: RecordId, **changes: Any) -> Optional[Task]:
        return self._engine.update(task_id, changes)

    def toggle(self, task_id: RecordId) -> Optional[Task]:
        """Flip ``completed``. Returns None if the task is unknown."""
        task = self._engine.get(task_id)
        if task is None:
            return None
        return self._engine.update(task.id, {"completed": not task.completed})

    def remove(self, task_id: RecordId) -> bool:
        task = self._engine.get(task_id)
        selected = self.view.selected_id
        if selected is not None and task is not None:
            if self._engine.get(selected) == task:
                self._engine.update_view(selected_id=None)
        return self._engine.delete(task.id if task is not None else task_id)

    def set_filter(self, value: str) -> None:
        self._engine.update_view(filter=value)

    def set_sort_by(self, value: str) -> None:
        self._engine.update_view(sort_by=value)

    def select(self, task_id: Optional[RecordId]) -> None:
        self._engine.update_view(selected_id=task_id)

    def sync(self) -> SyncReport:
        return self._engine.sync_local_only()

    def _on_promoted(self, promotion: tuple[LocalId, Task]) -> None:
        # Keep the stored selection valid after the redirect is gone.
        local_id, task = promotion
        if self.view.selected_id == local_id:
            self._engine.update_view(selected_id=task.id)
