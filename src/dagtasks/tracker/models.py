"""Domain models for the task graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from dagtasks.tracker.errors import InvalidStatusError


class TaskStatus(str, Enum):
    """Durable task lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"

    @classmethod
    def parse(cls, raw: str) -> TaskStatus:
        """Parse external status input, accepting ``in-progress`` as an alias."""

        normalized = raw.strip().lower().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError as error:
            raise InvalidStatusError(raw) from error


@dataclass(slots=True)
class TaskView:
    """Readable task view for services and surfaces."""

    id: int
    title: str
    description: str | None
    dod: str | None
    status: TaskStatus
    manual_order: float
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    last_touched_at: datetime


@dataclass(slots=True)
class ArtifactView:
    """Reference to an externally authored file; the path is never opened."""

    id: int
    task_id: int
    name: str
    file_path: str
    created_at: datetime


@dataclass(slots=True)
class OrderConflict:
    """Manual order disagrees with the dependency graph.

    ``task_id`` sorts before its unmet prerequisite by manual order, but the
    topological sort places it after. Reported alongside a successful sort.
    """

    task_id: int
    task_order: float
    depends_on: int
    depends_on_order: float

    code = "order_conflict"

    @property
    def message(self) -> str:
        return (
            f"#{self.task_id} (order {self.task_order:g}) depends on "
            f"#{self.depends_on} (order {self.depends_on_order:g}) which has higher manual_order"
        )


@dataclass(slots=True)
class TaskDetails:
    """Task with its direct neighbourhood and artifacts."""

    task: TaskView
    dependencies: list[TaskView]
    dependents: list[TaskView]
    artifacts: list[ArtifactView]


@dataclass(slots=True)
class TaskListing:
    """Tasks in topological-then-manual order."""

    target_id: int | None
    tasks: list[TaskView]
    dependencies: dict[int, list[int]]
    warnings: list[OrderConflict] = field(default_factory=list)


@dataclass(slots=True)
class NextTask:
    task: TaskView
    target_id: int
    dependencies: list[int]
    warnings: list[OrderConflict] = field(default_factory=list)


@dataclass(slots=True)
class ArtifactListing:
    task_id: int
    artifacts: list[ArtifactView]
