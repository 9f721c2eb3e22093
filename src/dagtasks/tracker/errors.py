"""Typed failures raised by the task graph engine.

Every error carries a stable ``code`` string. The text surface prints the
message; the structured surface returns the code and ``details()`` so
automated callers can branch on them (for example, stop the active task
after ``another_active``).
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import ClassVar


def format_task_ids(ids: Sequence[int]) -> str:
    return ", ".join(f"#{task_id}" for task_id in ids)


class TrackerError(Exception):
    """Base class for all tracker failures."""

    code: ClassVar[str] = "tracker_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, object]:
        return {}


class InvalidInputError(TrackerError):
    code = "invalid_input"


class NotInitializedError(TrackerError):
    code = "not_initialized"

    def __init__(self, db_path: str) -> None:
        super().__init__(f"Not initialized ({db_path} not found). Run `tt init` first.")


class AlreadyInitializedError(TrackerError):
    code = "already_initialized"

    def __init__(self, db_path: str) -> None:
        super().__init__(f"Already initialized: {db_path}")


class TaskNotFoundError(TrackerError):
    code = "not_found"

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task #{task_id} not found")
        self.task_id = task_id

    def details(self) -> dict[str, object]:
        return {"task_id": self.task_id}


class InvalidStatusError(TrackerError):
    code = "invalid_status"

    def __init__(self, raw: str) -> None:
        super().__init__(f"Invalid status: {raw!r}")
        self.raw = raw

    def details(self) -> dict[str, object]:
        return {"status": self.raw}


class InvalidTransitionError(TrackerError):
    """A status change the transition table does not allow."""

    code = "invalid_transition"

    def __init__(
        self,
        task_id: int,
        current: str,
        verb: str,
        message: str | None = None,
    ) -> None:
        super().__init__(
            message or f"Task #{task_id}: cannot {verb} from status {current}",
        )
        self.task_id = task_id
        self.current = current
        self.verb = verb

    def details(self) -> dict[str, object]:
        return {"task_id": self.task_id, "status": self.current, "verb": self.verb}


class TaskNotPendingError(InvalidTransitionError):
    code = "not_pending"

    def __init__(self, task_id: int, current: str) -> None:
        super().__init__(
            task_id,
            current,
            "start",
            f"Task #{task_id} is {current}, not pending; cannot start",
        )


class TaskNotBlockedError(InvalidTransitionError):
    code = "not_blocked"

    def __init__(self, task_id: int, current: str) -> None:
        super().__init__(
            task_id,
            current,
            "unblock",
            f"Task #{task_id} is {current}, not blocked; cannot unblock",
        )


class TaskCompletedError(TrackerError):
    code = "task_completed"

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task #{task_id} is completed and cannot be modified")
        self.task_id = task_id

    def details(self) -> dict[str, object]:
        return {"task_id": self.task_id}


class AnotherTaskActiveError(TrackerError):
    code = "another_active"

    def __init__(self, active_id: int) -> None:
        super().__init__(f"Task #{active_id} is already in progress. Finish or stop it first.")
        self.active_id = active_id

    def details(self) -> dict[str, object]:
        return {"active_id": self.active_id}


class NoActiveTaskError(TrackerError):
    code = "no_active"

    def __init__(self) -> None:
        super().__init__("No task is currently in progress")


class UnmetDependenciesError(TrackerError):
    code = "unmet_dependencies"

    def __init__(self, task_id: int, unmet: Sequence[int]) -> None:
        super().__init__(
            f"Cannot start #{task_id}: dependencies not completed: {format_task_ids(unmet)}",
        )
        self.task_id = task_id
        self.unmet = list(unmet)

    def details(self) -> dict[str, object]:
        return {"task_id": self.task_id, "unmet": self.unmet}


class MissingCompletionCriteriaError(TrackerError):
    code = "missing_completion_criteria"

    def __init__(self, task_id: int) -> None:
        super().__init__(
            f"Task #{task_id} has no definition of done. "
            f"Set one with `tt edit {task_id} --dod ...`",
        )
        self.task_id = task_id

    def details(self) -> dict[str, object]:
        return {"task_id": self.task_id}


class CycleDetectedError(TrackerError):
    code = "cycle_detected"

    def __init__(self, task_id: int, depends_on: int, cycle: Sequence[int]) -> None:
        path = " -> ".join(f"#{node}" for node in cycle)
        super().__init__(
            f"Adding #{task_id} -> #{depends_on} would create a cycle: {path}",
        )
        self.task_id = task_id
        self.depends_on = depends_on
        self.cycle = list(cycle)

    def details(self) -> dict[str, object]:
        return {"task_id": self.task_id, "depends_on": self.depends_on, "cycle": self.cycle}


class DuplicateDependencyError(TrackerError):
    code = "duplicate_dependency"

    def __init__(self, task_id: int, depends_on: int) -> None:
        super().__init__(f"Task #{task_id} already depends on #{depends_on}")
        self.task_id = task_id
        self.depends_on = depends_on

    def details(self) -> dict[str, object]:
        return {"task_id": self.task_id, "depends_on": self.depends_on}


class DependencyNotFoundError(TrackerError):
    code = "dependency_not_found"

    def __init__(self, task_id: int, depends_on: int) -> None:
        super().__init__(f"Task #{task_id} does not depend on #{depends_on}")
        self.task_id = task_id
        self.depends_on = depends_on

    def details(self) -> dict[str, object]:
        return {"task_id": self.task_id, "depends_on": self.depends_on}


class NoTargetError(TrackerError):
    code = "no_target"

    def __init__(self) -> None:
        super().__init__("No target set. Use `tt target <id>` first.")


class TargetReachedError(TrackerError):
    code = "target_reached"

    def __init__(self, target_id: int) -> None:
        super().__init__(f"Target reached. All tasks for #{target_id} are completed.")
        self.target_id = target_id

    def details(self) -> dict[str, object]:
        return {"target_id": self.target_id}


class AllBlockedError(TrackerError):
    code = "all_blocked"

    def __init__(self, task_ids: Sequence[int]) -> None:
        super().__init__(f"No startable task; remaining: {format_task_ids(task_ids)}")
        self.task_ids = list(task_ids)

    def details(self) -> dict[str, object]:
        return {"task_ids": self.task_ids}


class OrderExhaustedError(TrackerError):
    code = "order_exhausted"

    def __init__(self, lower: float, upper: float) -> None:
        super().__init__(
            f"No order value left between {lower!r} and {upper!r}. Run `tt reindex` first.",
        )
        self.lower = lower
        self.upper = upper

    def details(self) -> dict[str, object]:
        return {"lower": self.lower, "upper": self.upper}


class PositionRequiredError(TrackerError):
    code = "position_required"

    def __init__(self) -> None:
        super().__init__("At least one of --after or --before is required")


class GraphIntegrityError(TrackerError):
    """The stored edge set is not a DAG; raised instead of emitting a partial order."""

    code = "graph_integrity"

    def __init__(self, unresolved: Sequence[int]) -> None:
        super().__init__(
            f"Dependency graph contains a cycle among: {format_task_ids(unresolved)}",
        )
        self.unresolved = list(unresolved)

    def details(self) -> dict[str, object]:
        return {"task_ids": self.unresolved}
