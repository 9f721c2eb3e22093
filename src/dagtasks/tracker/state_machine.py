"""Task status transitions.

The table below is the whole lifecycle; ``apply_transition`` only adds the
guards that depend on the rest of the tracker (the active slot, unmet
dependencies, the completion criterion). It performs no I/O, so callers
gather the context inside their transaction and apply the result themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from dagtasks.tracker.errors import (
    AnotherTaskActiveError,
    InvalidTransitionError,
    MissingCompletionCriteriaError,
    TaskNotBlockedError,
    TaskNotPendingError,
    UnmetDependenciesError,
)
from dagtasks.tracker.models import TaskStatus


class TaskVerb(str, Enum):
    """Requested status changes."""

    START = "start"
    STOP = "stop"
    DONE = "done"
    BLOCK = "block"
    UNBLOCK = "unblock"


TRANSITIONS: dict[tuple[TaskStatus, TaskVerb], TaskStatus] = {
    (TaskStatus.PENDING, TaskVerb.START): TaskStatus.IN_PROGRESS,
    (TaskStatus.IN_PROGRESS, TaskVerb.START): TaskStatus.IN_PROGRESS,
    (TaskStatus.IN_PROGRESS, TaskVerb.STOP): TaskStatus.PENDING,
    (TaskStatus.IN_PROGRESS, TaskVerb.DONE): TaskStatus.COMPLETED,
    (TaskStatus.PENDING, TaskVerb.BLOCK): TaskStatus.BLOCKED,
    (TaskStatus.IN_PROGRESS, TaskVerb.BLOCK): TaskStatus.BLOCKED,
    (TaskStatus.BLOCKED, TaskVerb.UNBLOCK): TaskStatus.PENDING,
}


@dataclass(frozen=True, slots=True)
class TransitionContext:
    """Tracker state a guard may consult."""

    task_id: int
    active_id: int | None = None
    unmet_dependencies: tuple[int, ...] = ()
    dod: str | None = None


@dataclass(frozen=True, slots=True)
class Transition:
    """Accepted transition and the timestamps it sets."""

    source: TaskStatus
    target: TaskStatus
    stamp_started: bool = False
    stamp_completed: bool = False
    noop: bool = False

    @property
    def releases_active_slot(self) -> bool:
        return self.source is TaskStatus.IN_PROGRESS and self.target is not TaskStatus.IN_PROGRESS


def apply_transition(
    status: TaskStatus,
    verb: TaskVerb,
    context: TransitionContext,
) -> Transition:
    """Validate ``verb`` against ``status`` and return the resulting transition.

    Raises a ``TrackerError`` subclass naming the rejection; nothing is
    written by this function either way.
    """

    target = TRANSITIONS.get((status, verb))
    if target is None:
        raise _rejection(status, verb, context)

    if verb is TaskVerb.START:
        if status is TaskStatus.IN_PROGRESS:
            return Transition(source=status, target=target, noop=True)
        if context.active_id is not None and context.active_id != context.task_id:
            raise AnotherTaskActiveError(context.active_id)
        if context.unmet_dependencies:
            raise UnmetDependenciesError(context.task_id, context.unmet_dependencies)
        return Transition(source=status, target=target, stamp_started=True)

    if verb is TaskVerb.DONE:
        if not (context.dod or "").strip():
            raise MissingCompletionCriteriaError(context.task_id)
        return Transition(source=status, target=target, stamp_completed=True)

    return Transition(source=status, target=target)


def _rejection(
    status: TaskStatus,
    verb: TaskVerb,
    context: TransitionContext,
) -> InvalidTransitionError:
    if verb is TaskVerb.START:
        return TaskNotPendingError(context.task_id, status.value)
    if verb is TaskVerb.UNBLOCK:
        return TaskNotBlockedError(context.task_id, status.value)
    return InvalidTransitionError(context.task_id, status.value, verb.value)
