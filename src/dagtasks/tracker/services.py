"""Task tracker verbs: one transaction per call."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from dagtasks.tracker.errors import (
    AllBlockedError,
    CycleDetectedError,
    DependencyNotFoundError,
    DuplicateDependencyError,
    InvalidInputError,
    NoActiveTaskError,
    NoTargetError,
    PositionRequiredError,
    TargetReachedError,
    TaskCompletedError,
)
from dagtasks.tracker.graph import (
    active_subgraph,
    build_dependency_map,
    find_cycle,
    find_order_conflicts,
    select_next,
    topological_order,
)
from dagtasks.tracker.models import (
    ArtifactListing,
    ArtifactView,
    NextTask,
    OrderConflict,
    TaskDetails,
    TaskListing,
    TaskStatus,
    TaskView,
)
from dagtasks.tracker.ordering import insertion_order, reindex_plan
from dagtasks.tracker.repository import TrackerRepository, TrackerStore
from dagtasks.tracker.state_machine import TaskVerb, TransitionContext, apply_transition
from dagtasks.tracker.storage.common import utc_now
from dagtasks.tracker.storage.sqlmodel_models import TARGET_CONFIG_KEY

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CreateTask:
    """Inputs for a new task."""

    title: str
    description: str | None = None
    dod: str | None = None
    after: int | None = None
    before: int | None = None


@dataclass(slots=True)
class EditTask:
    """Field updates for an existing task; ``None`` keeps the current value."""

    task_id: int
    title: str | None = None
    description: str | None = None
    dod: str | None = None


class TrackerService:
    """Task graph operations over a ``TrackerRepository``.

    Every public method opens exactly one transaction, runs all guards before
    its first write, and either commits everything it changed or nothing.
    """

    def __init__(self, *, repository: TrackerRepository) -> None:
        self.repository = repository

    # ---- tasks ----

    def create_task(self, command: CreateTask) -> TaskView:
        title = _require_title(command.title)
        with self.repository.write() as store:
            manual_order = _placement(store, after=command.after, before=command.before)
            task = store.create_task(
                title=title,
                description=command.description,
                dod=command.dod,
                manual_order=manual_order,
            )
        logger.info("Created task #%s order=%s", task.id, task.manual_order)
        return task

    def edit_task(self, command: EditTask) -> TaskView:
        title = _require_title(command.title) if command.title is not None else None
        updates: dict[str, object] = {}
        if title is not None:
            updates["title"] = title
        if command.description is not None:
            updates["description"] = command.description
        if command.dod is not None:
            updates["dod"] = command.dod
        with self.repository.write() as store:
            task = store.get_task(command.task_id)
            if task.status is TaskStatus.COMPLETED:
                raise TaskCompletedError(task.id)
            if not updates:
                return task
            return store.update_task(task.id, **updates)

    def show_task(self, task_id: int) -> TaskDetails:
        with self.repository.read() as store:
            return _details(store, task_id)

    def list_tasks(
        self,
        *,
        include_all: bool = False,
        status: TaskStatus | None = None,
    ) -> TaskListing:
        """Tasks in topological-then-manual order.

        By default only the target's active subgraph is listed; ``include_all``
        orders every task instead. ``status`` filters the sorted result.
        """

        with self.repository.read() as store:
            target_id = _read_target(store)
            edges = store.list_edges()
            if include_all:
                tasks = store.list_tasks()
            else:
                if target_id is None:
                    raise NoTargetError
                statuses = {task.id: task.status for task in store.list_tasks()}
                tasks = store.get_tasks(active_subgraph(target_id, edges, statuses))

        ordered = topological_order(tasks, edges)
        warnings = _report_conflicts(ordered, edges)
        dependencies = build_dependency_map(edges)
        if status is not None:
            ordered = [task for task in ordered if task.status is status]
        return TaskListing(
            target_id=target_id,
            tasks=ordered,
            dependencies={task.id: sorted(dependencies.get(task.id, ())) for task in ordered},
            warnings=warnings,
        )

    def current_task(self) -> TaskView:
        with self.repository.read() as store:
            task = store.get_active_task()
        if task is None:
            raise NoActiveTaskError
        return task

    # ---- target ----

    def set_target(self, task_id: int) -> TaskView:
        with self.repository.write() as store:
            store.get_task(task_id)
            store.set_config(TARGET_CONFIG_KEY, str(task_id))
            store.touch_task(task_id)
            task = store.get_task(task_id)
        logger.info("Target set to #%s", task_id)
        return task

    def get_target(self) -> TaskView:
        with self.repository.read() as store:
            target_id = _read_target(store)
            if target_id is None:
                raise NoTargetError
            return store.get_task(target_id)

    def next_task(self) -> NextTask:
        """First startable task toward the target.

        Raises ``TargetReachedError`` when every task in the target's closure
        is completed, and ``AllBlockedError`` with every remaining id when
        none of them can be started right now.
        """

        with self.repository.read() as store:
            target_id = _read_target(store)
            if target_id is None:
                raise NoTargetError
            store.get_task(target_id)
            edges = store.list_edges()
            statuses = {task.id: task.status for task in store.list_tasks()}
            tasks = store.get_tasks(active_subgraph(target_id, edges, statuses))

        if not tasks:
            raise TargetReachedError(target_id)
        ordered = topological_order(tasks, edges)
        warnings = _report_conflicts(ordered, edges)
        dependencies = build_dependency_map(edges)
        selected = select_next(ordered, dependencies, statuses)
        if selected is None:
            raise AllBlockedError([task.id for task in ordered])
        return NextTask(
            task=selected,
            target_id=target_id,
            dependencies=sorted(dependencies.get(selected.id, ())),
            warnings=warnings,
        )

    # ---- status transitions ----

    def start_task(self, task_id: int) -> TaskView:
        with self.repository.write() as store:
            task = store.get_task(task_id)
            active = store.get_active_task()
            unmet = [
                dependency.id
                for dependency in store.get_tasks(store.dependencies_of(task_id))
                if dependency.status is not TaskStatus.COMPLETED
            ]
            transition = apply_transition(
                task.status,
                TaskVerb.START,
                TransitionContext(
                    task_id=task_id,
                    active_id=active.id if active is not None else None,
                    unmet_dependencies=tuple(unmet),
                ),
            )
            if transition.noop:
                return task
            task = store.update_task(task_id, status=transition.target, started_at=utc_now())
        logger.info("Started task #%s", task_id)
        return task

    def stop_task(self) -> TaskView:
        return self._transition_active(TaskVerb.STOP)

    def complete_task(self) -> TaskView:
        return self._transition_active(TaskVerb.DONE)

    def block_task(self, task_id: int) -> TaskView:
        return self._transition(task_id, TaskVerb.BLOCK)

    def unblock_task(self, task_id: int) -> TaskView:
        return self._transition(task_id, TaskVerb.UNBLOCK)

    def _transition_active(self, verb: TaskVerb) -> TaskView:
        with self.repository.write() as store:
            active = store.get_active_task()
            if active is None:
                raise NoActiveTaskError
            return self._apply(store, active, verb)

    def _transition(self, task_id: int, verb: TaskVerb) -> TaskView:
        with self.repository.write() as store:
            return self._apply(store, store.get_task(task_id), verb)

    def _apply(self, store: TrackerStore, task: TaskView, verb: TaskVerb) -> TaskView:
        transition = apply_transition(
            task.status,
            verb,
            TransitionContext(task_id=task.id, dod=task.dod),
        )
        if transition.stamp_completed:
            updated = store.update_task(
                task.id,
                status=transition.target,
                completed_at=utc_now(),
            )
        else:
            updated = store.update_task(task.id, status=transition.target)
        logger.info(
            "Task #%s %s: %s -> %s",
            task.id,
            verb.value,
            transition.source.value,
            transition.target.value,
        )
        return updated

    # ---- dependencies ----

    def add_dependency(self, task_id: int, depends_on: int) -> TaskDetails:
        with self.repository.write() as store:
            store.get_task(task_id)
            store.get_task(depends_on)
            if store.has_dependency(task_id, depends_on):
                raise DuplicateDependencyError(task_id, depends_on)
            cycle = find_cycle(store.list_edges(), task_id, depends_on)
            if cycle is not None:
                raise CycleDetectedError(task_id, depends_on, cycle)
            store.add_dependency(task_id, depends_on)
            details = _details(store, task_id)
        logger.info("Task #%s now depends on #%s", task_id, depends_on)
        return details

    def remove_dependency(self, task_id: int, depends_on: int) -> TaskDetails:
        with self.repository.write() as store:
            store.get_task(task_id)
            store.get_task(depends_on)
            if not store.remove_dependency(task_id, depends_on):
                raise DependencyNotFoundError(task_id, depends_on)
            details = _details(store, task_id)
        logger.info("Task #%s no longer depends on #%s", task_id, depends_on)
        return details

    # ---- artifacts ----

    def log_artifact(self, name: str, file_path: str) -> ArtifactView:
        """Attach a file reference to the active task; the file is never opened."""

        if not name.strip():
            raise InvalidInputError("Artifact name must not be empty")
        if not file_path.strip():
            raise InvalidInputError("Artifact file path must not be empty")
        with self.repository.write() as store:
            active = store.get_active_task()
            if active is None:
                raise NoActiveTaskError
            return store.add_artifact(task_id=active.id, name=name.strip(), file_path=file_path)

    def list_artifacts(self, task_id: int | None = None) -> ArtifactListing:
        with self.repository.read() as store:
            if task_id is None:
                active = store.get_active_task()
                if active is None:
                    raise NoActiveTaskError
                task_id = active.id
            else:
                store.get_task(task_id)
            return ArtifactListing(task_id=task_id, artifacts=store.list_artifacts(task_id))

    # ---- ordering ----

    def reorder_task(
        self,
        task_id: int,
        *,
        after: int | None = None,
        before: int | None = None,
    ) -> TaskView:
        if after is None and before is None:
            raise PositionRequiredError
        if task_id in (after, before):
            raise InvalidInputError(f"Task #{task_id} cannot be positioned relative to itself")
        with self.repository.write() as store:
            store.get_task(task_id)
            manual_order = _placement(store, after=after, before=before)
            return store.set_manual_order(task_id, manual_order)

    def reindex(self) -> list[TaskView]:
        """Respace every task as 10, 20, 30, ... in the current total order."""

        with self.repository.write() as store:
            ordered = topological_order(store.list_tasks(), store.list_edges())
            plan = reindex_plan([task.id for task in ordered])
            reindexed = [
                store.set_manual_order(task_id, manual_order)
                for task_id, manual_order in plan.items()
            ]
        logger.info("Reindexed %s tasks", len(reindexed))
        return reindexed


def _require_title(title: str) -> str:
    stripped = title.strip()
    if not stripped:
        raise InvalidInputError("Task title must not be empty")
    return stripped


def _placement(store: TrackerStore, *, after: int | None, before: int | None) -> float:
    after_order = store.get_task(after).manual_order if after is not None else None
    before_order = store.get_task(before).manual_order if before is not None else None
    return insertion_order(
        max_order=store.max_manual_order(),
        after=after_order,
        before=before_order,
    )


def _read_target(store: TrackerStore) -> int | None:
    raw = store.get_config(TARGET_CONFIG_KEY)
    if raw is None:
        return None
    return int(raw)


def _details(store: TrackerStore, task_id: int) -> TaskDetails:
    return TaskDetails(
        task=store.get_task(task_id),
        dependencies=store.get_tasks(store.dependencies_of(task_id)),
        dependents=store.get_tasks(store.dependents_of(task_id)),
        artifacts=store.list_artifacts(task_id),
    )


def _report_conflicts(ordered: list[TaskView], edges: list[tuple[int, int]]) -> list[OrderConflict]:
    conflicts = find_order_conflicts(ordered, edges)
    for conflict in conflicts:
        logger.warning("Order conflict: %s", conflict.message)
    return conflicts
