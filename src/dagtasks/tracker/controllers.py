"""Controllers for task tracker CLI commands."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from dagtasks.config import Settings
from dagtasks.tracker.api import serve_stream
from dagtasks.tracker.errors import AlreadyInitializedError, NotInitializedError
from dagtasks.tracker.models import (
    ArtifactView,
    OrderConflict,
    TaskDetails,
    TaskStatus,
    TaskView,
)
from dagtasks.tracker.repository import TrackerRepository
from dagtasks.tracker.services import CreateTask, EditTask, TrackerService

STATUS_GLYPHS: dict[TaskStatus, str] = {
    TaskStatus.PENDING: "○",
    TaskStatus.IN_PROGRESS: "●",
    TaskStatus.COMPLETED: "✓",
    TaskStatus.BLOCKED: "✗",
}
LEGEND = "Legend: ○ pending  ● in progress  ✓ completed  ✗ blocked"


@dataclass(slots=True)
class WorkspaceCommand:
    """CLI inputs shared by commands that only need the database."""

    db_path: Path | None


@dataclass(slots=True)
class AddTaskCommand:
    """CLI inputs for task creation."""

    db_path: Path | None
    title: str
    description: str | None
    dod: str | None
    after: int | None
    before: int | None


@dataclass(slots=True)
class EditTaskCommand:
    """CLI inputs for task edits."""

    db_path: Path | None
    task_id: int
    title: str | None
    description: str | None
    dod: str | None


@dataclass(slots=True)
class TaskIdCommand:
    db_path: Path | None
    task_id: int


@dataclass(slots=True)
class ListTasksCommand:
    """CLI inputs for task listing."""

    db_path: Path | None
    include_all: bool
    status: str | None


@dataclass(slots=True)
class TargetCommand:
    db_path: Path | None
    task_id: int | None


@dataclass(slots=True)
class DependencyCommand:
    db_path: Path | None
    task_id: int
    depends_on: int


@dataclass(slots=True)
class LogArtifactCommand:
    db_path: Path | None
    name: str
    file_path: str


@dataclass(slots=True)
class ArtifactsCommand:
    db_path: Path | None
    task_id: int | None


@dataclass(slots=True)
class ReorderCommand:
    """CLI inputs for manual reordering."""

    db_path: Path | None
    task_id: int
    after: int | None
    before: int | None


class TrackerCliController:
    """Coordinates task tracker command execution and text rendering."""

    def init(self, command: WorkspaceCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate()
        if settings.db_path.exists():
            raise AlreadyInitializedError(str(settings.db_path))
        settings.db_path.parent.mkdir(parents=True, exist_ok=True)
        repository = TrackerRepository(
            settings.db_path,
            sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
        )
        try:
            repository.init_schema()
        finally:
            repository.close()
        settings.artifacts_dir.mkdir(parents=True, exist_ok=True)
        return [
            f"Initialized task tracker: {settings.db_path}",
            f"Artifacts directory: {settings.artifacts_dir}",
        ]

    def add(self, command: AddTaskCommand) -> list[str]:
        with _service(command.db_path) as service:
            task = service.create_task(
                CreateTask(
                    title=command.title,
                    description=command.description,
                    dod=command.dod,
                    after=command.after,
                    before=command.before,
                ),
            )
        return [f"Created task #{task.id}: {task.title} (order {task.manual_order:g})"]

    def edit(self, command: EditTaskCommand) -> list[str]:
        with _service(command.db_path) as service:
            task = service.edit_task(
                EditTask(
                    task_id=command.task_id,
                    title=command.title,
                    description=command.description,
                    dod=command.dod,
                ),
            )
        return [f"Updated task #{task.id}: {task.title}"]

    def show(self, command: TaskIdCommand) -> list[str]:
        with _service(command.db_path) as service:
            details = service.show_task(command.task_id)
        return _render_details(details)

    def list_tasks(self, command: ListTasksCommand) -> list[str]:
        status = TaskStatus.parse(command.status) if command.status is not None else None
        with _service(command.db_path) as service:
            listing = service.list_tasks(include_all=command.include_all, status=status)

        lines: list[str] = []
        if command.include_all:
            lines.append("All tasks:")
        else:
            lines.append(f"Tasks toward target #{listing.target_id}:")
        if not listing.tasks:
            lines.append("  (none)")
        for task in listing.tasks:
            line = f"  {_task_line(task)}"
            dependencies = listing.dependencies.get(task.id, [])
            if dependencies:
                line += f"  <- {', '.join(f'#{dep}' for dep in dependencies)}"
            if listing.target_id == task.id:
                line += "  [target]"
            lines.append(line)
        lines.extend(_warning_lines(listing.warnings))
        lines.append(LEGEND)
        return lines

    def current(self, command: WorkspaceCommand) -> list[str]:
        with _service(command.db_path) as service:
            task = service.current_task()
        return [f"Current: {_task_line(task)}"]

    def target(self, command: TargetCommand) -> list[str]:
        with _service(command.db_path) as service:
            if command.task_id is None:
                task = service.get_target()
                return [f"Target: {_task_line(task)}"]
            task = service.set_target(command.task_id)
        return [f"Target set: #{task.id} {task.title}"]

    def next(self, command: WorkspaceCommand) -> list[str]:
        with _service(command.db_path) as service:
            result = service.next_task()
        lines = [f"Next: {_task_line(result.task)}"]
        if result.task.description:
            lines.append(f"  Description: {result.task.description}")
        if result.task.dod:
            lines.append(f"  Done when: {result.task.dod}")
        if result.dependencies:
            lines.append(f"  After: {', '.join(f'#{dep}' for dep in result.dependencies)}")
        lines.append(f"  Target: #{result.target_id}")
        lines.extend(_warning_lines(result.warnings))
        return lines

    def start(self, command: TaskIdCommand) -> list[str]:
        with _service(command.db_path) as service:
            task = service.start_task(command.task_id)
        return [f"Started: {_task_line(task)}"]

    def stop(self, command: WorkspaceCommand) -> list[str]:
        with _service(command.db_path) as service:
            task = service.stop_task()
        return [f"Stopped: {_task_line(task)}"]

    def done(self, command: WorkspaceCommand) -> list[str]:
        with _service(command.db_path) as service:
            task = service.complete_task()
        return [f"Completed: {_task_line(task)}"]

    def block(self, command: TaskIdCommand) -> list[str]:
        with _service(command.db_path) as service:
            task = service.block_task(command.task_id)
        return [f"Blocked: {_task_line(task)}"]

    def unblock(self, command: TaskIdCommand) -> list[str]:
        with _service(command.db_path) as service:
            task = service.unblock_task(command.task_id)
        return [f"Unblocked: {_task_line(task)}"]

    def depend(self, command: DependencyCommand) -> list[str]:
        with _service(command.db_path) as service:
            service.add_dependency(command.task_id, command.depends_on)
        return [f"Task #{command.task_id} now depends on #{command.depends_on}"]

    def undepend(self, command: DependencyCommand) -> list[str]:
        with _service(command.db_path) as service:
            service.remove_dependency(command.task_id, command.depends_on)
        return [f"Task #{command.task_id} no longer depends on #{command.depends_on}"]

    def log(self, command: LogArtifactCommand) -> list[str]:
        with _service(command.db_path) as service:
            artifact = service.log_artifact(command.name, command.file_path)
        return [
            f"Logged artifact '{artifact.name}' -> {artifact.file_path} (task #{artifact.task_id})",
        ]

    def artifacts(self, command: ArtifactsCommand) -> list[str]:
        with _service(command.db_path) as service:
            listing = service.list_artifacts(command.task_id)
        lines = [f"Artifacts for task #{listing.task_id}:"]
        if not listing.artifacts:
            lines.append("  (none)")
        lines.extend(f"  {_artifact_line(artifact)}" for artifact in listing.artifacts)
        return lines

    def reorder(self, command: ReorderCommand) -> list[str]:
        with _service(command.db_path) as service:
            task = service.reorder_task(command.task_id, after=command.after, before=command.before)
        return [f"Moved task #{task.id} to order {task.manual_order:g}"]

    def reindex(self, command: WorkspaceCommand) -> list[str]:
        with _service(command.db_path) as service:
            tasks = service.reindex()
        return [f"Reindexed {len(tasks)} tasks"]

    def serve(
        self,
        command: WorkspaceCommand,
        *,
        input_stream: IO[str] | None = None,
        output_stream: IO[str] | None = None,
    ) -> None:
        with _service(command.db_path) as service:
            serve_stream(service, input_stream or sys.stdin, output_stream or sys.stdout)


@contextmanager
def _service(db_path: Path | None) -> Iterator[TrackerService]:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    if not settings.db_path.exists():
        raise NotInitializedError(str(settings.db_path))
    repository = TrackerRepository(
        settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    try:
        repository.init_schema()
        yield TrackerService(repository=repository)
    finally:
        repository.close()


def _task_line(task: TaskView) -> str:
    return f"{STATUS_GLYPHS[task.status]} #{task.id} {task.title}"


def _artifact_line(artifact: ArtifactView) -> str:
    return f"{artifact.name}: {artifact.file_path} ({artifact.created_at:%Y-%m-%d %H:%M})"


def _warning_lines(warnings: list[OrderConflict]) -> list[str]:
    return [f"Warning: {warning.message}" for warning in warnings]


def _render_details(details: TaskDetails) -> list[str]:
    task = details.task
    lines = [
        _task_line(task),
        f"  Status: {task.status.value}",
        f"  Order: {task.manual_order:g}",
    ]
    if task.description:
        lines.append(f"  Description: {task.description}")
    lines.append(f"  Done when: {task.dod or '(not set)'}")
    lines.append(f"  Created: {task.created_at:%Y-%m-%d %H:%M}")
    if task.started_at is not None:
        lines.append(f"  Started: {task.started_at:%Y-%m-%d %H:%M}")
    if task.completed_at is not None:
        lines.append(f"  Completed: {task.completed_at:%Y-%m-%d %H:%M}")
    if details.dependencies:
        lines.append("  Depends on:")
        lines.extend(f"    {_task_line(dep)}" for dep in details.dependencies)
    if details.dependents:
        lines.append("  Required by:")
        lines.extend(f"    {_task_line(dep)}" for dep in details.dependents)
    if details.artifacts:
        lines.append("  Artifacts:")
        lines.extend(f"    {_artifact_line(artifact)}" for artifact in details.artifacts)
    return lines
