"""CLI entrypoint for the dagtasks task tracker."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from dagtasks import __version__
from dagtasks.config import Settings
from dagtasks.tracker.controllers import (
    AddTaskCommand,
    ArtifactsCommand,
    DependencyCommand,
    EditTaskCommand,
    ListTasksCommand,
    LogArtifactCommand,
    ReorderCommand,
    TargetCommand,
    TaskIdCommand,
    TrackerCliController,
    WorkspaceCommand,
)
from dagtasks.tracker.errors import TrackerError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = TrackerCliController()

CommandT = TypeVar("CommandT")

db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path (defaults to DAGTASKS_DB_PATH or tt.db).",
)


@click.group()
@click.version_option(version=__version__, prog_name="tt")
def tt() -> None:
    """DAG task tracker.

    Tasks form a dependency graph; `tt next` picks what to work on toward
    the current target.
    """

    _configure_logging()


@tt.command("init")
@db_path_option
def init(db_path: Path | None) -> None:
    """Create the task database and the artifacts directory."""

    _emit_lines(_run(CONTROLLER.init, WorkspaceCommand(db_path=db_path)))


@tt.command("add")
@db_path_option
@click.argument("title")
@click.option("--description", "-d", default=None, help="Longer task description.")
@click.option("--dod", default=None, help="Definition of done, required before `tt done`.")
@click.option("--after", type=int, default=None, help="Place after this task id.")
@click.option("--before", type=int, default=None, help="Place before this task id.")
def add(  # noqa: PLR0913
    db_path: Path | None,
    title: str,
    description: str | None,
    dod: str | None,
    after: int | None,
    before: int | None,
) -> None:
    """Create a pending task."""

    _emit_lines(
        _run(
            CONTROLLER.add,
            AddTaskCommand(
                db_path=db_path,
                title=title,
                description=description,
                dod=dod,
                after=after,
                before=before,
            ),
        ),
    )


@tt.command("edit")
@db_path_option
@click.argument("task_id", type=int)
@click.option("--title", default=None, help="New title.")
@click.option("--description", "-d", default=None, help="New description.")
@click.option("--dod", default=None, help="New definition of done.")
def edit(
    db_path: Path | None,
    task_id: int,
    title: str | None,
    description: str | None,
    dod: str | None,
) -> None:
    """Edit a task that is not completed yet."""

    _emit_lines(
        _run(
            CONTROLLER.edit,
            EditTaskCommand(
                db_path=db_path,
                task_id=task_id,
                title=title,
                description=description,
                dod=dod,
            ),
        ),
    )


@tt.command("show")
@db_path_option
@click.argument("task_id", type=int)
def show(db_path: Path | None, task_id: int) -> None:
    """Show a task with its dependencies, dependents and artifacts."""

    _emit_lines(_run(CONTROLLER.show, TaskIdCommand(db_path=db_path, task_id=task_id)))


@tt.command("list")
@db_path_option
@click.option("--all", "include_all", is_flag=True, help="List every task, not only the target's.")
@click.option(
    "--status",
    default=None,
    help="Only show tasks with this status (pending, in-progress, completed, blocked).",
)
def list_tasks(db_path: Path | None, include_all: bool, status: str | None) -> None:
    """List tasks in execution order."""

    _emit_lines(
        _run(
            CONTROLLER.list_tasks,
            ListTasksCommand(db_path=db_path, include_all=include_all, status=status),
        ),
    )


@tt.command("target")
@db_path_option
@click.argument("task_id", type=int, required=False)
def target(db_path: Path | None, task_id: int | None) -> None:
    """Set the target task, or show it when no id is given."""

    _emit_lines(_run(CONTROLLER.target, TargetCommand(db_path=db_path, task_id=task_id)))


@tt.command("next")
@db_path_option
def next_task(db_path: Path | None) -> None:
    """Show the next task to work on toward the target."""

    _emit_lines(_run(CONTROLLER.next, WorkspaceCommand(db_path=db_path)))


@tt.command("current")
@db_path_option
def current(db_path: Path | None) -> None:
    """Show the task in progress."""

    _emit_lines(_run(CONTROLLER.current, WorkspaceCommand(db_path=db_path)))


@tt.command("start")
@db_path_option
@click.argument("task_id", type=int)
def start(db_path: Path | None, task_id: int) -> None:
    """Start a pending task whose dependencies are completed."""

    _emit_lines(_run(CONTROLLER.start, TaskIdCommand(db_path=db_path, task_id=task_id)))


@tt.command("stop")
@db_path_option
def stop(db_path: Path | None) -> None:
    """Return the task in progress to pending."""

    _emit_lines(_run(CONTROLLER.stop, WorkspaceCommand(db_path=db_path)))


@tt.command("done")
@db_path_option
def done(db_path: Path | None) -> None:
    """Complete the task in progress."""

    _emit_lines(_run(CONTROLLER.done, WorkspaceCommand(db_path=db_path)))


@tt.command("block")
@db_path_option
@click.argument("task_id", type=int)
def block(db_path: Path | None, task_id: int) -> None:
    """Mark a pending or in-progress task as blocked."""

    _emit_lines(_run(CONTROLLER.block, TaskIdCommand(db_path=db_path, task_id=task_id)))


@tt.command("unblock")
@db_path_option
@click.argument("task_id", type=int)
def unblock(db_path: Path | None, task_id: int) -> None:
    """Return a blocked task to pending."""

    _emit_lines(_run(CONTROLLER.unblock, TaskIdCommand(db_path=db_path, task_id=task_id)))


@tt.command("depend")
@db_path_option
@click.argument("task_id", type=int)
@click.argument("depends_on", type=int)
def depend(db_path: Path | None, task_id: int, depends_on: int) -> None:
    """Make TASK_ID depend on DEPENDS_ON."""

    _emit_lines(
        _run(
            CONTROLLER.depend,
            DependencyCommand(db_path=db_path, task_id=task_id, depends_on=depends_on),
        ),
    )


@tt.command("undepend")
@db_path_option
@click.argument("task_id", type=int)
@click.argument("depends_on", type=int)
def undepend(db_path: Path | None, task_id: int, depends_on: int) -> None:
    """Remove the dependency of TASK_ID on DEPENDS_ON."""

    _emit_lines(
        _run(
            CONTROLLER.undepend,
            DependencyCommand(db_path=db_path, task_id=task_id, depends_on=depends_on),
        ),
    )


@tt.command("log")
@db_path_option
@click.argument("name")
@click.option("--file", "file_path", required=True, help="Path of the artifact file.")
def log(db_path: Path | None, name: str, file_path: str) -> None:
    """Attach an artifact reference to the task in progress."""

    _emit_lines(
        _run(
            CONTROLLER.log,
            LogArtifactCommand(db_path=db_path, name=name, file_path=file_path),
        ),
    )


@tt.command("artifacts")
@db_path_option
@click.option("--task", "task_id", type=int, default=None, help="Task id (default: current).")
def artifacts(db_path: Path | None, task_id: int | None) -> None:
    """List artifacts of a task."""

    _emit_lines(_run(CONTROLLER.artifacts, ArtifactsCommand(db_path=db_path, task_id=task_id)))


@tt.command("reorder")
@db_path_option
@click.argument("task_id", type=int)
@click.option("--after", type=int, default=None, help="Place after this task id.")
@click.option("--before", type=int, default=None, help="Place before this task id.")
def reorder(
    db_path: Path | None,
    task_id: int,
    after: int | None,
    before: int | None,
) -> None:
    """Change the manual order of a task."""

    _emit_lines(
        _run(
            CONTROLLER.reorder,
            ReorderCommand(db_path=db_path, task_id=task_id, after=after, before=before),
        ),
    )


@tt.command("reindex")
@db_path_option
def reindex(db_path: Path | None) -> None:
    """Respace manual order values as 10, 20, 30, ..."""

    _emit_lines(_run(CONTROLLER.reindex, WorkspaceCommand(db_path=db_path)))


@tt.command("serve")
@db_path_option
def serve(db_path: Path | None) -> None:
    """Answer line-delimited JSON requests on stdin until EOF.

    Each request is `{"id": 1, "verb": "next", "params": {}}`; each response
    line carries the same `id` and an `ok` envelope.
    """

    _run(CONTROLLER.serve, WorkspaceCommand(db_path=db_path))


def _configure_logging() -> None:
    try:
        settings = Settings.from_env()
        settings.validate()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("alembic").setLevel(logging.WARNING)


def _run(handler: Callable[[CommandT], list[str] | None], command: CommandT) -> list[str]:
    try:
        return handler(command) or []
    except (TrackerError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    tt()
