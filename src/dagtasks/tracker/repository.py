"""Transactional persistence for tasks, dependency edges, artifacts, and config."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import func
from sqlmodel import Session, col, delete, select

from dagtasks.tracker.errors import TaskNotFoundError
from dagtasks.tracker.models import ArtifactView, TaskStatus, TaskView
from dagtasks.tracker.storage.alembic_runner import upgrade_head
from dagtasks.tracker.storage.common import (
    WRITE_LOCK_OPTION,
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from dagtasks.tracker.storage.sqlmodel_models import (
    ArtifactRow,
    ConfigEntry,
    DependencyRow,
    TaskRow,
)

logger = logging.getLogger(__name__)

_UNSET = object()


class TrackerRepository:
    """Persistence facade backed by SQLModel + SQLite.

    Callers never get a bare session: ``read()`` and ``write()`` each yield a
    ``TrackerStore`` bound to one transaction that commits when the block
    exits normally and rolls back on any exception.
    """

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)
        self._write_engine = self.engine.execution_options(**{WRITE_LOCK_OPTION: True})

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    @contextmanager
    def read(self) -> Iterator[TrackerStore]:
        """Deferred transaction; never waits for an open writer."""

        with Session(self.engine) as session, session.begin():
            yield TrackerStore(session)

    @contextmanager
    def write(self) -> Iterator[TrackerStore]:
        """Immediate transaction holding the single write lock until commit."""

        with Session(self._write_engine) as session, session.begin():
            yield TrackerStore(session)


class TrackerStore:
    """Row-level operations inside one open transaction.

    Structural rules (status domain, no self-edges, unique edges, one
    in-progress task) are also enforced by the schema, so a caller that skips
    the service guards still cannot commit a malformed row.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    # ---- tasks ----

    def create_task(
        self,
        *,
        title: str,
        description: str | None,
        dod: str | None,
        manual_order: float,
    ) -> TaskView:
        now = to_db_datetime(utc_now())
        row = TaskRow(
            title=title,
            description=description,
            dod=dod,
            status=TaskStatus.PENDING.value,
            manual_order=manual_order,
            created_at=now,
            last_touched_at=now,
        )
        self.session.add(row)
        self.session.flush()
        logger.debug("Task inserted id=%s order=%s", row.id, manual_order)
        return _to_task_view(row)

    def find_task(self, task_id: int) -> TaskView | None:
        row = self.session.get(TaskRow, task_id)
        return _to_task_view(row) if row is not None else None

    def get_task(self, task_id: int) -> TaskView:
        return _to_task_view(self._get_task_row(task_id))

    def list_tasks(self, *, status: TaskStatus | None = None) -> list[TaskView]:
        statement = select(TaskRow).order_by(col(TaskRow.id).asc())
        if status is not None:
            statement = statement.where(TaskRow.status == status.value)
        return [_to_task_view(row) for row in self.session.exec(statement).all()]

    def get_tasks(self, task_ids: Iterable[int]) -> list[TaskView]:
        ids = sorted(set(task_ids))
        if not ids:
            return []
        rows = self.session.exec(
            select(TaskRow).where(col(TaskRow.id).in_(ids)).order_by(col(TaskRow.id).asc()),
        ).all()
        return [_to_task_view(row) for row in rows]

    def get_active_task(self) -> TaskView | None:
        row = self.session.exec(
            select(TaskRow).where(TaskRow.status == TaskStatus.IN_PROGRESS.value),
        ).one_or_none()
        return _to_task_view(row) if row is not None else None

    def update_task(  # noqa: PLR0913
        self,
        task_id: int,
        *,
        title: object = _UNSET,
        description: object = _UNSET,
        dod: object = _UNSET,
        status: TaskStatus | None = None,
        started_at: object = _UNSET,
        completed_at: object = _UNSET,
    ) -> TaskView:
        """Update the given columns and touch the row; omitted columns are kept."""

        row = self._get_task_row(task_id)
        if title is not _UNSET:
            row.title = title  # type: ignore[assignment]
        if description is not _UNSET:
            row.description = description  # type: ignore[assignment]
        if dod is not _UNSET:
            row.dod = dod  # type: ignore[assignment]
        if status is not None:
            row.status = status.value
        if started_at is not _UNSET:
            row.started_at = _optional_db_datetime(started_at)  # type: ignore[arg-type]
        if completed_at is not _UNSET:
            row.completed_at = _optional_db_datetime(completed_at)  # type: ignore[arg-type]
        row.last_touched_at = to_db_datetime(utc_now())
        self.session.add(row)
        self.session.flush()
        return _to_task_view(row)

    def touch_task(self, task_id: int) -> None:
        row = self._get_task_row(task_id)
        row.last_touched_at = to_db_datetime(utc_now())
        self.session.add(row)
        self.session.flush()

    def max_manual_order(self) -> float | None:
        value = self.session.exec(select(func.max(TaskRow.manual_order))).one()
        return float(value) if value is not None else None

    def set_manual_order(self, task_id: int, manual_order: float) -> TaskView:
        row = self._get_task_row(task_id)
        row.manual_order = manual_order
        row.last_touched_at = to_db_datetime(utc_now())
        self.session.add(row)
        self.session.flush()
        return _to_task_view(row)

    # ---- dependencies ----

    def add_dependency(self, task_id: int, depends_on: int) -> None:
        self.session.add(DependencyRow(task_id=task_id, depends_on=depends_on))
        self.touch_task(task_id)

    def remove_dependency(self, task_id: int, depends_on: int) -> bool:
        result = self.session.exec(
            delete(DependencyRow).where(
                col(DependencyRow.task_id) == task_id,
                col(DependencyRow.depends_on) == depends_on,
            ),
        )
        if result.rowcount != 1:
            return False
        self.touch_task(task_id)
        return True

    def has_dependency(self, task_id: int, depends_on: int) -> bool:
        return self.session.get(DependencyRow, (task_id, depends_on)) is not None

    def list_edges(self) -> list[tuple[int, int]]:
        rows = self.session.exec(
            select(DependencyRow).order_by(
                col(DependencyRow.task_id).asc(),
                col(DependencyRow.depends_on).asc(),
            ),
        ).all()
        return [(row.task_id, row.depends_on) for row in rows]

    def dependencies_of(self, task_id: int) -> list[int]:
        rows = self.session.exec(
            select(DependencyRow.depends_on)
            .where(DependencyRow.task_id == task_id)
            .order_by(col(DependencyRow.depends_on).asc()),
        ).all()
        return list(rows)

    def dependents_of(self, task_id: int) -> list[int]:
        rows = self.session.exec(
            select(DependencyRow.task_id)
            .where(DependencyRow.depends_on == task_id)
            .order_by(col(DependencyRow.task_id).asc()),
        ).all()
        return list(rows)

    # ---- artifacts ----

    def add_artifact(self, *, task_id: int, name: str, file_path: str) -> ArtifactView:
        row = ArtifactRow(
            task_id=task_id,
            name=name,
            file_path=file_path,
            created_at=to_db_datetime(utc_now()),
        )
        self.session.add(row)
        self.touch_task(task_id)
        return _to_artifact_view(row)

    def list_artifacts(self, task_id: int) -> list[ArtifactView]:
        rows = self.session.exec(
            select(ArtifactRow)
            .where(ArtifactRow.task_id == task_id)
            .order_by(col(ArtifactRow.id).asc()),
        ).all()
        return [_to_artifact_view(row) for row in rows]

    # ---- config ----

    def get_config(self, key: str) -> str | None:
        row = self.session.get(ConfigEntry, key)
        return row.value if row is not None else None

    def set_config(self, key: str, value: str) -> None:
        row = self.session.get(ConfigEntry, key)
        if row is None:
            row = ConfigEntry(key=key, value=value)
        else:
            row.value = value
        self.session.add(row)
        self.session.flush()

    def _get_task_row(self, task_id: int) -> TaskRow:
        row = self.session.get(TaskRow, task_id)
        if row is None:
            raise TaskNotFoundError(task_id)
        return row


def _optional_db_datetime(value: object) -> object:
    if value is None:
        return None
    return to_db_datetime(value)  # type: ignore[arg-type]


def _to_task_view(row: TaskRow) -> TaskView:
    if row.id is None:
        raise RuntimeError("Task row has no id; flush before building a view")
    return TaskView(
        id=row.id,
        title=row.title,
        description=row.description,
        dod=row.dod,
        status=TaskStatus(row.status),
        manual_order=float(row.manual_order),
        created_at=to_utc_aware_datetime(row.created_at),
        started_at=to_utc_aware_datetime(row.started_at) if row.started_at is not None else None,
        completed_at=(
            to_utc_aware_datetime(row.completed_at) if row.completed_at is not None else None
        ),
        last_touched_at=to_utc_aware_datetime(row.last_touched_at),
    )


def _to_artifact_view(row: ArtifactRow) -> ArtifactView:
    if row.id is None:
        raise RuntimeError("Artifact row has no id; flush before building a view")
    return ArtifactView(
        id=row.id,
        task_id=row.task_id,
        name=row.name,
        file_path=row.file_path,
        created_at=to_utc_aware_datetime(row.created_at),
    )
