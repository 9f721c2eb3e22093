from __future__ import annotations

from pathlib import Path

import allure
import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

import dagtasks
from dagtasks.tracker.errors import TaskNotFoundError
from dagtasks.tracker.models import TaskStatus
from dagtasks.tracker.repository import TrackerRepository
from dagtasks.tracker.storage.alembic_runner import migration_config
from dagtasks.tracker.storage.sqlmodel_models import TARGET_CONFIG_KEY

pytestmark = [
    allure.epic("Task Graph"),
    allure.feature("Persistence"),
]


def _create(repository: TrackerRepository, title: str, manual_order: float) -> int:
    with repository.write() as store:
        return store.create_task(
            title=title,
            description=None,
            dod=None,
            manual_order=manual_order,
        ).id


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    repository = TrackerRepository(tmp_path / "migrations.db")
    repository.init_schema()

    with repository.engine.connect() as connection:
        version = connection.execute(
            text("SELECT version_num FROM alembic_version LIMIT 1"),
        ).scalar_one()
        tables = connection.execute(
            text(
                """
                SELECT name
                FROM sqlite_master
                WHERE type = 'table'
                  AND name IN ('tasks', 'dependencies', 'artifacts', 'config')
                ORDER BY name
                """,
            ),
        ).scalars().all()
        journal_mode = connection.execute(text("PRAGMA journal_mode")).scalar_one()

    assert version == "20261018_0002"
    assert tables == ["artifacts", "config", "dependencies", "tasks"]
    assert str(journal_mode).lower() == "wal"
    repository.close()


def test_migrations_ship_inside_the_package(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    package_dir = Path(dagtasks.__file__).resolve().parent
    script_location = Path(migration_config(tmp_path / "x.db").get_main_option("script_location"))

    assert script_location.is_relative_to(package_dir)
    assert (script_location / "env.py").is_file()
    assert sorted(path.name for path in (script_location / "versions").glob("*.py")) == [
        "20261018_0001_initial_task_graph.py",
        "20261018_0002_single_active_task.py",
    ]

    monkeypatch.chdir(tmp_path)
    repository = TrackerRepository(tmp_path / "elsewhere.db")
    repository.init_schema()
    with repository.read() as store:
        assert store.list_tasks() == []
    repository.close()


def test_init_schema_is_idempotent(repository: TrackerRepository) -> None:
    task_id = _create(repository, "survives", 10.0)

    repository.init_schema()

    with repository.read() as store:
        assert store.get_task(task_id).title == "survives"


def test_ids_are_monotonic_and_max_order_tracks_inserts(repository: TrackerRepository) -> None:
    with repository.read() as store:
        assert store.max_manual_order() is None

    first = _create(repository, "first", 10.0)
    second = _create(repository, "second", 25.0)

    assert second > first
    with repository.read() as store:
        assert store.max_manual_order() == 25.0
        assert [task.id for task in store.list_tasks()] == [first, second]
        assert store.list_tasks(status=TaskStatus.COMPLETED) == []


def test_write_block_rolls_back_on_error(repository: TrackerRepository) -> None:
    task_id = _create(repository, "original", 10.0)

    with pytest.raises(RuntimeError, match="boom"):
        with repository.write() as store:
            store.update_task(task_id, title="changed")
            store.set_config(TARGET_CONFIG_KEY, str(task_id))
            raise RuntimeError("boom")

    with repository.read() as store:
        assert store.get_task(task_id).title == "original"
        assert store.get_config(TARGET_CONFIG_KEY) is None


def test_unknown_task_raises_not_found(repository: TrackerRepository) -> None:
    with repository.read() as store:
        assert store.find_task(404) is None
        with pytest.raises(TaskNotFoundError) as error:
            store.get_task(404)

    assert error.value.code == "not_found"


def test_self_dependency_is_rejected_by_schema(repository: TrackerRepository) -> None:
    task_id = _create(repository, "lonely", 10.0)

    with pytest.raises(IntegrityError):
        with repository.write() as store:
            store.add_dependency(task_id, task_id)

    with repository.read() as store:
        assert store.list_edges() == []


def test_dependency_on_missing_task_is_rejected_by_foreign_key(
    repository: TrackerRepository,
) -> None:
    task_id = _create(repository, "orphan", 10.0)

    with pytest.raises(IntegrityError):
        with repository.write() as store:
            store.add_dependency(task_id, 999)


def test_second_in_progress_task_is_rejected_by_schema(repository: TrackerRepository) -> None:
    first = _create(repository, "first", 10.0)
    second = _create(repository, "second", 20.0)
    with repository.write() as store:
        store.update_task(first, status=TaskStatus.IN_PROGRESS)

    with pytest.raises(IntegrityError):
        with repository.write() as store:
            store.update_task(second, status=TaskStatus.IN_PROGRESS)

    with repository.read() as store:
        active = store.get_active_task()
        assert active is not None
        assert active.id == first


def test_dependency_edges_and_neighbours(repository: TrackerRepository) -> None:
    base = _create(repository, "base", 10.0)
    left = _create(repository, "left", 20.0)
    right = _create(repository, "right", 30.0)
    with repository.write() as store:
        store.add_dependency(left, base)
        store.add_dependency(right, base)

    with repository.read() as store:
        assert store.list_edges() == [(left, base), (right, base)]
        assert store.has_dependency(left, base)
        assert not store.has_dependency(base, left)
        assert store.dependencies_of(left) == [base]
        assert store.dependents_of(base) == [left, right]

    with repository.write() as store:
        assert store.remove_dependency(left, base)
        assert not store.remove_dependency(left, base)

    with repository.read() as store:
        assert store.list_edges() == [(right, base)]


def test_mutations_touch_the_affected_task(repository: TrackerRepository) -> None:
    base = _create(repository, "base", 10.0)
    dependent = _create(repository, "dependent", 20.0)
    with repository.read() as store:
        created_touch = store.get_task(dependent).last_touched_at
        base_touch = store.get_task(base).last_touched_at

    with repository.write() as store:
        store.add_dependency(dependent, base)
        store.add_artifact(task_id=dependent, name="notes", file_path="notes.md")

    with repository.read() as store:
        assert store.get_task(dependent).last_touched_at > created_touch
        assert store.get_task(base).last_touched_at == base_touch
        artifacts = store.list_artifacts(dependent)

    assert [(artifact.name, artifact.file_path) for artifact in artifacts] == [
        ("notes", "notes.md"),
    ]


def test_config_values_are_overwritten(repository: TrackerRepository) -> None:
    with repository.write() as store:
        assert store.get_config(TARGET_CONFIG_KEY) is None
        store.set_config(TARGET_CONFIG_KEY, "1")
    with repository.write() as store:
        store.set_config(TARGET_CONFIG_KEY, "2")

    with repository.read() as store:
        assert store.get_config(TARGET_CONFIG_KEY) == "2"
