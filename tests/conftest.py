"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from dagtasks.tracker.repository import TrackerRepository
from dagtasks.tracker.services import TrackerService


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[TrackerRepository]:
    repo = TrackerRepository(tmp_path / "tracker.db")
    repo.init_schema()
    yield repo
    repo.close()


@pytest.fixture()
def service(repository: TrackerRepository) -> TrackerService:
    return TrackerService(repository=repository)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "DAGTASKS_DB_PATH",
        "DAGTASKS_ARTIFACTS_DIR",
        "DAGTASKS_SQLITE_BUSY_TIMEOUT_MS",
        "DAGTASKS_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)

