"""Runtime configuration for the task tracker."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

_DEFAULT_DB_PATH = "tt.db"
_DEFAULT_ARTIFACTS_DIR = ".tt/artifacts"


@dataclass(slots=True)
class Settings:
    """Tracker settings loaded from ``DAGTASKS_*`` environment variables."""

    db_path: Path = Path(_DEFAULT_DB_PATH)
    artifacts_dir: Path = Path(_DEFAULT_ARTIFACTS_DIR)
    sqlite_busy_timeout_ms: int = 5_000
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with defaults for a local workspace.

        A relative artifacts directory is resolved against the directory that
        holds the database, so ``--db-path`` moves both together.
        """

        resolved_db_path = db_path or Path(os.getenv("DAGTASKS_DB_PATH", _DEFAULT_DB_PATH))
        artifacts_dir = Path(os.getenv("DAGTASKS_ARTIFACTS_DIR", _DEFAULT_ARTIFACTS_DIR))
        if not artifacts_dir.is_absolute():
            artifacts_dir = resolved_db_path.parent / artifacts_dir
        return cls(
            db_path=resolved_db_path,
            artifacts_dir=artifacts_dir,
            sqlite_busy_timeout_ms=int(os.getenv("DAGTASKS_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            log_level=os.getenv("DAGTASKS_LOG_LEVEL", "WARNING").strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error on out-of-range values."""

        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("DAGTASKS_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ValueError(
                f"DAGTASKS_LOG_LEVEL must be a standard logging level, got {self.log_level!r}.",
            )
