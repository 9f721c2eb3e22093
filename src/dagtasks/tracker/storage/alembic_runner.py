"""Apply the tracker schema migrations from inside the process."""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def migration_config(db_path: Path) -> Config:
    """Alembic config bound to ``db_path``, independent of the working directory.

    The scripts ship inside the package so an installed ``tt`` finds them.
    """

    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config


def upgrade_head(db_path: Path) -> None:
    """Bring the task database at ``db_path`` to the latest revision."""

    logger.debug("Upgrading tracker schema db=%s", db_path)
    command.upgrade(migration_config(db_path), "head")
