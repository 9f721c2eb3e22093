"""Enforce at most one in-progress task."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        sa.text(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS uq_tasks_single_in_progress
            ON tasks (status)
            WHERE status = 'in_progress'
            """,
        ),
    )


def downgrade() -> None:
    op.execute(
        sa.text(
            "DROP INDEX IF EXISTS uq_tasks_single_in_progress",
        ),
    )
