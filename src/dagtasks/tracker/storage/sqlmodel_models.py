"""SQLModel ORM tables for the task graph store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    text,
)
from sqlmodel import Field, SQLModel

TARGET_CONFIG_KEY = "target"


class TaskRow(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'blocked')",
            name="ck_tasks_status",
        ),
        Index("idx_tasks_status", "status"),
        Index("idx_tasks_manual_order", "manual_order"),
        Index(
            "uq_tasks_single_in_progress",
            "status",
            unique=True,
            sqlite_where=text("status = 'in_progress'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id: int | None = Field(default=None, primary_key=True)
    title: str = Field(sa_column=Column(Text, nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text))
    dod: str | None = Field(default=None, sa_column=Column(Text))
    status: str = "pending"
    manual_order: float = Field(default=0.0, sa_column=Column(Float, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    last_touched_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class DependencyRow(SQLModel, table=True):
    __tablename__ = "dependencies"  # type: ignore[bad-override]
    __table_args__ = (
        CheckConstraint("task_id != depends_on", name="ck_dependencies_not_self"),
        Index("idx_dependencies_depends_on", "depends_on"),
    )

    task_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("tasks.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    depends_on: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("tasks.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )


class ArtifactRow(SQLModel, table=True):
    __tablename__ = "artifacts"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_artifacts_task_id", "task_id"),
        {"sqlite_autoincrement": True},
    )

    id: int | None = Field(default=None, primary_key=True)
    task_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("tasks.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    name: str
    file_path: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ConfigEntry(SQLModel, table=True):
    __tablename__ = "config"  # type: ignore[bad-override]

    key: str = Field(primary_key=True)
    value: str = Field(sa_column=Column(Text, nullable=False))
