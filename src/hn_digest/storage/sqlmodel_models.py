"""SQLModel ORM tables for daily task storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class DailyTask(SQLModel, table=True):
    __tablename__ = "daily_tasks"  # type: ignore[bad-override]

    task_id: int | None = Field(default=None, primary_key=True)
    task_date: str = Field(unique=True, index=True)
    status: str = Field(index=True)
    total_items: int = 0
    completed_items: int = 0
    failed_items: int = 0
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    published_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    publish_claimed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )


class DigestItem(SQLModel, table=True):
    __tablename__ = "digest_items"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("task_date", "story_id", name="uq_digest_items_task_story"),
        Index("idx_digest_items_task_status_rank", "task_date", "status", "rank"),
    )

    item_id: int | None = Field(default=None, primary_key=True)
    task_date: str = Field(
        sa_column=Column(
            String,
            ForeignKey("daily_tasks.task_date", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    story_id: int
    rank: int
    title: str
    url: str | None = None
    score: int = 0
    author: str = ""
    comment_count: int = 0
    story_published_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    status: str
    claimed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    finished_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    translated_title: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    content_summary: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    comment_summary: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    error_message: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskBatch(SQLModel, table=True):
    __tablename__ = "task_batches"  # type: ignore[bad-override]

    batch_id: int | None = Field(default=None, primary_key=True)
    task_date: str = Field(
        sa_column=Column(
            String,
            ForeignKey("daily_tasks.task_date", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    batch_index: int
    item_count: int
    succeeded: int = 0
    failed: int = 0
    duration_ms: int = 0
    status: str
    error_message: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskEvent(SQLModel, table=True):
    __tablename__ = "task_events"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    task_date: str = Field(
        sa_column=Column(
            String,
            ForeignKey("daily_tasks.task_date", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    event_type: str
    status_from: str | None = None
    status_to: str | None = None
    details_json: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
