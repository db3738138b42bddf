"""Daily task, digest item, batch telemetry and task event tables."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "daily_tasks",
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("task_date", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("total_items", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_items", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_items", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("task_id"),
    )
    op.create_index("ix_daily_tasks_task_date", "daily_tasks", ["task_date"], unique=True)
    op.create_index("ix_daily_tasks_status", "daily_tasks", ["status"], unique=False)

    op.create_table(
        "digest_items",
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("task_date", sa.String(), nullable=False),
        sa.Column("story_id", sa.Integer(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("author", sa.String(), nullable=False, server_default=""),
        sa.Column("comment_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("story_published_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("translated_title", sa.Text(), nullable=True),
        sa.Column("content_summary", sa.Text(), nullable=True),
        sa.Column("comment_summary", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_date"], ["daily_tasks.task_date"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("item_id"),
        sa.UniqueConstraint("task_date", "story_id", name="uq_digest_items_task_story"),
    )
    op.create_index(
        "idx_digest_items_task_status_rank",
        "digest_items",
        ["task_date", "status", "rank"],
        unique=False,
    )

    op.create_table(
        "task_batches",
        sa.Column("batch_id", sa.Integer(), nullable=False),
        sa.Column("task_date", sa.String(), nullable=False),
        sa.Column("batch_index", sa.Integer(), nullable=False),
        sa.Column("item_count", sa.Integer(), nullable=False),
        sa.Column("succeeded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duration_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_date"], ["daily_tasks.task_date"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("batch_id"),
    )
    op.create_index("ix_task_batches_task_date", "task_batches", ["task_date"], unique=False)

    op.create_table(
        "task_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_date", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("status_from", sa.String(), nullable=True),
        sa.Column("status_to", sa.String(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_date"], ["daily_tasks.task_date"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_task_events_task_date", "task_events", ["task_date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_task_events_task_date", table_name="task_events")
    op.drop_table("task_events")
    op.drop_index("ix_task_batches_task_date", table_name="task_batches")
    op.drop_table("task_batches")
    op.drop_index("idx_digest_items_task_status_rank", table_name="digest_items")
    op.drop_table("digest_items")
    op.drop_index("ix_daily_tasks_status", table_name="daily_tasks")
    op.drop_index("ix_daily_tasks_task_date", table_name="daily_tasks")
    op.drop_table("daily_tasks")
