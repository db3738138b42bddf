"""Durable daily task storage backed by SQLModel + SQLite.

Every state change is a conditional write (``UPDATE ... WHERE status = :expected``)
checked through ``rowcount``; a lost race is reported as ``False`` and never
retried or raised. Item status only moves forward.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy import and_, func, or_
from sqlalchemy import update as sa_update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, col, select

from hn_digest.errors import InvalidTransitionError, UnknownTaskStatusError
from hn_digest.pipeline.models import (
    ALLOWED_TRANSITIONS,
    BatchRecordView,
    BatchStatistics,
    BatchStatus,
    ItemOutcome,
    ItemStatus,
    ItemView,
    StoryDetail,
    TaskProgress,
    TaskStatus,
    TaskView,
)
from hn_digest.storage.alembic_runner import upgrade_head
from hn_digest.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from hn_digest.storage.sqlmodel_models import DailyTask, DigestItem, TaskBatch, TaskEvent


class TaskRepository:
    """Task and item persistence facade."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations up to head."""

        upgrade_head(self.db_path)

    def get_or_create_task(self, task_date: str) -> TaskView:
        """Return the task for ``task_date``, creating it in INIT when missing."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.execute(
                sqlite_insert(DailyTask.__table__)  # type: ignore[arg-type]
                .values(
                    task_date=task_date,
                    status=TaskStatus.INIT.value,
                    total_items=0,
                    completed_items=0,
                    failed_items=0,
                    created_at=now,
                    updated_at=now,
                )
                .on_conflict_do_nothing(index_elements=["task_date"]),
            )
            if result.rowcount == 1:
                self._add_event(
                    session=session,
                    task_date=task_date,
                    event_type="created",
                    status_from=None,
                    status_to=TaskStatus.INIT,
                    details={},
                )
            session.commit()
            row = session.exec(select(DailyTask).where(DailyTask.task_date == task_date)).one()
            return _to_task_view(row)

    def get_task(self, task_date: str) -> TaskView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(DailyTask).where(DailyTask.task_date == task_date),
            ).one_or_none()
        if row is None:
            return None
        return _to_task_view(row)

    def list_tasks(self, *, limit: int = 20) -> list[TaskView]:
        """List most recent tasks by work date."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(DailyTask).order_by(col(DailyTask.task_date).desc()).limit(limit),
            ).all()
        return [_to_task_view(row) for row in rows]

    def update_task_status(
        self,
        task_date: str,
        *,
        expected: TaskStatus,
        status: TaskStatus,
        total_items: int | None = None,
        published_at: datetime | None = None,
    ) -> bool:
        """Move a task from ``expected`` to ``status``; ``False`` when another writer won.

        Pairs outside ``ALLOWED_TRANSITIONS`` raise ``InvalidTransitionError``.
        """

        if status not in ALLOWED_TRANSITIONS[expected]:
            raise InvalidTransitionError(expected.value, status.value)
        now = utc_now()
        values: dict[str, object] = {
            "status": status.value,
            "updated_at": to_db_datetime(now),
        }
        if total_items is not None:
            values["total_items"] = total_items
        if published_at is not None:
            values["published_at"] = to_db_datetime(published_at)

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(DailyTask)
                .where(
                    col(DailyTask.task_date) == task_date,
                    col(DailyTask.status) == expected.value,
                )
                .values(**values),
            )
            if result.rowcount != 1:
                session.rollback()
                return False

            details: dict[str, object] = {}
            if total_items is not None:
                details["total_items"] = total_items
            self._add_event(
                session=session,
                task_date=task_date,
                event_type="status_changed",
                status_from=expected,
                status_to=status,
                details=details,
            )
            session.commit()
            return True

    def claim_publish(
        self,
        task_date: str,
        *,
        expected: TaskStatus,
        stale_after_seconds: int,
    ) -> bool:
        """Take the publish lease while the task is in ``expected``.

        Only one invocation holds the lease at a time. A lease older than
        ``stale_after_seconds`` counts as abandoned and may be taken over.
        """

        now = utc_now()
        cutoff = to_db_datetime(now - timedelta(seconds=stale_after_seconds))
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(DailyTask)
                .where(
                    col(DailyTask.task_date) == task_date,
                    col(DailyTask.status) == expected.value,
                    or_(
                        col(DailyTask.publish_claimed_at).is_(None),
                        col(DailyTask.publish_claimed_at) < cutoff,
                    ),
                )
                .values(publish_claimed_at=to_db_datetime(now), updated_at=to_db_datetime(now)),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                task_date=task_date,
                event_type="publish_claimed",
                status_from=expected,
                status_to=None,
                details={},
            )
            session.commit()
            return True

    def release_publish(self, task_date: str) -> None:
        """Drop the publish lease so the next invocation can retry."""

        with Session(self.engine) as session:
            session.exec(
                sa_update(DailyTask)
                .where(col(DailyTask.task_date) == task_date)
                .values(publish_claimed_at=None, updated_at=to_db_datetime(utc_now())),
            )
            session.commit()

    def seed_items(self, task_date: str, stories: Sequence[StoryDetail]) -> int:
        """Insert pending items in the given rank order unless the task already has items."""

        now = to_db_datetime(utc_now())
        inserted = 0
        with Session(self.engine) as session:
            existing = session.exec(
                select(func.count())
                .select_from(DigestItem)
                .where(col(DigestItem.task_date) == task_date),
            ).one()
            if existing:
                return 0
            for rank, story in enumerate(stories, start=1):
                result = session.execute(
                    sqlite_insert(DigestItem.__table__)  # type: ignore[arg-type]
                    .values(
                        task_date=task_date,
                        story_id=story.story_id,
                        rank=rank,
                        title=story.title,
                        url=story.url,
                        score=story.score,
                        author=story.author,
                        comment_count=story.comment_count,
                        story_published_at=to_db_datetime(story.published_at),
                        status=ItemStatus.PENDING.value,
                        created_at=now,
                        updated_at=now,
                    )
                    .on_conflict_do_nothing(index_elements=["task_date", "story_id"]),
                )
                inserted += result.rowcount
            session.commit()
        return inserted

    def claim_pending_items(
        self,
        task_date: str,
        limit: int,
        *,
        stale_after_seconds: int | None = None,
    ) -> list[ItemView]:
        """Claim up to ``limit`` items in rank order.

        Pending items move to in_progress. With ``stale_after_seconds`` set, in_progress
        items whose claim is older than that are re-leased as well.
        """

        if limit <= 0:
            return []
        now = utc_now()
        eligible = col(DigestItem.status) == ItemStatus.PENDING.value
        if stale_after_seconds is not None:
            cutoff = to_db_datetime(now - timedelta(seconds=stale_after_seconds))
            eligible = or_(
                eligible,
                and_(
                    col(DigestItem.status) == ItemStatus.IN_PROGRESS.value,
                    col(DigestItem.claimed_at) < cutoff,
                ),
            )

        claimed_ids: list[int] = []
        with Session(self.engine) as session:
            candidates = session.exec(
                select(DigestItem)
                .where(col(DigestItem.task_date) == task_date, eligible)
                .order_by(col(DigestItem.rank).asc())
                .limit(limit),
            ).all()
            for candidate in candidates:
                if candidate.item_id is None:
                    continue
                claimed_at_matches = (
                    col(DigestItem.claimed_at).is_(None)
                    if candidate.claimed_at is None
                    else col(DigestItem.claimed_at) == candidate.claimed_at
                )
                result = session.exec(
                    sa_update(DigestItem)
                    .where(
                        col(DigestItem.item_id) == candidate.item_id,
                        col(DigestItem.status) == candidate.status,
                        claimed_at_matches,
                    )
                    .values(
                        status=ItemStatus.IN_PROGRESS.value,
                        claimed_at=to_db_datetime(now),
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount == 1:
                    claimed_ids.append(candidate.item_id)
            session.commit()

            if not claimed_ids:
                return []
            rows = session.exec(
                select(DigestItem)
                .where(col(DigestItem.item_id).in_(claimed_ids))
                .order_by(col(DigestItem.rank).asc()),
            ).all()
            return [_to_item_view(row) for row in rows]

    def record_item_outcome(
        self,
        item_id: int,
        outcome: ItemOutcome,
        *,
        claimed_at: datetime | None,
    ) -> bool:
        """Finish an in_progress item and bump the task counters in one transaction.

        ``claimed_at`` is the lease the caller got from ``claim_pending_items``. Once the
        item has been re-leased, the old holder's write is rejected.
        """

        now = to_db_datetime(utc_now())
        lease_matches = (
            col(DigestItem.claimed_at).is_(None)
            if claimed_at is None
            else col(DigestItem.claimed_at) == to_db_datetime(claimed_at)
        )
        with Session(self.engine) as session:
            row = session.exec(
                select(DigestItem).where(DigestItem.item_id == item_id),
            ).one_or_none()
            if row is None:
                return False

            result = session.exec(
                sa_update(DigestItem)
                .where(
                    col(DigestItem.item_id) == item_id,
                    col(DigestItem.status) == ItemStatus.IN_PROGRESS.value,
                    lease_matches,
                )
                .values(
                    status=outcome.status.value,
                    translated_title=outcome.translated_title,
                    content_summary=outcome.content_summary,
                    comment_summary=outcome.comment_summary,
                    error_message=outcome.error_message,
                    finished_at=now,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False

            counter = (
                DailyTask.completed_items
                if outcome.status == ItemStatus.DONE
                else DailyTask.failed_items
            )
            session.exec(
                sa_update(DailyTask)
                .where(col(DailyTask.task_date) == row.task_date)
                .values({counter: counter + 1, DailyTask.updated_at: now}),
            )
            session.commit()
            return True

    def get_progress(self, task_date: str) -> TaskProgress:
        """Item counts per status."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(DigestItem.status, func.count())
                .where(col(DigestItem.task_date) == task_date)
                .group_by(col(DigestItem.status)),
            ).all()
        counts = {str(status): int(count) for status, count in rows}
        return TaskProgress(
            pending=counts.get(ItemStatus.PENDING.value, 0),
            in_progress=counts.get(ItemStatus.IN_PROGRESS.value, 0),
            done=counts.get(ItemStatus.DONE.value, 0),
            failed=counts.get(ItemStatus.FAILED.value, 0),
        )

    def list_finished_items(self, task_date: str) -> list[ItemView]:
        """Done and failed items in rank order."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(DigestItem)
                .where(
                    col(DigestItem.task_date) == task_date,
                    col(DigestItem.status).in_(
                        (ItemStatus.DONE.value, ItemStatus.FAILED.value),
                    ),
                )
                .order_by(col(DigestItem.rank).asc()),
            ).all()
        return [_to_item_view(row) for row in rows]

    def list_items(self, task_date: str) -> list[ItemView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(DigestItem)
                .where(col(DigestItem.task_date) == task_date)
                .order_by(col(DigestItem.rank).asc()),
            ).all()
        return [_to_item_view(row) for row in rows]

    def next_batch_index(self, task_date: str) -> int:
        with Session(self.engine) as session:
            count = session.exec(
                select(func.count())
                .select_from(TaskBatch)
                .where(col(TaskBatch.task_date) == task_date),
            ).one()
        return int(count)

    def record_batch(  # noqa: PLR0913
        self,
        task_date: str,
        *,
        batch_index: int,
        item_count: int,
        succeeded: int,
        failed: int,
        duration_ms: int,
        status: BatchStatus,
        error_message: str | None = None,
    ) -> None:
        """Persist telemetry for one processing batch."""

        with Session(self.engine) as session:
            session.add(
                TaskBatch(
                    task_date=task_date,
                    batch_index=batch_index,
                    item_count=item_count,
                    succeeded=succeeded,
                    failed=failed,
                    duration_ms=duration_ms,
                    status=status.value,
                    error_message=error_message,
                    created_at=to_db_datetime(utc_now()),
                ),
            )
            session.commit()

    def list_batches(self, task_date: str) -> list[BatchRecordView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskBatch)
                .where(col(TaskBatch.task_date) == task_date)
                .order_by(col(TaskBatch.batch_id).asc()),
            ).all()
        return [_to_batch_view(row) for row in rows]

    def get_batch_statistics(self, task_date: str) -> BatchStatistics:
        """Totals across every recorded batch of a task."""

        with Session(self.engine) as session:
            row = session.exec(
                select(
                    func.count(),
                    func.coalesce(func.sum(TaskBatch.item_count), 0),
                    func.coalesce(func.sum(TaskBatch.succeeded), 0),
                    func.coalesce(func.sum(TaskBatch.failed), 0),
                    func.coalesce(func.sum(TaskBatch.duration_ms), 0),
                ).where(col(TaskBatch.task_date) == task_date),
            ).one()
        batches, items, succeeded, failed, duration_ms = row
        return BatchStatistics(
            batches=int(batches),
            items=int(items),
            succeeded=int(succeeded),
            failed=int(failed),
            total_duration_ms=int(duration_ms),
        )

    def archive_tasks(self, *, older_than: str) -> int:
        """Move published tasks with a work date before ``older_than`` to ARCHIVED."""

        with Session(self.engine) as session:
            candidates = session.exec(
                select(DailyTask.task_date).where(
                    col(DailyTask.status) == TaskStatus.PUBLISHED.value,
                    col(DailyTask.task_date) < older_than,
                ),
            ).all()
        archived = 0
        for task_date in candidates:
            if self.update_task_status(
                task_date,
                expected=TaskStatus.PUBLISHED,
                status=TaskStatus.ARCHIVED,
            ):
                archived += 1
        return archived

    def list_task_events(self, task_date: str) -> list[tuple[str, str | None, str | None]]:
        """Event type and status pair for each event of a task, oldest first."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskEvent)
                .where(col(TaskEvent.task_date) == task_date)
                .order_by(col(TaskEvent.id).asc()),
            ).all()
        return [(row.event_type, row.status_from, row.status_to) for row in rows]

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        task_date: str,
        event_type: str,
        status_from: TaskStatus | None,
        status_to: TaskStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            TaskEvent(
                task_date=task_date,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=json.dumps(details, ensure_ascii=False, sort_keys=True)
                if details
                else None,
                created_at=to_db_datetime(utc_now()),
            ),
        )


def parse_task_status(value: str) -> TaskStatus:
    """Validate a persisted status; unknown values are fatal."""

    try:
        return TaskStatus(value)
    except ValueError as error:
        raise UnknownTaskStatusError(value) from error


def _optional_aware(value: datetime | None) -> datetime | None:
    return to_utc_aware_datetime(value) if value is not None else None


def _to_task_view(row: DailyTask) -> TaskView:
    return TaskView(
        task_date=row.task_date,
        status=parse_task_status(row.status),
        total_items=row.total_items,
        completed_items=row.completed_items,
        failed_items=row.failed_items,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
        published_at=_optional_aware(row.published_at),
    )


def _to_item_view(row: DigestItem) -> ItemView:
    return ItemView(
        item_id=row.item_id or 0,
        task_date=row.task_date,
        story_id=row.story_id,
        rank=row.rank,
        title=row.title,
        url=row.url,
        score=row.score,
        author=row.author,
        comment_count=row.comment_count,
        story_published_at=to_utc_aware_datetime(row.story_published_at),
        status=ItemStatus(row.status),
        claimed_at=_optional_aware(row.claimed_at),
        finished_at=_optional_aware(row.finished_at),
        translated_title=row.translated_title,
        content_summary=row.content_summary,
        comment_summary=row.comment_summary,
        error_message=row.error_message,
    )


def _to_batch_view(row: TaskBatch) -> BatchRecordView:
    return BatchRecordView(
        batch_id=row.batch_id or 0,
        task_date=row.task_date,
        batch_index=row.batch_index,
        item_count=row.item_count,
        succeeded=row.succeeded,
        failed=row.failed,
        duration_ms=row.duration_ms,
        status=BatchStatus(row.status),
        error_message=row.error_message,
        created_at=to_utc_aware_datetime(row.created_at),
    )
