"""One bounded step of the daily digest lifecycle per invocation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from hn_digest.errors import UnknownTaskStatusError
from hn_digest.pipeline.executor import TaskExecutor
from hn_digest.pipeline.models import StepReport, TaskStatus, TaskView
from hn_digest.storage.common import utc_now
from hn_digest.storage.repository import TaskRepository

logger = logging.getLogger(__name__)


class DigestStateMachine:
    """Load the task for a work date and run the action its status calls for."""

    def __init__(
        self,
        *,
        repository: TaskRepository,
        executor: TaskExecutor,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.executor = executor
        self._clock = clock

    def run_once(self, task_date: str | None = None) -> StepReport:
        task_date = task_date or self._clock().date().isoformat()
        task = self.repository.get_or_create_task(task_date)
        logger.info("Task %s loaded with status %s", task_date, task.status.value)

        if task.status == TaskStatus.INIT:
            result = self.executor.initialize_task(task_date)
            message = (
                f"fetched {result.candidates} candidates, seeded {result.seeded} items"
                f" ({result.filtered} filtered)"
            )
            return self._report(task, "initialize", message)

        if task.status in (TaskStatus.LIST_FETCHED, TaskStatus.PROCESSING):
            return self._process(task)

        if task.status == TaskStatus.AGGREGATING:
            aggregate = self.executor.aggregate_results(task_date)
            report = self.executor.publish_results(task_date, aggregate.document, aggregate.stories)
            return self._report(task, "publish", report.summary())

        if task.status in (TaskStatus.PUBLISHED, TaskStatus.ARCHIVED):
            return self._report(task, "noop", f"task already {task.status.value}")

        raise UnknownTaskStatusError(str(task.status))

    def _process(self, task: TaskView) -> StepReport:
        task_date = task.task_date
        if task.status == TaskStatus.LIST_FETCHED and task.total_items == 0:
            self.repository.update_task_status(
                task_date,
                expected=TaskStatus.LIST_FETCHED,
                status=TaskStatus.AGGREGATING,
            )
            return self._report(task, "process", "no items to process")

        progress = self.executor.process_next_batch(task_date)
        message = (
            f"processed {progress.processed}, failed {progress.failed},"
            f" {progress.remaining} remaining"
        )
        if progress.remaining == 0:
            if self.repository.update_task_status(
                task_date,
                expected=TaskStatus.PROCESSING,
                status=TaskStatus.AGGREGATING,
            ):
                logger.info("All items of %s finished, moving to aggregating", task_date)
            else:
                logger.info("Task %s already left processing", task_date)
        return self._report(task, "process", message)

    def _report(self, before: TaskView, action: str, message: str) -> StepReport:
        after = self.repository.get_task(before.task_date)
        status_after = after.status if after is not None else before.status
        logger.info(
            "Step %s on %s: %s -> %s (%s)",
            action,
            before.task_date,
            before.status.value,
            status_after.value,
            message,
        )
        return StepReport(
            task_date=before.task_date,
            status_before=before.status,
            status_after=status_after,
            action=action,
            message=message,
        )
