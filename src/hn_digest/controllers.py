"""CLI-facing controllers for the daily digest."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

import rich_click as click

from hn_digest.config import Settings
from hn_digest.errors import DigestError
from hn_digest.http.content import ContentExtractor
from hn_digest.http.fetcher import HttpFetcher
from hn_digest.llm.provider import build_provider
from hn_digest.pipeline.content_filter import ContentFilter
from hn_digest.pipeline.executor import TaskExecutor
from hn_digest.pipeline.state_machine import DigestStateMachine
from hn_digest.publishers.base import Publisher
from hn_digest.publishers.github import GitHubPublisher
from hn_digest.publishers.telegram import TelegramPublisher
from hn_digest.publishers.terminal import TerminalPublisher
from hn_digest.sources.hackernews import HackerNewsSource
from hn_digest.storage.common import utc_now
from hn_digest.storage.repository import TaskRepository
from hn_digest.translation.translator import Translator

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunCommand:
    """CLI input for one state machine step."""

    db_path: Path | None
    task_date: str | None = None


@dataclass(slots=True)
class PublishCommand:
    """CLI input for publishing one task outside the regular step."""

    db_path: Path | None
    task_date: str | None = None
    force: bool = False


@dataclass(slots=True)
class StatusCommand:
    """CLI input for task listing or inspection."""

    db_path: Path | None
    task_date: str | None = None
    limit: int = 10


@dataclass(slots=True)
class BatchesCommand:
    """CLI input for per-task batch telemetry."""

    db_path: Path | None
    task_date: str


@dataclass(slots=True)
class ArchiveCommand:
    """CLI input for archiving old published tasks."""

    db_path: Path | None
    older_than_days: int | None = None


class DigestCliController:
    """Coordinates run, inspection and maintenance CLI operations."""

    def run(self, command: RunCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        try:
            settings.validate()
        except ValueError as error:
            raise click.ClickException(str(error)) from error

        with _repository(settings) as repository, ExitStack() as stack:
            machine = _build_state_machine(settings, repository, stack)
            try:
                report = machine.run_once(command.task_date)
            except DigestError as error:
                logger.exception("Digest step failed")
                raise click.ClickException(str(error)) from error

        return [
            f"Task {report.task_date}: {report.status_before.value} -> "
            f"{report.status_after.value} ({report.action})",
            report.message,
        ]

    def publish(self, command: PublishCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        try:
            settings.validate()
        except ValueError as error:
            raise click.ClickException(str(error)) from error

        task_date = command.task_date or utc_now().date().isoformat()
        with _repository(settings) as repository, ExitStack() as stack:
            before = repository.get_task(task_date)
            if before is None:
                raise click.ClickException(f"No task for {task_date}.")
            executor = _build_executor(settings, repository, stack)
            if command.force:
                report = executor.force_publish(task_date)
            else:
                aggregate = executor.aggregate_results(task_date)
                report = executor.publish_results(
                    task_date,
                    aggregate.document,
                    aggregate.stories,
                )
            after = repository.get_task(task_date)

        status_after = after.status if after is not None else before.status
        action = "force publish" if command.force else "publish"
        return [
            f"Task {task_date}: {before.status.value} -> {status_after.value} ({action})",
            report.summary(),
        ]

    def status(self, command: StatusCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            try:
                if command.task_date is None:
                    tasks = repository.list_tasks(limit=command.limit)
                else:
                    task = repository.get_task(command.task_date)
                    tasks = [] if task is None else [task]
            except DigestError as error:
                raise click.ClickException(str(error)) from error
            if not tasks:
                return ["No tasks found."]

            lines: list[str] = []
            for task in tasks:
                lines.append(
                    f"{task.task_date} status={task.status.value} "
                    f"total={task.total_items} completed={task.completed_items} "
                    f"failed={task.failed_items}",
                )
                if command.task_date is not None:
                    progress = repository.get_progress(task.task_date)
                    lines.append(
                        f"  pending={progress.pending} in_progress={progress.in_progress} "
                        f"done={progress.done} failed={progress.failed}",
                    )
                    if task.published_at is not None:
                        lines.append(f"  published_at={task.published_at.isoformat()}")
                    lines.extend(
                        f"  event {event_type}: {from_status or '-'} -> {to_status or '-'}"
                        for event_type, from_status, to_status in repository.list_task_events(
                            task.task_date,
                        )
                    )
        return lines

    def batches(self, command: BatchesCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            records = repository.list_batches(command.task_date)
            statistics = repository.get_batch_statistics(command.task_date)

        if not records:
            return [f"No batches recorded for {command.task_date}."]
        lines = [
            f"#{record.batch_index} status={record.status.value} items={record.item_count} "
            f"succeeded={record.succeeded} failed={record.failed} "
            f"duration={record.duration_ms}ms"
            + (f" error={record.error_message}" if record.error_message else "")
            for record in records
        ]
        lines.append(
            f"Total: batches={statistics.batches} items={statistics.items} "
            f"succeeded={statistics.succeeded} failed={statistics.failed} "
            f"avg_duration={statistics.average_duration_ms}ms",
        )
        return lines

    def archive(self, command: ArchiveCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        days = (
            settings.task.archive_retention_days
            if command.older_than_days is None
            else command.older_than_days
        )
        cutoff = (utc_now() - timedelta(days=days)).date().isoformat()
        with _repository(settings) as repository:
            archived = repository.archive_tasks(older_than=cutoff)
        return [f"Archived {archived} published task(s) older than {cutoff}."]


def _build_publishers(settings: Settings, stack: ExitStack) -> list[Publisher]:
    publishers: list[Publisher] = []
    if settings.publish.github_enabled:
        github = GitHubPublisher(
            token=settings.publish.github_token,
            repo=settings.publish.github_repo,
            branch=settings.publish.github_branch,
        )
        stack.callback(github.close)
        publishers.append(github)
    if settings.publish.telegram_enabled:
        telegram = TelegramPublisher(
            bot_token=settings.publish.telegram_bot_token,
            channel_id=settings.publish.telegram_channel_id,
        )
        stack.callback(telegram.close)
        publishers.append(telegram)
    if settings.publish.terminal_enabled or not publishers:
        publishers.append(TerminalPublisher())
    return publishers


def _build_executor(
    settings: Settings,
    repository: TaskRepository,
    stack: ExitStack,
) -> TaskExecutor:
    provider = stack.enter_context(
        build_provider(
            settings.llm.provider,
            api_key=settings.llm.api_key,
            model=settings.llm.model,
            base_url=settings.llm.base_url,
            max_retries=settings.llm.max_retries,
            timeout_seconds=settings.llm.timeout_seconds,
            retry_delay_seconds=settings.llm.retry_delay_seconds,
            openrouter_site_url=settings.llm.openrouter_site_url,
            openrouter_site_name=settings.llm.openrouter_site_name,
        ),
    )
    source = stack.enter_context(HackerNewsSource(story_limit=settings.task.story_limit))
    fetcher = stack.enter_context(
        HttpFetcher(timeout_seconds=settings.content.request_timeout_seconds),
    )
    extractor = ContentExtractor(
        fetcher=fetcher,
        crawler_api_url=settings.content.crawler_api_url,
        crawler_api_token=settings.content.crawler_api_token,
        max_content_chars=settings.content.max_content_chars,
        max_description_chars=settings.content.max_description_chars,
    )
    translator = Translator(
        provider=provider,
        batch_size=settings.llm.batch_size,
        summary_max_length=settings.task.summary_max_length,
        max_content_chars=settings.content.max_content_chars,
    )
    content_filter = None
    if settings.content_filter.enabled:
        content_filter = ContentFilter(
            provider=provider,
            sensitivity=settings.content_filter.sensitivity,
        )
    return TaskExecutor(
        repository=repository,
        source=source,
        extractor=extractor,
        translator=translator,
        publishers=_build_publishers(settings, stack),
        settings=settings.task,
        content_filter=content_filter,
    )


def _build_state_machine(
    settings: Settings,
    repository: TaskRepository,
    stack: ExitStack,
) -> DigestStateMachine:
    return DigestStateMachine(
        repository=repository,
        executor=_build_executor(settings, repository, stack),
    )


@contextmanager
def _repository(settings: Settings) -> Iterator[TaskRepository]:
    repository = TaskRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
