"""Executor operations behind each task state.

Upstream and model failures degrade individual items to failed; they never abort
an operation. Storage errors propagate to the caller.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol

from hn_digest.config import TaskSettings
from hn_digest.errors import SourceError
from hn_digest.http.content import ExtractedContent
from hn_digest.pipeline.content_filter import ContentFilter
from hn_digest.pipeline.markdown import FAILED_ITEM_PLACEHOLDER, render_digest
from hn_digest.pipeline.models import (
    AggregateResult,
    BatchProgress,
    BatchStatus,
    DigestStory,
    InitializeResult,
    ItemOutcome,
    ItemStatus,
    ItemView,
    PublisherOutcome,
    PublishReport,
    StoryDetail,
    TaskStatus,
)
from hn_digest.publishers.base import DigestContent, Publisher
from hn_digest.sources.hackernews import HN_ITEM_URL
from hn_digest.storage.common import utc_now
from hn_digest.storage.repository import TaskRepository
from hn_digest.translation.translator import Translator

logger = logging.getLogger(__name__)

_FORCE_PUBLISHABLE = (TaskStatus.LIST_FETCHED, TaskStatus.PROCESSING, TaskStatus.AGGREGATING)


class StorySource(Protocol):
    """Interface for the daily story list and per-story lookups."""

    def fetch_candidate_list(self, day: date) -> list[int]:
        """Story ids for the work date in rank order."""

    def fetch_item_detail(self, story_id: int) -> StoryDetail | None:
        """Story metadata, or ``None`` when the item is not a live story."""

    def fetch_comments(self, story_id: int, limit: int) -> list[str]:
        """Up to ``limit`` top-level comment texts."""


class ArticleExtractor(Protocol):
    """Interface for article text extraction."""

    def extract_content(self, url: str) -> ExtractedContent:
        """Main text and short description of the page at ``url``."""


@dataclass(slots=True)
class _ItemInputs:
    content: ExtractedContent
    comments: list[str]


class TaskExecutor:
    """Initialize, process, aggregate and publish one daily task."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: TaskRepository,
        source: StorySource,
        extractor: ArticleExtractor,
        translator: Translator,
        publishers: Sequence[Publisher],
        settings: TaskSettings,
        content_filter: ContentFilter | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.source = source
        self.extractor = extractor
        self.translator = translator
        self.publishers = list(publishers)
        self.settings = settings
        self.content_filter = content_filter
        self._clock = clock

    def initialize_task(self, task_date: str) -> InitializeResult:
        """Fetch the story list, seed pending items and move INIT to LIST_FETCHED."""

        task = self.repository.get_or_create_task(task_date)
        if task.status != TaskStatus.INIT:
            logger.info("Task %s already initialized (status=%s)", task_date, task.status.value)
            return InitializeResult(
                task_date=task_date,
                candidates=0,
                seeded=0,
                filtered=0,
                total_items=task.total_items,
                transitioned=False,
            )

        try:
            candidate_ids = self.source.fetch_candidate_list(date.fromisoformat(task_date))
        except SourceError as exc:
            logger.warning("Story list fetch failed for %s, will retry: %s", task_date, exc)
            return InitializeResult(
                task_date=task_date,
                candidates=0,
                seeded=0,
                filtered=0,
                total_items=0,
                transitioned=False,
            )
        candidate_ids = list(dict.fromkeys(candidate_ids))

        with ThreadPoolExecutor(max_workers=self.settings.fetch_concurrency) as pool:
            details = list(pool.map(self._fetch_detail, candidate_ids))
        stories = [detail for detail in details if detail is not None]

        kept = stories
        if self.content_filter is not None:
            kept = self.content_filter.filter_stories(stories)

        seeded = self.repository.seed_items(task_date, kept)
        total_items = self.repository.get_progress(task_date).total
        transitioned = self.repository.update_task_status(
            task_date,
            expected=TaskStatus.INIT,
            status=TaskStatus.LIST_FETCHED,
            total_items=total_items,
        )
        logger.info(
            "Initialized %s: %d candidates, %d stories, %d filtered, %d seeded",
            task_date,
            len(candidate_ids),
            len(stories),
            len(stories) - len(kept),
            seeded,
        )
        return InitializeResult(
            task_date=task_date,
            candidates=len(candidate_ids),
            seeded=seeded,
            filtered=len(stories) - len(kept),
            total_items=total_items,
            transitioned=transitioned,
        )

    def process_next_batch(self, task_date: str, batch_size: int | None = None) -> BatchProgress:
        """Claim, translate and finish up to ``batch_size`` items."""

        size = self.settings.batch_size if batch_size is None else batch_size
        started = time.monotonic()

        task = self.repository.get_task(task_date)
        if task is not None and task.status == TaskStatus.LIST_FETCHED:
            self.repository.update_task_status(
                task_date,
                expected=TaskStatus.LIST_FETCHED,
                status=TaskStatus.PROCESSING,
            )

        items = self.repository.claim_pending_items(
            task_date,
            size,
            stale_after_seconds=self.settings.claim_stale_seconds,
        )
        if not items:
            progress = self.repository.get_progress(task_date)
            logger.info(
                "No claimable items for %s (pending=%d in_progress=%d)",
                task_date,
                progress.pending,
                progress.in_progress,
            )
            return BatchProgress(
                processed=0,
                failed=0,
                pending=progress.pending,
                in_progress=progress.in_progress,
            )

        batch_index = self.repository.next_batch_index(task_date)
        logger.info("Processing batch %d of %s: %d items", batch_index, task_date, len(items))
        outcomes = self._build_outcomes(items)

        processed = 0
        failed = 0
        for item, outcome in zip(items, outcomes, strict=True):
            if not self.repository.record_item_outcome(
                item.item_id,
                outcome,
                claimed_at=item.claimed_at,
            ):
                logger.warning(
                    "Item %d was finished or re-leased by another invocation",
                    item.item_id,
                )
                continue
            if outcome.status == ItemStatus.DONE:
                processed += 1
            else:
                failed += 1

        duration_ms = int((time.monotonic() - started) * 1000)
        if failed == 0:
            batch_status = BatchStatus.SUCCESS
        elif processed == 0:
            batch_status = BatchStatus.FAILED
        else:
            batch_status = BatchStatus.PARTIAL
        errors = sorted({outcome.error_message for outcome in outcomes if outcome.error_message})
        self.repository.record_batch(
            task_date,
            batch_index=batch_index,
            item_count=len(items),
            succeeded=processed,
            failed=failed,
            duration_ms=duration_ms,
            status=batch_status,
            error_message="; ".join(errors) or None,
        )

        progress = self.repository.get_progress(task_date)
        logger.info(
            "Batch %d of %s done in %dms: processed=%d failed=%d pending=%d in_progress=%d",
            batch_index,
            task_date,
            duration_ms,
            processed,
            failed,
            progress.pending,
            progress.in_progress,
        )
        return BatchProgress(
            processed=processed,
            failed=failed,
            pending=progress.pending,
            in_progress=progress.in_progress,
        )

    def aggregate_results(self, task_date: str) -> AggregateResult:
        """Finished items in rank order rendered as the daily post."""

        stories = [_to_digest_story(item) for item in self.repository.list_finished_items(task_date)]
        return AggregateResult(stories=stories, document=render_digest(task_date, stories))

    def publish_results(
        self,
        task_date: str,
        document: str,
        stories: Sequence[DigestStory],
    ) -> PublishReport:
        """Run every publisher independently; any success moves AGGREGATING to PUBLISHED."""

        task = self.repository.get_task(task_date)
        if task is None or task.status != TaskStatus.AGGREGATING:
            status = task.status.value if task is not None else "missing"
            return PublishReport(skipped_reason=f"task is not aggregating (status={status})")
        if task.finished_items != task.total_items:
            logger.warning(
                "Refusing to publish %s: %d of %d items finished",
                task_date,
                task.finished_items,
                task.total_items,
            )
            return PublishReport(
                skipped_reason=f"{task.finished_items}/{task.total_items} items finished",
            )
        if not self.publishers:
            logger.warning("No publishers configured, %s stays aggregating", task_date)
            return PublishReport(skipped_reason="no publishers configured")

        content = DigestContent(task_date=task_date, document=document, stories=list(stories))
        return self._publish_under_lease(task_date, content, expected=TaskStatus.AGGREGATING)

    def force_publish(self, task_date: str) -> PublishReport:
        """Publish the done items of an unfinished task and move it to PUBLISHED.

        Failed and unfinished items are left out. Meant for operators whose task is
        stuck short of AGGREGATING.
        """

        task = self.repository.get_task(task_date)
        if task is None:
            return PublishReport(skipped_reason="task does not exist")
        if task.status not in _FORCE_PUBLISHABLE:
            return PublishReport(
                skipped_reason=f"cannot force publish a task in {task.status.value}",
            )
        if not self.publishers:
            return PublishReport(skipped_reason="no publishers configured")

        finished = self.repository.list_finished_items(task_date)
        stories = [_to_digest_story(item) for item in finished if item.status == ItemStatus.DONE]
        skipped = task.total_items - len(stories)
        if skipped:
            logger.warning(
                "Force publishing %s without %d failed or unfinished items",
                task_date,
                skipped,
            )
        content = DigestContent(
            task_date=task_date,
            document=render_digest(task_date, stories),
            stories=stories,
        )
        return self._publish_under_lease(task_date, content, expected=task.status)

    def _publish_under_lease(
        self,
        task_date: str,
        content: DigestContent,
        *,
        expected: TaskStatus,
    ) -> PublishReport:
        if not self.repository.claim_publish(
            task_date,
            expected=expected,
            stale_after_seconds=self.settings.claim_stale_seconds,
        ):
            logger.info("Another invocation is publishing %s", task_date)
            return PublishReport(skipped_reason="publish lease not acquired")

        report = PublishReport()
        for publisher in self.publishers:
            try:
                publisher.publish(content)
            except Exception as exc:  # noqa: BLE001
                logger.error("Publisher %s failed for %s: %s", publisher.name, task_date, exc)
                report.outcomes.append(
                    PublisherOutcome(name=publisher.name, success=False, error=str(exc)),
                )
                continue
            logger.info("Publisher %s succeeded for %s", publisher.name, task_date)
            report.outcomes.append(PublisherOutcome(name=publisher.name, success=True))

        if report.any_success:
            report.transitioned = self.repository.update_task_status(
                task_date,
                expected=expected,
                status=TaskStatus.PUBLISHED,
                published_at=self._clock(),
            )
        else:
            logger.error("All publishers failed for %s, will retry next invocation", task_date)
            self.repository.release_publish(task_date)
        return report

    def _fetch_detail(self, story_id: int) -> StoryDetail | None:
        try:
            return self.source.fetch_item_detail(story_id)
        except SourceError as exc:
            logger.warning("Skipping story %d: %s", story_id, exc)
            return None

    def _fetch_inputs(self, item: ItemView) -> _ItemInputs:
        content = self.extractor.extract_content(item.url or HN_ITEM_URL.format(story_id=item.story_id))
        try:
            comments = self.source.fetch_comments(item.story_id, self.settings.comment_limit)
        except SourceError as exc:
            logger.warning("Comments unavailable for story %d: %s", item.story_id, exc)
            comments = []
        return _ItemInputs(content=content, comments=comments)

    def _build_outcomes(self, items: list[ItemView]) -> list[ItemOutcome]:
        with ThreadPoolExecutor(max_workers=self.settings.fetch_concurrency) as pool:
            inputs = list(pool.map(self._fetch_inputs, items))

        titles = self.translator.translate_titles([item.title for item in items])
        summaries = self.translator.summarize_contents([entry.content.content for entry in inputs])
        comment_summaries = self.translator.summarize_comments([entry.comments for entry in inputs])

        missing = [index for index, summary in enumerate(summaries.outputs) if not summary]
        descriptions = self.translator.translate_descriptions(
            [inputs[index].content.description for index in missing],
        )
        content_summaries = list(summaries.outputs)
        for index, description in zip(missing, descriptions, strict=True):
            content_summaries[index] = description

        outcomes: list[ItemOutcome] = []
        for index in range(len(items)):
            if index in titles.failed:
                outcomes.append(
                    ItemOutcome(
                        status=ItemStatus.FAILED,
                        error_message="title translation failed",
                    ),
                )
                continue
            outcomes.append(
                ItemOutcome(
                    status=ItemStatus.DONE,
                    translated_title=titles.outputs[index],
                    content_summary=content_summaries[index],
                    comment_summary=comment_summaries.outputs[index] or None,
                ),
            )
        return outcomes


def _to_digest_story(item: ItemView) -> DigestStory:
    failed = item.status == ItemStatus.FAILED
    return DigestStory(
        rank=item.rank,
        story_id=item.story_id,
        title_en=item.title,
        title_zh=item.translated_title or item.title,
        url=item.url or HN_ITEM_URL.format(story_id=item.story_id),
        score=item.score,
        published_at=item.story_published_at,
        description=FAILED_ITEM_PLACEHOLDER if failed else (item.content_summary or ""),
        comment_summary=None if failed else item.comment_summary,
        failed=failed,
    )
