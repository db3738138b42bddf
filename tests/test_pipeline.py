from __future__ import annotations

import threading
from datetime import UTC, datetime

import allure
import pytest
from sqlalchemy import text
from sqlalchemy import update as sa_update
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, col

from hn_digest.config import TaskSettings
from hn_digest.errors import UnknownTaskStatusError
from hn_digest.pipeline.executor import TaskExecutor
from hn_digest.pipeline.markdown import FAILED_ITEM_PLACEHOLDER
from hn_digest.pipeline.models import ItemStatus, TaskStatus
from hn_digest.pipeline.state_machine import DigestStateMachine
from hn_digest.storage.repository import TaskRepository
from hn_digest.storage.sqlmodel_models import DailyTask
from hn_digest.translation.translator import EMPTY_DESCRIPTION, Translator

from conftest import (
    TASK_DATE,
    EchoProvider,
    FakeExtractor,
    FakeSource,
    RecordingPublisher,
    make_story,
    set_task_status,
)

pytestmark = [
    allure.epic("Daily Digest"),
    allure.feature("Resumable State Machine"),
]

FIXED_NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


def _clock() -> datetime:
    return FIXED_NOW


def _build(  # noqa: PLR0913
    repository: TaskRepository,
    *,
    story_count: int = 30,
    provider: EchoProvider | None = None,
    extractor: FakeExtractor | None = None,
    publishers: list[RecordingPublisher] | None = None,
    batch_size: int = 6,
) -> tuple[DigestStateMachine, TaskExecutor, FakeSource]:
    source = FakeSource([make_story(story_id) for story_id in range(1, story_count + 1)])
    executor = TaskExecutor(
        repository=repository,
        source=source,
        extractor=extractor or FakeExtractor(),
        translator=Translator(provider=provider or EchoProvider(), batch_size=10),
        publishers=publishers if publishers is not None else [RecordingPublisher("terminal")],
        settings=TaskSettings(batch_size=batch_size, fetch_concurrency=2),
        clock=_clock,
    )
    return DigestStateMachine(repository=repository, executor=executor, clock=_clock), executor, source


def _run_until(machine: DigestStateMachine, status: TaskStatus, *, max_steps: int = 20) -> int:
    for step in range(1, max_steps + 1):
        report = machine.run_once()
        if report.status_after == status:
            return step
    raise AssertionError(f"task never reached {status.value}")


def test_initialize_seeds_items_and_moves_to_list_fetched(repository: TaskRepository) -> None:
    machine, _, _ = _build(repository, story_count=5)

    report = machine.run_once()

    assert report.task_date == TASK_DATE
    assert (report.status_before, report.status_after) == (TaskStatus.INIT, TaskStatus.LIST_FETCHED)
    task = repository.get_task(TASK_DATE)
    assert task is not None
    assert task.total_items == 5
    assert [item.story_id for item in repository.list_items(TASK_DATE)] == [1, 2, 3, 4, 5]


def test_list_fetch_failure_keeps_task_in_init(repository: TaskRepository) -> None:
    machine, _, source = _build(repository, story_count=3)
    source.fail_list = True

    report = machine.run_once()

    assert report.status_after == TaskStatus.INIT
    source.fail_list = False
    assert machine.run_once().status_after == TaskStatus.LIST_FETCHED


def test_full_run_publishes_once_per_target(repository: TaskRepository) -> None:
    github = RecordingPublisher("github")
    telegram = RecordingPublisher("telegram")
    machine, _, _ = _build(repository, publishers=[github, telegram])

    _run_until(machine, TaskStatus.AGGREGATING)
    task = repository.get_task(TASK_DATE)
    assert task is not None
    assert (task.total_items, task.completed_items, task.failed_items) == (30, 30, 0)
    assert len(repository.list_batches(TASK_DATE)) == 5

    assert machine.run_once().status_after == TaskStatus.PUBLISHED
    assert machine.run_once().action == "noop"

    assert len(github.published) == 1
    assert len(telegram.published) == 1
    content = github.published[0]
    assert [story.rank for story in content.stories] == list(range(1, 31))
    assert "## 1. 【译:Story 1】" in content.document
    assert content.stories[0].description == "译:Body of https://example.com/1"
    assert content.stories[0].comment_summary == "译:c1\n---\nc2\n---\nc3"
    published = repository.get_task(TASK_DATE)
    assert published is not None
    assert published.published_at == FIXED_NOW


def test_first_batch_moves_list_fetched_to_processing(repository: TaskRepository) -> None:
    machine, _, _ = _build(repository, story_count=10, batch_size=4)
    machine.run_once()

    report = machine.run_once()

    assert report.status_after == TaskStatus.PROCESSING
    assert report.message == "processed 4, failed 0, 6 remaining"


def test_empty_story_list_goes_straight_to_aggregating(repository: TaskRepository) -> None:
    publisher = RecordingPublisher("terminal")
    machine, _, _ = _build(repository, story_count=0, publishers=[publisher])

    machine.run_once()
    assert machine.run_once().status_after == TaskStatus.AGGREGATING
    assert machine.run_once().status_after == TaskStatus.PUBLISHED
    assert publisher.published[0].stories == []


def test_failed_title_marks_item_failed_and_renders_placeholder(
    repository: TaskRepository,
) -> None:
    publisher = RecordingPublisher("terminal")
    provider = EchoProvider(poisoned={"Story 3"})
    machine, _, _ = _build(repository, story_count=6, provider=provider, publishers=[publisher])

    _run_until(machine, TaskStatus.PUBLISHED)

    task = repository.get_task(TASK_DATE)
    assert task is not None
    assert (task.completed_items, task.failed_items) == (5, 1)
    failed = [item for item in repository.list_items(TASK_DATE) if item.status == ItemStatus.FAILED]
    assert [item.story_id for item in failed] == [3]
    assert failed[0].error_message == "title translation failed"
    story = publisher.published[0].stories[2]
    assert story.failed
    assert story.description == FAILED_ITEM_PLACEHOLDER
    assert FAILED_ITEM_PLACEHOLDER in publisher.published[0].document
    assert publisher.published[0].stories[1].title_zh == "单:Story 2"


def test_missing_content_falls_back_to_description(repository: TaskRepository) -> None:
    publisher = RecordingPublisher("terminal")
    extractor = FakeExtractor(missing={"https://example.com/2"})
    machine, _, _ = _build(repository, story_count=3, extractor=extractor, publishers=[publisher])

    _run_until(machine, TaskStatus.PUBLISHED)

    stories = publisher.published[0].stories
    assert stories[1].description == EMPTY_DESCRIPTION
    assert not stories[1].failed
    assert stories[0].description == "译:Body of https://example.com/1"


def test_all_publishers_failing_keeps_task_aggregating(repository: TaskRepository) -> None:
    machine, _, _ = _build(
        repository,
        story_count=2,
        publishers=[RecordingPublisher("github", fail=True), RecordingPublisher("telegram", fail=True)],
    )
    _run_until(machine, TaskStatus.AGGREGATING)

    report = machine.run_once()

    assert report.status_after == TaskStatus.AGGREGATING
    assert report.message == "github=failed, telegram=failed"


def test_one_successful_publisher_is_enough(repository: TaskRepository) -> None:
    terminal = RecordingPublisher("terminal")
    machine, _, _ = _build(
        repository,
        story_count=2,
        publishers=[RecordingPublisher("github", fail=True), terminal],
    )
    _run_until(machine, TaskStatus.AGGREGATING)

    report = machine.run_once()

    assert report.status_after == TaskStatus.PUBLISHED
    assert report.message == "github=failed, terminal=ok"
    assert len(terminal.published) == 1


def test_publish_refuses_unfinished_task(repository: TaskRepository) -> None:
    publisher = RecordingPublisher("terminal")
    _, executor, _ = _build(repository, story_count=3, publishers=[publisher])
    executor.initialize_task(TASK_DATE)
    repository.update_task_status(
        TASK_DATE,
        expected=TaskStatus.LIST_FETCHED,
        status=TaskStatus.AGGREGATING,
    )

    report = executor.publish_results(TASK_DATE, "doc", [])

    assert report.skipped_reason == "0/3 items finished"
    assert publisher.published == []


def test_concurrent_invocations_publish_once(repository: TaskRepository) -> None:
    publisher = RecordingPublisher("terminal")
    machine, _, _ = _build(repository, story_count=4, publishers=[publisher], batch_size=4)
    machine.run_once()
    machine.run_once()
    set_task_status(repository, TASK_DATE, TaskStatus.PROCESSING)
    barrier = threading.Barrier(2)
    statuses: list[TaskStatus] = []

    def _invoke() -> None:
        barrier.wait(timeout=5)
        statuses.append(machine.run_once().status_after)

    threads = [threading.Thread(target=_invoke) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(statuses) == 2
    assert set(statuses) <= {TaskStatus.AGGREGATING, TaskStatus.PUBLISHED}
    transitions = [
        event
        for event in repository.list_task_events(TASK_DATE)
        if event == ("status_changed", "processing", "aggregating")
    ]
    assert len(transitions) == 2

    machine.run_once()
    machine.run_once()
    assert len(publisher.published) == 1


def test_unknown_status_is_fatal_and_leaves_counters(repository: TaskRepository) -> None:
    machine, _, _ = _build(repository, story_count=4, batch_size=2)
    machine.run_once()
    machine.run_once()
    with Session(repository.engine) as session:
        session.exec(
            sa_update(DailyTask)
            .where(col(DailyTask.task_date) == TASK_DATE)
            .values(status="reviewing"),
        )
        session.commit()

    with pytest.raises(UnknownTaskStatusError, match="Unknown task status: reviewing"):
        machine.run_once()

    with Session(repository.engine) as session:
        row = session.get(DailyTask, 1)
        assert row is not None
        assert (row.total_items, row.completed_items, row.failed_items) == (4, 2, 0)


def test_overlapping_publish_steps_publish_once(repository: TaskRepository) -> None:
    publisher = RecordingPublisher("github", delay=0.5)
    machine, _, _ = _build(repository, story_count=0, publishers=[publisher])
    machine.run_once()
    machine.run_once()
    barrier = threading.Barrier(2)
    messages: list[str] = []
    lock = threading.Lock()

    def _invoke() -> None:
        barrier.wait(timeout=5)
        report = machine.run_once()
        with lock:
            messages.append(report.message)

    threads = [threading.Thread(target=_invoke) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(publisher.published) == 1
    assert messages.count("github=ok") == 1
    task = repository.get_task(TASK_DATE)
    assert task is not None
    assert task.status == TaskStatus.PUBLISHED


def test_failed_publish_releases_lease_for_retry(repository: TaskRepository) -> None:
    github = RecordingPublisher("github", fail=True)
    machine, _, _ = _build(repository, story_count=2, publishers=[github])
    _run_until(machine, TaskStatus.AGGREGATING)

    assert machine.run_once().message == "github=failed"
    github.fail = False
    report = machine.run_once()

    assert report.status_after == TaskStatus.PUBLISHED
    assert report.message == "github=ok"


def test_force_publish_skips_failed_and_unfinished_items(repository: TaskRepository) -> None:
    publisher = RecordingPublisher("terminal")
    provider = EchoProvider(poisoned={"Story 2"})
    machine, executor, _ = _build(
        repository,
        story_count=6,
        provider=provider,
        publishers=[publisher],
        batch_size=3,
    )
    machine.run_once()
    assert machine.run_once().status_after == TaskStatus.PROCESSING

    report = executor.force_publish(TASK_DATE)

    assert report.transitioned
    assert [story.story_id for story in publisher.published[0].stories] == [1, 3]
    assert FAILED_ITEM_PLACEHOLDER not in publisher.published[0].document
    task = repository.get_task(TASK_DATE)
    assert task is not None
    assert task.status == TaskStatus.PUBLISHED
    assert task.published_at == FIXED_NOW
    assert machine.run_once().action == "noop"
    assert len(publisher.published) == 1


@pytest.mark.parametrize("status", [TaskStatus.INIT, TaskStatus.PUBLISHED, TaskStatus.ARCHIVED])
def test_force_publish_refuses_tasks_without_work_to_release(
    repository: TaskRepository,
    status: TaskStatus,
) -> None:
    publisher = RecordingPublisher("terminal")
    _, executor, _ = _build(repository, story_count=2, publishers=[publisher])
    repository.get_or_create_task(TASK_DATE)
    set_task_status(repository, TASK_DATE, status)

    report = executor.force_publish(TASK_DATE)

    assert report.skipped_reason == f"cannot force publish a task in {status.value}"
    assert publisher.published == []


def test_storage_failure_propagates_and_leaves_counters(repository: TaskRepository) -> None:
    machine, _, _ = _build(repository, story_count=4, batch_size=2)
    machine.run_once()
    machine.run_once()
    with repository.engine.begin() as connection:
        connection.execute(text("ALTER TABLE digest_items RENAME TO digest_items_moved"))

    with pytest.raises(OperationalError):
        machine.run_once()

    task = repository.get_task(TASK_DATE)
    assert task is not None
    assert task.status == TaskStatus.PROCESSING
    assert (task.total_items, task.completed_items, task.failed_items) == (4, 2, 0)
