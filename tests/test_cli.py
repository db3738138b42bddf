from __future__ import annotations

from pathlib import Path

import allure
from click.testing import CliRunner

from hn_digest import __version__
from hn_digest.pipeline.models import BatchStatus, TaskStatus
from hn_digest.storage.repository import TaskRepository
from hn_digest.main import hn_digest

from conftest import TASK_DATE, make_story, set_task_status

pytestmark = [
    allure.epic("Daily Digest"),
    allure.feature("CLI"),
]


def _prepare(db_path: Path, status: TaskStatus, *, task_date: str = TASK_DATE) -> None:
    repository = TaskRepository(db_path)
    repository.init_schema()
    try:
        repository.get_or_create_task(task_date)
        repository.seed_items(task_date, [make_story(1), make_story(2)])
        if status != TaskStatus.INIT:
            repository.update_task_status(
                task_date,
                expected=TaskStatus.INIT,
                status=TaskStatus.LIST_FETCHED,
                total_items=2,
            )
        if status not in (TaskStatus.INIT, TaskStatus.LIST_FETCHED):
            set_task_status(repository, task_date, status)
        repository.record_batch(
            task_date,
            batch_index=0,
            item_count=2,
            succeeded=1,
            failed=1,
            duration_ms=250,
            status=BatchStatus.PARTIAL,
            error_message="title translation failed",
        )
    finally:
        repository.close()


def test_version_option() -> None:
    result = CliRunner().invoke(hn_digest, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_status_lists_tasks(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    _prepare(db_path, TaskStatus.PROCESSING)

    result = CliRunner().invoke(hn_digest, ["status", "--db-path", str(db_path)])

    assert result.exit_code == 0, result.output
    assert f"{TASK_DATE} status=processing total=2 completed=0 failed=0" in result.output


def test_status_details_one_task(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    _prepare(db_path, TaskStatus.LIST_FETCHED)

    result = CliRunner().invoke(
        hn_digest,
        ["status", "--db-path", str(db_path), "--date", TASK_DATE],
    )

    assert result.exit_code == 0, result.output
    assert "pending=2 in_progress=0 done=0 failed=0" in result.output
    assert "event status_changed: init -> list_fetched" in result.output


def test_status_on_empty_database(tmp_path: Path) -> None:
    result = CliRunner().invoke(hn_digest, ["status", "--db-path", str(tmp_path / "empty.db")])

    assert result.exit_code == 0
    assert "No tasks found." in result.output


def test_batches_shows_telemetry(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    _prepare(db_path, TaskStatus.PROCESSING)

    result = CliRunner().invoke(
        hn_digest,
        ["batches", "--db-path", str(db_path), "--date", TASK_DATE],
    )

    assert result.exit_code == 0, result.output
    assert "#0 status=partial items=2 succeeded=1 failed=1 duration=250ms" in result.output
    assert "Total: batches=1 items=2 succeeded=1 failed=1 avg_duration=250ms" in result.output


def test_archive_moves_old_published_tasks(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    _prepare(db_path, TaskStatus.PUBLISHED, task_date="2026-01-02")

    result = CliRunner().invoke(
        hn_digest,
        ["archive", "--db-path", str(db_path), "--older-than-days", "0"],
    )

    assert result.exit_code == 0, result.output
    assert "Archived 1 published task(s)" in result.output


def test_run_requires_configuration(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("HN_DIGEST_LLM_API_KEY", raising=False)

    result = CliRunner().invoke(hn_digest, ["run", "--db-path", str(tmp_path / "cli.db")])

    assert result.exit_code != 0
    assert "HN_DIGEST_LLM_API_KEY is required" in result.output


def test_run_on_published_task_is_a_noop(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("HN_DIGEST_LLM_API_KEY", "key")
    db_path = tmp_path / "cli.db"
    _prepare(db_path, TaskStatus.PUBLISHED)

    result = CliRunner().invoke(
        hn_digest,
        ["run", "--db-path", str(db_path), "--date", TASK_DATE],
    )

    assert result.exit_code == 0, result.output
    assert f"Task {TASK_DATE}: published -> published (noop)" in result.output


def test_run_rejects_malformed_date(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        hn_digest,
        ["run", "--db-path", str(tmp_path / "cli.db"), "--date", "18/10/2026"],
    )

    assert result.exit_code != 0
    assert "Expected YYYY-MM-DD" in result.output


def _terminal_only(monkeypatch) -> None:
    monkeypatch.setenv("HN_DIGEST_LLM_API_KEY", "key")
    for name in ("HN_DIGEST_GITHUB_ENABLED", "HN_DIGEST_TELEGRAM_ENABLED"):
        monkeypatch.delenv(name, raising=False)


def test_force_publish_releases_stuck_task(tmp_path: Path, monkeypatch) -> None:
    _terminal_only(monkeypatch)
    db_path = tmp_path / "cli.db"
    _prepare(db_path, TaskStatus.PROCESSING)

    result = CliRunner().invoke(
        hn_digest,
        ["publish", "--db-path", str(db_path), "--date", TASK_DATE, "--force"],
    )

    assert result.exit_code == 0, result.output
    assert f"Task {TASK_DATE}: processing -> published (force publish)" in result.output
    assert "terminal=ok" in result.output
    repository = TaskRepository(db_path)
    try:
        task = repository.get_task(TASK_DATE)
        assert task is not None
        assert task.status == TaskStatus.PUBLISHED
        assert task.published_at is not None
    finally:
        repository.close()


def test_publish_without_force_needs_aggregating_task(tmp_path: Path, monkeypatch) -> None:
    _terminal_only(monkeypatch)
    db_path = tmp_path / "cli.db"
    _prepare(db_path, TaskStatus.PROCESSING)

    result = CliRunner().invoke(
        hn_digest,
        ["publish", "--db-path", str(db_path), "--date", TASK_DATE],
    )

    assert result.exit_code == 0, result.output
    assert f"Task {TASK_DATE}: processing -> processing (publish)" in result.output
    assert "publish skipped: task is not aggregating (status=processing)" in result.output


def test_publish_unknown_task_fails(tmp_path: Path, monkeypatch) -> None:
    _terminal_only(monkeypatch)

    result = CliRunner().invoke(
        hn_digest,
        ["publish", "--db-path", str(tmp_path / "cli.db"), "--date", TASK_DATE, "--force"],
    )

    assert result.exit_code != 0
    assert f"No task for {TASK_DATE}." in result.output
