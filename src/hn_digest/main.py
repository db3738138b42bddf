"""CLI entrypoint for hn-digest."""

import logging
from datetime import date
from pathlib import Path

import rich_click as click

from hn_digest import __version__
from hn_digest.controllers import (
    ArchiveCommand,
    BatchesCommand,
    DigestCliController,
    PublishCommand,
    RunCommand,
    StatusCommand,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = DigestCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@click.group()
@click.version_option(version=__version__, prog_name="hn-digest")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Logging verbosity.",
)
def hn_digest(log_level: str) -> None:
    """Daily Hacker News digest, translated and published one step at a time."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@hn_digest.command("run")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--date",
    "task_date",
    default=None,
    help="Work date as YYYY-MM-DD. Defaults to today in UTC.",
)
def run(db_path: Path | None, task_date: str | None) -> None:
    """Advance the daily task by exactly one step.

    Safe to call repeatedly from cron; every step resumes from the stored state.
    """

    _emit_lines(CONTROLLER.run(RunCommand(db_path=db_path, task_date=_checked_date(task_date))))


@hn_digest.command("publish")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--date",
    "task_date",
    default=None,
    help="Work date as YYYY-MM-DD. Defaults to today in UTC.",
)
@click.option(
    "--force",
    is_flag=True,
    default=False,
    help="Publish the done items now, leaving failed and unfinished ones out.",
)
def publish(db_path: Path | None, task_date: str | None, force: bool) -> None:
    """Publish a task outside the regular step.

    Without `--force` only a fully processed task in aggregating is published.
    With `--force` a task stuck in list_fetched or processing is published as is.
    """

    _emit_lines(
        CONTROLLER.publish(
            PublishCommand(db_path=db_path, task_date=_checked_date(task_date), force=force),
        ),
    )


@hn_digest.command("status")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--date", "task_date", default=None, help="Show one task in detail.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=100),
    default=10,
    show_default=True,
    help="How many latest tasks to list.",
)
def status(db_path: Path | None, task_date: str | None, limit: int) -> None:
    """Show task status and item counters."""

    _emit_lines(
        CONTROLLER.status(
            StatusCommand(db_path=db_path, task_date=_checked_date(task_date), limit=limit),
        ),
    )


@hn_digest.command("batches")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--date", "task_date", required=True, help="Work date as YYYY-MM-DD.")
def batches(db_path: Path | None, task_date: str) -> None:
    """Show recorded processing batches of one task."""

    _emit_lines(
        CONTROLLER.batches(BatchesCommand(db_path=db_path, task_date=_checked_date(task_date))),
    )


@hn_digest.command("archive")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--older-than-days",
    type=click.IntRange(min=0),
    default=None,
    help="Archive published tasks older than this. Defaults to HN_DIGEST_ARCHIVE_RETENTION_DAYS.",
)
def archive(db_path: Path | None, older_than_days: int | None) -> None:
    """Move old published tasks to archived."""

    _emit_lines(
        CONTROLLER.archive(ArchiveCommand(db_path=db_path, older_than_days=older_than_days)),
    )


def _checked_date(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError as error:
        raise click.BadParameter(f"Expected YYYY-MM-DD, got {value!r}.") from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    hn_digest()
