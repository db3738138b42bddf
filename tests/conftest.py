"""Shared test fixtures."""

from __future__ import annotations

import json
import re
import time
from datetime import UTC, date, datetime
from pathlib import Path

import pytest
from sqlalchemy import update as sa_update
from sqlmodel import Session, col

from hn_digest.errors import LlmCallError, PublishError, SourceError
from hn_digest.http.content import ExtractedContent
from hn_digest.pipeline.models import StoryDetail, TaskStatus
from hn_digest.publishers.base import DigestContent
from hn_digest.storage.repository import TaskRepository
from hn_digest.storage.sqlmodel_models import DailyTask

TASK_DATE = "2026-10-18"


def make_story(story_id: int, *, score: int = 100, url: str | None = None) -> StoryDetail:
    return StoryDetail(
        story_id=story_id,
        title=f"Story {story_id}",
        url=url if url is not None else f"https://example.com/{story_id}",
        score=score,
        author="pg",
        comment_count=12,
        published_at=datetime(2026, 10, 17, 8, 30, tzinfo=UTC),
    )


@pytest.fixture()
def repository(tmp_path: Path):
    repo = TaskRepository(tmp_path / "digest.db")
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


def set_task_status(
    repository: TaskRepository,
    task_date: str,
    status: TaskStatus,
    **values: object,
) -> None:
    """Put a task straight into ``status``, bypassing the lifecycle table."""

    with Session(repository.engine) as session:
        session.exec(
            sa_update(DailyTask)
            .where(col(DailyTask.task_date) == task_date)
            .values(status=status.value, **values),
        )
        session.commit()


_PAYLOAD_RE = re.compile(r"^\[\n.*?\n\]$", re.DOTALL | re.MULTILINE)


class EchoProvider:
    """Chat provider double answering every prompt deterministically.

    Batch prompts get a JSON array with one ``"译:<text>"`` per input. Texts listed in
    ``poisoned`` break the whole batch and make their single call raise.
    """

    name = "echo"

    def __init__(self, *, poisoned: set[str] | None = None) -> None:
        self.poisoned = poisoned or set()
        self.prompts: list[str] = []

    def chat_complete(self, messages, *, temperature: float) -> str:
        prompt = messages[-1].content
        self.prompts.append(prompt)
        match = _PAYLOAD_RE.search(prompt)
        if match is not None:
            texts = json.loads(match.group(0))
            if self.poisoned.intersection(texts):
                return "I could not translate these."
            return json.dumps([f"译:{text}" for text in texts], ensure_ascii=False)
        if any(text in prompt for text in self.poisoned):
            raise LlmCallError("echo: poisoned input")
        return f"单:{prompt.rsplit(':', 1)[-1].strip()}"


class FakeSource:
    def __init__(self, stories: list[StoryDetail], *, comments: list[str] | None = None) -> None:
        self.stories = {story.story_id: story for story in stories}
        self.comments = comments if comments is not None else ["c1", "c2", "c3"]
        self.list_calls = 0
        self.fail_list = False

    def fetch_candidate_list(self, day: date) -> list[int]:
        self.list_calls += 1
        if self.fail_list:
            raise SourceError("algolia unavailable")
        return list(self.stories)

    def fetch_item_detail(self, story_id: int) -> StoryDetail | None:
        return self.stories.get(story_id)

    def fetch_comments(self, story_id: int, limit: int) -> list[str]:
        return self.comments[:limit]


class FakeExtractor:
    def __init__(self, *, missing: set[str] | None = None) -> None:
        self.missing = missing or set()

    def extract_content(self, url: str) -> ExtractedContent:
        if url in self.missing:
            return ExtractedContent(content=None, description=None, error="HTTP 404")
        return ExtractedContent(content=f"Body of {url}", description=f"About {url}")


class RecordingPublisher:
    def __init__(self, name: str, *, fail: bool = False, delay: float = 0.0) -> None:
        self.name = name
        self.fail = fail
        self.delay = delay
        self.published: list[DigestContent] = []

    def publish(self, content: DigestContent) -> None:
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise PublishError(f"{self.name} is down")
        self.published.append(content)
