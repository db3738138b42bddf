"""Domain models for the daily digest task and its items."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TaskStatus(str, Enum):
    """Durable daily task lifecycle states."""

    INIT = "init"
    LIST_FETCHED = "list_fetched"
    PROCESSING = "processing"
    AGGREGATING = "aggregating"
    PUBLISHED = "published"
    ARCHIVED = "archived"


# Forward moves only. The jumps to PUBLISHED from LIST_FETCHED and PROCESSING are
# reserved for force publishing.
ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.INIT: frozenset({TaskStatus.LIST_FETCHED}),
    TaskStatus.LIST_FETCHED: frozenset(
        {TaskStatus.PROCESSING, TaskStatus.AGGREGATING, TaskStatus.PUBLISHED},
    ),
    TaskStatus.PROCESSING: frozenset({TaskStatus.AGGREGATING, TaskStatus.PUBLISHED}),
    TaskStatus.AGGREGATING: frozenset({TaskStatus.PUBLISHED}),
    TaskStatus.PUBLISHED: frozenset({TaskStatus.ARCHIVED}),
    TaskStatus.ARCHIVED: frozenset(),
}


class ItemStatus(str, Enum):
    """Per-story lifecycle states; transitions only move forward."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    FAILED = "failed"


class BatchStatus(str, Enum):
    """Outcome of one processing batch."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(slots=True)
class StoryDetail:
    """Story metadata from the upstream source."""

    story_id: int
    title: str
    url: str | None
    score: int
    author: str
    comment_count: int
    published_at: datetime


@dataclass(slots=True)
class TaskView:
    """Readable daily task row."""

    task_date: str
    status: TaskStatus
    total_items: int
    completed_items: int
    failed_items: int
    created_at: datetime
    updated_at: datetime
    published_at: datetime | None

    @property
    def finished_items(self) -> int:
        return self.completed_items + self.failed_items


@dataclass(slots=True)
class ItemView:
    """Readable digest item row."""

    item_id: int
    task_date: str
    story_id: int
    rank: int
    title: str
    url: str | None
    score: int
    author: str
    comment_count: int
    story_published_at: datetime
    status: ItemStatus
    claimed_at: datetime | None
    finished_at: datetime | None
    translated_title: str | None
    content_summary: str | None
    comment_summary: str | None
    error_message: str | None


@dataclass(slots=True)
class ItemOutcome:
    """Final result written for one claimed item."""

    status: ItemStatus
    translated_title: str | None = None
    content_summary: str | None = None
    comment_summary: str | None = None
    error_message: str | None = None

    def __post_init__(self) -> None:
        if self.status not in (ItemStatus.DONE, ItemStatus.FAILED):
            raise ValueError(f"Item outcome must be done or failed, got {self.status.value}")


@dataclass(slots=True)
class TaskProgress:
    """Item counts per status for one task."""

    pending: int = 0
    in_progress: int = 0
    done: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.in_progress + self.done + self.failed

    @property
    def unfinished(self) -> int:
        return self.pending + self.in_progress


@dataclass(slots=True)
class BatchRecordView:
    """One persisted processing batch."""

    batch_id: int
    task_date: str
    batch_index: int
    item_count: int
    succeeded: int
    failed: int
    duration_ms: int
    status: BatchStatus
    error_message: str | None
    created_at: datetime


@dataclass(slots=True)
class BatchStatistics:
    """Aggregated batch telemetry for one task."""

    batches: int = 0
    items: int = 0
    succeeded: int = 0
    failed: int = 0
    total_duration_ms: int = 0

    @property
    def average_duration_ms(self) -> int:
        if self.batches == 0:
            return 0
        return self.total_duration_ms // self.batches


@dataclass(slots=True)
class InitializeResult:
    """Outcome of list fetch and item seeding."""

    task_date: str
    candidates: int
    seeded: int
    filtered: int
    total_items: int
    transitioned: bool


@dataclass(slots=True)
class BatchProgress:
    """Outcome of one processing batch plus remaining work."""

    processed: int
    failed: int
    pending: int
    in_progress: int

    @property
    def remaining(self) -> int:
        return self.pending + self.in_progress


@dataclass(slots=True)
class DigestStory:
    """One rendered story of the published digest."""

    rank: int
    story_id: int
    title_en: str
    title_zh: str
    url: str
    score: int
    published_at: datetime
    description: str
    comment_summary: str | None
    failed: bool = False


@dataclass(slots=True)
class AggregateResult:
    """Digest stories in rank order plus the rendered markdown document."""

    stories: list[DigestStory]
    document: str


@dataclass(slots=True)
class PublisherOutcome:
    """Result of one publisher invocation."""

    name: str
    success: bool
    error: str | None = None


@dataclass(slots=True)
class PublishReport:
    """Outcome of publishing the digest to every configured target."""

    outcomes: list[PublisherOutcome] = field(default_factory=list)
    transitioned: bool = False
    skipped_reason: str | None = None

    @property
    def any_success(self) -> bool:
        return any(outcome.success for outcome in self.outcomes)

    def summary(self) -> str:
        if self.skipped_reason:
            return f"publish skipped: {self.skipped_reason}"
        return ", ".join(
            f"{outcome.name}={'ok' if outcome.success else 'failed'}" for outcome in self.outcomes
        )


@dataclass(slots=True)
class StepReport:
    """What one state machine invocation did."""

    task_date: str
    status_before: TaskStatus
    status_after: TaskStatus
    action: str
    message: str
