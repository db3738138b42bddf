"""Publisher contract."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from hn_digest.pipeline.models import DigestStory


@dataclass(slots=True)
class DigestContent:
    """Everything a publisher may need: the markdown post and the structured stories."""

    task_date: str
    document: str
    stories: list[DigestStory]


class Publisher(Protocol):
    """One independent publishing target; raises ``PublishError`` on failure."""

    name: str

    def publish(self, content: DigestContent) -> None:
        raise NotImplementedError
