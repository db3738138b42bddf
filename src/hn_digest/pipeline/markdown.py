"""Jekyll markdown rendering of the daily digest."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from hn_digest.pipeline.models import DigestStory

FAILED_ITEM_PLACEHOLDER = "（处理失败，暂无摘要）"


def format_story_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M")


def render_front_matter(task_date: str) -> str:
    return f"---\nlayout: post\ntitle: HackerNews Daily - {task_date}\ndate: {task_date}\n---\n\n"


def render_digest(task_date: str, stories: Sequence[DigestStory]) -> str:
    """Full post: front matter followed by one section per story in rank order."""

    parts = [render_front_matter(task_date)]
    for story in stories:
        parts.append(f"## {story.rank}. 【{story.title_zh}】\n\n")
        parts.append(f"{story.title_en}\n\n")
        parts.append(f"**发布时间**: {format_story_time(story.published_at)}\n\n")
        parts.append(f"**链接**: [{story.url}]({story.url})\n\n")
        parts.append(f"**描述**:\n\n{story.description}\n\n")
        if story.comment_summary:
            parts.append(f"**评论要点**:\n\n{story.comment_summary}\n\n")
        parts.append("---\n\n")
    return "".join(parts)
