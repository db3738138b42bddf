"""Send the digest to a Telegram channel, one message per story."""

from __future__ import annotations

import html
import logging
import time
from collections.abc import Callable, Sequence

import httpx

from hn_digest.errors import PublishError
from hn_digest.pipeline.models import DigestStory
from hn_digest.publishers.base import DigestContent

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
MESSAGE_DELAY_SECONDS = 0.5
NUMBER_EMOJIS = ("1️⃣", "2️⃣", "3️⃣", "4️⃣", "5️⃣", "6️⃣", "7️⃣", "8️⃣", "9️⃣", "🔟")


def escape_html(text: str) -> str:
    return html.escape(text, quote=False)


def rank_marker(rank: int) -> str:
    if 1 <= rank <= len(NUMBER_EMOJIS):
        return NUMBER_EMOJIS[rank - 1]
    return f"{rank}."


def format_story_message(story: DigestStory) -> str:
    text = f"{rank_marker(story.rank)} <b>{escape_html(story.title_zh)}</b>\n\n"
    text += f'🔗 <a href="{html.escape(story.url)}">原文链接</a>\n\n'
    text += f"📝 {escape_html(story.description)}"
    if story.comment_summary:
        text += f"\n\n💬 <b>评论要点</b>: {escape_html(story.comment_summary)}"
    return text


def format_messages(task_date: str, stories: Sequence[DigestStory]) -> list[str]:
    """Header, one message per story, footer; a single notice when there are no stories."""

    if not stories:
        return [f"📰 <b>HackerNews 日报</b> | {task_date}\n\n今日暂无更新内容。"]
    count = len(stories)
    messages = [f"📰 <b>HackerNews 日报</b> | {task_date}\n\n今日精选 {count} 篇文章，逐条推送中..."]
    messages.extend(format_story_message(story) for story in stories)
    messages.append(
        f"{'━' * 20}\n\n📰 <b>HackerNews 日报</b> | {task_date}\n\n✅ 今日 {count} 篇文章已全部推送完毕",
    )
    return messages


class TelegramPublisher:
    """Bot API publisher; raises only when every message failed."""

    name = "telegram"

    def __init__(  # noqa: PLR0913
        self,
        *,
        bot_token: str,
        channel_id: str,
        timeout_seconds: float = 15.0,
        message_delay_seconds: float = MESSAGE_DELAY_SECONDS,
        api_url: str = TELEGRAM_API_URL,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not bot_token:
            raise ValueError("Telegram bot token is required")
        if not channel_id:
            raise ValueError("Telegram channel id is required")
        self.channel_id = channel_id
        self.message_delay_seconds = message_delay_seconds
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=f"{api_url}/bot{bot_token}",
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            transport=transport,
        )

    def publish(self, content: DigestContent) -> None:
        messages = format_messages(content.task_date, content.stories)
        sent = 0
        for index, text in enumerate(messages, start=1):
            if index > 1:
                self._sleep(self.message_delay_seconds)
            try:
                self._send(text)
            except PublishError as exc:
                logger.error("Telegram message %d/%d failed: %s", index, len(messages), exc)
                continue
            sent += 1
        logger.info("Telegram: %d/%d messages sent", sent, len(messages))
        if sent == 0:
            raise PublishError(f"Telegram: all {len(messages)} messages failed to send")

    def close(self) -> None:
        self._client.close()

    def _send(self, text: str) -> None:
        try:
            response = self._client.post(
                "/sendMessage",
                json={
                    "chat_id": self.channel_id,
                    "text": text,
                    "parse_mode": "HTML",
                    "disable_web_page_preview": False,
                },
            )
        except httpx.HTTPError as exc:
            raise PublishError(f"Telegram request failed: {exc}") from exc
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if not response.is_success or not body.get("ok"):
            raise PublishError(
                f"Telegram API error: {body.get('description') or response.status_code} "
                f"(code: {body.get('error_code')})",
            )
