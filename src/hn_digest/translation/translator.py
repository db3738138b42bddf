"""Translate titles and summarize articles and comments in aligned batches."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from hn_digest.alignment.engine import AlignmentResult, BatchAlignmentEngine
from hn_digest.llm.provider import ChatMessage, ChatProvider
from hn_digest.translation import prompts

logger = logging.getLogger(__name__)

TITLE_TEMPERATURE = 0.3
SUMMARY_TEMPERATURE = 0.5
MIN_COMMENTS_FOR_SUMMARY = 3
MAX_COMMENTS_CHARS = 5_000
COMMENT_SEPARATOR = "\n---\n"
EMPTY_DESCRIPTION = "暂无描述"

_CJK_RE = re.compile(r"[\u4e00-\u9fa5]")


@dataclass(slots=True)
class TextBatchResult:
    """Aligned outputs plus the positions whose model calls failed."""

    outputs: list[str]
    failed: set[int] = field(default_factory=set)


def contains_chinese(text: str) -> bool:
    return bool(_CJK_RE.search(text))


class Translator:
    """Model-backed text operations whose outputs always align with their inputs."""

    def __init__(
        self,
        *,
        provider: ChatProvider,
        batch_size: int = 10,
        summary_max_length: int = 300,
        max_content_chars: int = 4_000,
    ) -> None:
        self.provider = provider
        self.engine = BatchAlignmentEngine(batch_size=batch_size)
        self.summary_max_length = summary_max_length
        self.max_content_chars = max_content_chars

    def translate_titles(self, titles: Sequence[str]) -> TextBatchResult:
        """Chinese titles; titles already in Chinese and failed items keep the original."""

        result = self._run(
            "titles",
            titles,
            extract_text=lambda title: None if contains_chinese(title) else title,
            batch_template=prompts.TITLE_BATCH_PROMPT,
            single_template=prompts.TITLE_SINGLE_PROMPT,
            temperature=TITLE_TEMPERATURE,
        )
        outputs = [
            translated or original
            for original, translated in zip(titles, result.outputs, strict=True)
        ]
        return TextBatchResult(outputs=outputs, failed=set(result.failures))

    def summarize_contents(self, contents: Sequence[str | None]) -> TextBatchResult:
        """Chinese article summaries; ``""`` where there was no content or the model failed."""

        def _extract(content: str | None) -> str | None:
            if content is None:
                return None
            return content[: self.max_content_chars]

        result = self._run(
            "content summaries",
            contents,
            extract_text=_extract,
            batch_template=prompts.CONTENT_BATCH_PROMPT,
            single_template=prompts.CONTENT_SINGLE_PROMPT,
            temperature=SUMMARY_TEMPERATURE,
        )
        return TextBatchResult(outputs=result.outputs, failed=set(result.failures))

    def summarize_comments(self, comment_lists: Sequence[Sequence[str]]) -> TextBatchResult:
        """Discussion summaries; stories with too few comments get ``""``."""

        result = self._run(
            "comment summaries",
            comment_lists,
            extract_text=join_comments,
            batch_template=prompts.COMMENTS_BATCH_PROMPT,
            single_template=prompts.COMMENTS_SINGLE_PROMPT,
            temperature=SUMMARY_TEMPERATURE,
        )
        return TextBatchResult(outputs=result.outputs, failed=set(result.failures))

    def translate_descriptions(self, descriptions: Sequence[str | None]) -> list[str]:
        """Chinese descriptions, one call per item; the English text is kept when a call fails."""

        translated: list[str] = []
        for description in descriptions:
            if description is None or not description.strip():
                translated.append(EMPTY_DESCRIPTION)
                continue
            if contains_chinese(description):
                translated.append(description)
                continue
            translated.append(
                self._complete_single(
                    prompts.DESCRIPTION_SINGLE_PROMPT,
                    description,
                    TITLE_TEMPERATURE,
                    on_error=description,
                ),
            )
        return translated

    def _run(  # noqa: PLR0913
        self,
        label: str,
        items: Sequence,
        *,
        extract_text: Callable,
        batch_template: str,
        single_template: str,
        temperature: float,
    ) -> AlignmentResult:
        def call_model(texts: list[str]) -> str:
            prompt = batch_template.format(
                payload=prompts.json_payload(texts),
                max_length=self.summary_max_length,
            )
            return self.provider.chat_complete(
                [ChatMessage(role="user", content=prompt)],
                temperature=temperature,
            )

        def call_single(text: str) -> str:
            prompt = single_template.format(text=text, max_length=self.summary_max_length)
            return self.provider.chat_complete(
                [ChatMessage(role="user", content=prompt)],
                temperature=temperature,
            )

        result = self.engine.process(items, extract_text, call_model, call_single)
        if result.fallbacks:
            logger.warning(
                "%s: %d item(s) needed per-item fallback, %d failed",
                label,
                len(result.fallbacks),
                len(result.failures),
            )
        return result

    def _complete_single(
        self,
        template: str,
        text: str,
        temperature: float,
        *,
        on_error: str,
    ) -> str:
        prompt = template.format(text=text, max_length=self.summary_max_length)
        try:
            answer = self.provider.chat_complete(
                [ChatMessage(role="user", content=prompt)],
                temperature=temperature,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Single translation failed: %s", exc)
            return on_error
        return answer.strip() or on_error


def join_comments(comments: Sequence[str]) -> str | None:
    """Comments joined for summarization, or ``None`` below the minimum count."""

    if len(comments) < MIN_COMMENTS_FOR_SUMMARY:
        return None
    return COMMENT_SEPARATOR.join(comments)[:MAX_COMMENTS_CHARS]
