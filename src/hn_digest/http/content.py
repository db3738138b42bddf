"""Article body extraction: crawler API when configured, trafilatura otherwise."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import trafilatura

from hn_digest.http.fetcher import HttpFetcher

logger = logging.getLogger(__name__)

_NON_HTML_SUFFIXES = (".pdf", ".zip", ".tar.gz", ".mp4", ".mp3", ".png", ".jpg", ".jpeg", ".gif")


@dataclass(slots=True)
class ExtractedContent:
    """Article body and short description; ``content is None`` means extraction failed."""

    content: str | None
    description: str | None
    error: str | None = None


class ContentExtractor:
    """Turn a story URL into plain article text."""

    def __init__(
        self,
        *,
        fetcher: HttpFetcher,
        crawler_api_url: str | None = None,
        crawler_api_token: str | None = None,
        max_content_chars: int = 4_000,
        max_description_chars: int = 200,
    ) -> None:
        self._fetcher = fetcher
        self._crawler_api_url = crawler_api_url
        self._crawler_api_token = crawler_api_token
        self.max_content_chars = max_content_chars
        self.max_description_chars = max_description_chars

    def extract_content(self, url: str) -> ExtractedContent:
        if self._crawler_api_url:
            text, error = self._via_crawler(url)
        else:
            text, error = self._via_direct_fetch(url)
        if not text:
            logger.warning("No article content for %s: %s", url, error)
            return ExtractedContent(content=None, description=None, error=error)
        return ExtractedContent(
            content=truncate_text(text, self.max_content_chars),
            description=first_paragraph(text, self.max_description_chars),
        )

    def _via_crawler(self, url: str) -> tuple[str | None, str | None]:
        headers = {}
        if self._crawler_api_token:
            headers["Authorization"] = f"Bearer {self._crawler_api_token}"
        result = self._fetcher.post_json(
            str(self._crawler_api_url),
            {"url": url},
            headers=headers,
        )
        if not result.is_success:
            return None, result.error
        body = result.json_body
        if not isinstance(body, dict):
            return None, "unexpected crawler response"
        markdown = body.get("markdown")
        if not body.get("success") or not isinstance(markdown, str) or not markdown.strip():
            return None, str(body.get("error") or "no content")
        return markdown.strip(), None

    def _via_direct_fetch(self, url: str) -> tuple[str | None, str | None]:
        if url.lower().endswith(_NON_HTML_SUFFIXES):
            return None, "non-HTML resource"
        result = self._fetcher.fetch(url)
        if not result.is_success:
            return None, result.error
        if result.content_type and "html" not in result.content_type.lower():
            return None, f"unsupported content type {result.content_type}"
        return extract_main_text(result.content, url=url)


def extract_main_text(html: str, *, url: str | None = None) -> tuple[str | None, str | None]:
    """Main text of an HTML page using trafilatura, precision first then recall."""

    if not html or not html.strip():
        return None, "empty HTML input"

    try:
        text = trafilatura.extract(
            html,
            url=url,
            include_tables=False,
            include_links=False,
            favor_precision=True,
            deduplicate=True,
        )
        if not text:
            text = trafilatura.extract(html, url=url, include_links=False, favor_recall=True)
    except Exception as exc:  # noqa: BLE001
        logger.warning("trafilatura failed for %s: %s", url or "<unknown>", exc)
        return None, f"extraction failed: {exc}"

    if not text:
        return None, "no content extracted"
    return text, None


def truncate_text(text: str, max_chars: int) -> str:
    """Cut at the last word boundary before ``max_chars`` and mark the cut with ``...``."""

    if max_chars <= 0 or len(text) <= max_chars:
        return text
    truncated = text[:max_chars]
    last_space = truncated.rfind(" ")
    if last_space > 0:
        truncated = truncated[:last_space]
    return truncated + "..."


def first_paragraph(text: str, max_chars: int) -> str | None:
    paragraph = text.strip().split("\n\n", 1)[0].strip()
    if not paragraph:
        return None
    if len(paragraph) > max_chars:
        return paragraph[: max(0, max_chars - 3)] + "..."
    return paragraph
