"""Hacker News story list, item detail and comment adapter."""

from __future__ import annotations

import html
import logging
import re
from datetime import UTC, date, datetime, time, timedelta

import httpx

from hn_digest.errors import SourceError
from hn_digest.pipeline.models import StoryDetail

logger = logging.getLogger(__name__)

ALGOLIA_BASE_URL = "https://hn.algolia.com/api/v1"
FIREBASE_BASE_URL = "https://hacker-news.firebaseio.com/v0"
HN_ITEM_URL = "https://news.ycombinator.com/item?id={story_id}"
MAX_HITS_PER_PAGE = 1000
MAX_PAGES = 10
DEFAULT_TIMEOUT_SECONDS = 10.0

_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def previous_day_bounds(day: date) -> tuple[int, int]:
    """Unix timestamps ``[start, end)`` of the UTC day before ``day``."""

    previous = day - timedelta(days=1)
    start = datetime.combine(previous, time.min, tzinfo=UTC)
    end = start + timedelta(days=1)
    return int(start.timestamp()), int(end.timestamp())


class HackerNewsSource:
    """Algolia search for the daily list, Firebase for single items."""

    def __init__(
        self,
        *,
        story_limit: int = 30,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        algolia_base_url: str = ALGOLIA_BASE_URL,
        firebase_base_url: str = FIREBASE_BASE_URL,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.story_limit = story_limit
        self._algolia_base_url = algolia_base_url.rstrip("/")
        self._firebase_base_url = firebase_base_url.rstrip("/")
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            transport=transport or httpx.HTTPTransport(retries=3),
            follow_redirects=True,
        )
        self._listed: dict[int, StoryDetail] = {}

    def fetch_candidate_list(self, day: date) -> list[int]:
        """Top story ids by points among stories posted on the UTC day before ``day``."""

        start, end = previous_day_bounds(day)
        params: dict[str, str | int] = {
            "tags": "story",
            "numericFilters": f"created_at_i>={start},created_at_i<{end}",
            "hitsPerPage": MAX_HITS_PER_PAGE,
        }
        hits: list[dict[str, object]] = []
        page = 0
        while page < MAX_PAGES:
            payload = self._get_json(
                f"{self._algolia_base_url}/search_by_date",
                params={**params, "page": page},
            )
            if not isinstance(payload, dict):
                raise SourceError("Unexpected Algolia response shape")
            page_hits = payload.get("hits") or []
            hits.extend(hit for hit in page_hits if isinstance(hit, dict))
            nb_pages = int(payload.get("nbPages") or 0)
            page += 1
            if page >= nb_pages:
                break

        stories: dict[int, StoryDetail] = {}
        for hit in hits:
            story = _story_from_algolia_hit(hit)
            if story is not None:
                stories.setdefault(story.story_id, story)
        ranked = sorted(stories.values(), key=lambda story: story.score, reverse=True)
        top = ranked[: self.story_limit]
        self._listed.update((story.story_id, story) for story in top)
        logger.info(
            "Algolia returned %d stories for %s, keeping top %d",
            len(stories),
            day.isoformat(),
            len(top),
        )
        return [story.story_id for story in top]

    def fetch_item_detail(self, story_id: int) -> StoryDetail | None:
        """Story metadata, or ``None`` when the item is gone or not a story."""

        listed = self._listed.get(story_id)
        if listed is not None:
            return listed
        try:
            payload = self._get_json(f"{self._firebase_base_url}/item/{story_id}.json")
        except SourceError as exc:
            logger.warning("Skipping story %d: %s", story_id, exc)
            return None
        if not isinstance(payload, dict):
            return None
        if payload.get("deleted") or payload.get("dead") or payload.get("type") != "story":
            return None
        title = str(payload.get("title") or "").strip()
        if not title:
            return None
        return StoryDetail(
            story_id=story_id,
            title=title,
            url=_story_url(payload.get("url"), story_id),
            score=int(payload.get("score") or 0),
            author=str(payload.get("by") or ""),
            comment_count=int(payload.get("descendants") or 0),
            published_at=datetime.fromtimestamp(int(payload.get("time") or 0), tz=UTC),
        )

    def fetch_comments(self, story_id: int, limit: int) -> list[str]:
        """Plain text of up to ``limit`` comments of a story; empty on failure."""

        if limit <= 0:
            return []
        try:
            payload = self._get_json(
                f"{self._algolia_base_url}/search",
                params={"tags": f"comment,story_{story_id}", "hitsPerPage": limit},
            )
        except SourceError as exc:
            logger.warning("Comments unavailable for story %d: %s", story_id, exc)
            return []
        if not isinstance(payload, dict):
            return []
        comments: list[str] = []
        for hit in payload.get("hits") or []:
            if not isinstance(hit, dict):
                continue
            text = comment_to_text(str(hit.get("comment_text") or ""))
            if text:
                comments.append(text)
        return comments[:limit]

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HackerNewsSource:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _get_json(self, url: str, *, params: dict[str, str | int] | None = None) -> object:
        try:
            response = self._client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise SourceError(f"timeout fetching {url}") from exc
        except httpx.HTTPError as exc:
            raise SourceError(f"HTTP error fetching {url}: {exc}") from exc
        if not response.is_success:
            raise SourceError(f"HTTP {response.status_code} fetching {url}")
        try:
            return response.json()
        except ValueError as exc:
            raise SourceError(f"invalid JSON from {url}") from exc


def comment_to_text(raw_html: str) -> str:
    """Convert comment HTML into normalized plain text."""

    if not raw_html:
        return ""
    stripped = _TAG_RE.sub(" ", raw_html)
    return _WHITESPACE_RE.sub(" ", html.unescape(stripped)).strip()


def _story_url(value: object, story_id: int) -> str:
    url = str(value or "").strip()
    return url or HN_ITEM_URL.format(story_id=story_id)


def _story_from_algolia_hit(hit: dict[str, object]) -> StoryDetail | None:
    try:
        story_id = int(str(hit.get("objectID") or hit.get("story_id") or ""))
    except ValueError:
        return None
    title = str(hit.get("title") or "").strip()
    if not title:
        return None
    created_at_i = hit.get("created_at_i")
    published_at = (
        datetime.fromtimestamp(int(str(created_at_i)), tz=UTC)
        if created_at_i is not None
        else datetime.now(tz=UTC)
    )
    return StoryDetail(
        story_id=story_id,
        title=title,
        url=_story_url(hit.get("url"), story_id),
        score=int(str(hit.get("points") or 0)),
        author=str(hit.get("author") or ""),
        comment_count=int(str(hit.get("num_comments") or 0)),
        published_at=published_at,
    )
