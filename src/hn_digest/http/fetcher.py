"""Synchronous HTTP client with transport retries and explicit timeouts."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; HackerNewsDigest/1.0)"


@dataclass(slots=True)
class FetchResult:
    """Result of an HTTP request; transport failures are folded into ``error``."""

    url: str
    status_code: int
    content: str
    content_type: str
    is_success: bool
    error: str | None = None
    json_body: object | None = None


class HttpFetcher:
    """httpx client wrapper shared by the article extractor."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 10.0)),
            headers={"User-Agent": user_agent},
            transport=transport or httpx.HTTPTransport(retries=max_retries),
            follow_redirects=True,
        )

    def fetch(self, url: str) -> FetchResult:
        """GET ``url`` and return its text body."""

        return self._send("GET", url)

    def post_json(
        self,
        url: str,
        payload: dict[str, object],
        *,
        headers: dict[str, str] | None = None,
    ) -> FetchResult:
        """POST a JSON payload and decode a JSON answer when there is one."""

        result = self._send("POST", url, json=payload, headers=headers)
        if result.is_success:
            try:
                result.json_body = json.loads(result.content)
            except ValueError:
                result.error = "invalid JSON body"
                result.is_success = False
        return result

    def _send(self, method: str, url: str, **kwargs: object) -> FetchResult:
        try:
            response = self._client.request(method, url, **kwargs)  # type: ignore[arg-type]
        except httpx.TimeoutException:
            logger.warning("Timeout fetching %s", url)
            return _failed(url, "timeout")
        except httpx.HTTPError as exc:
            logger.warning("HTTP error fetching %s: %s", url, exc)
            return _failed(url, str(exc))
        return FetchResult(
            url=url,
            status_code=response.status_code,
            content=response.text,
            content_type=response.headers.get("content-type", ""),
            is_success=response.is_success,
            error=None if response.is_success else f"HTTP {response.status_code}",
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpFetcher:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _failed(url: str, error: str) -> FetchResult:
    return FetchResult(
        url=url,
        status_code=0,
        content="",
        content_type="",
        is_success=False,
        error=error,
    )
