"""Push the digest post to a GitHub repository through the contents API."""

from __future__ import annotations

import base64
import logging
import re

import httpx

from hn_digest.errors import PublishError
from hn_digest.publishers.base import DigestContent

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
POSTS_DIR = "_posts"
MAX_VERSION = 10
HTTP_NOT_FOUND = 404
RATE_LIMIT_WARN_THRESHOLD = 10

_VERSION_SUFFIX_RE = re.compile(r"-v(\d+)\.md$")


def post_path(task_date: str, version: int = 1) -> str:
    suffix = "" if version == 1 else f"-v{version}"
    return f"{POSTS_DIR}/{task_date}-daily{suffix}.md"


def commit_message(task_date: str, path: str) -> str:
    match = _VERSION_SUFFIX_RE.search(path)
    suffix = f" (v{match.group(1)})" if match else ""
    return f"Add HackerNews daily export for {task_date}{suffix}"


class GitHubPublisher:
    """Create ``_posts/<date>-daily.md``, or the first free ``-vN`` variant."""

    name = "github"

    def __init__(
        self,
        *,
        token: str,
        repo: str,
        branch: str = "main",
        timeout_seconds: float = 15.0,
        api_url: str = GITHUB_API_URL,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.repo = repo
        self.branch = branch
        self._client = httpx.Client(
            base_url=api_url,
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "HackerNewsDigest/1.0",
            },
            transport=transport,
        )

    def publish(self, content: DigestContent) -> None:
        path = self._free_path(content.task_date)
        message = commit_message(content.task_date, path)
        encoded = base64.b64encode(content.document.encode("utf-8")).decode("ascii")
        response = self._request(
            "PUT",
            f"/repos/{self.repo}/contents/{path}",
            json={"message": message, "content": encoded, "branch": self.branch},
        )
        if not response.is_success:
            raise PublishError(
                f"GitHub push of {path} failed: HTTP {response.status_code} {response.text[:200]}",
            )
        remaining = response.headers.get("X-RateLimit-Remaining", "")
        if remaining.isdigit() and int(remaining) < RATE_LIMIT_WARN_THRESHOLD:
            logger.warning("GitHub API rate limit low: %s requests remaining", remaining)
        logger.info("Pushed %s to %s@%s", path, self.repo, self.branch)

    def close(self) -> None:
        self._client.close()

    def _free_path(self, task_date: str) -> str:
        for version in range(1, MAX_VERSION + 1):
            path = post_path(task_date, version)
            if not self._exists(path):
                if version > 1:
                    logger.warning("Post for %s already exists, using %s", task_date, path)
                return path
        raise PublishError(f"Too many versions exist for date {task_date} (exceeded {MAX_VERSION})")

    def _exists(self, path: str) -> bool:
        response = self._request(
            "GET",
            f"/repos/{self.repo}/contents/{path}",
            params={"ref": self.branch},
        )
        if response.status_code == HTTP_NOT_FOUND:
            return False
        if not response.is_success:
            raise PublishError(
                f"GitHub lookup of {path} failed: HTTP {response.status_code}",
            )
        return True

    def _request(self, method: str, url: str, **kwargs: object) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)  # type: ignore[arg-type]
        except httpx.HTTPError as exc:
            raise PublishError(f"GitHub request failed: {exc}") from exc
