"""Runtime configuration for the daily digest pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

SUPPORTED_PROVIDERS = ("deepseek", "openrouter", "zhipu")
SENSITIVITY_LEVELS = ("low", "medium", "high")


@dataclass(slots=True)
class TaskSettings:
    """Task state machine and per-invocation work limits."""

    batch_size: int = 6
    story_limit: int = 30
    comment_limit: int = 10
    fetch_concurrency: int = 4
    summary_max_length: int = 300
    claim_stale_seconds: int = 900
    archive_retention_days: int = 30


@dataclass(slots=True)
class LlmSettings:
    """Language model provider settings."""

    provider: str = "deepseek"
    api_key: str = ""
    model: str | None = None
    base_url: str | None = None
    batch_size: int = 10
    max_retries: int = 2
    timeout_seconds: float | None = None
    retry_delay_seconds: float | None = None
    openrouter_site_url: str | None = None
    openrouter_site_name: str | None = None


@dataclass(slots=True)
class ContentSettings:
    """Article body extraction settings."""

    crawler_api_url: str | None = None
    crawler_api_token: str | None = None
    request_timeout_seconds: float = 10.0
    max_content_chars: int = 4_000
    max_description_chars: int = 200


@dataclass(slots=True)
class PublishSettings:
    """Publisher targets."""

    github_enabled: bool = False
    github_token: str = ""
    github_repo: str = ""
    github_branch: str = "main"
    telegram_enabled: bool = False
    telegram_bot_token: str = ""
    telegram_channel_id: str = ""
    terminal_enabled: bool = False


@dataclass(slots=True)
class FilterSettings:
    """Optional sensitive-title filter."""

    enabled: bool = False
    sensitivity: str = "medium"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".hn_digest.db")
    sqlite_busy_timeout_ms: int = 5_000
    task: TaskSettings = field(default_factory=TaskSettings)
    llm: LlmSettings = field(default_factory=LlmSettings)
    content: ContentSettings = field(default_factory=ContentSettings)
    publish: PublishSettings = field(default_factory=PublishSettings)
    content_filter: FilterSettings = field(default_factory=FilterSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("HN_DIGEST_DB_PATH", ".hn_digest.db")),
            sqlite_busy_timeout_ms=int(os.getenv("HN_DIGEST_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            task=TaskSettings(
                batch_size=int(os.getenv("HN_DIGEST_TASK_BATCH_SIZE", "6")),
                story_limit=int(os.getenv("HN_DIGEST_STORY_LIMIT", "30")),
                comment_limit=int(os.getenv("HN_DIGEST_COMMENT_LIMIT", "10")),
                fetch_concurrency=int(os.getenv("HN_DIGEST_FETCH_CONCURRENCY", "4")),
                summary_max_length=int(os.getenv("HN_DIGEST_SUMMARY_MAX_LENGTH", "300")),
                claim_stale_seconds=int(os.getenv("HN_DIGEST_CLAIM_STALE_SECONDS", "900")),
                archive_retention_days=int(
                    os.getenv("HN_DIGEST_ARCHIVE_RETENTION_DAYS", "30"),
                ),
            ),
            llm=LlmSettings(
                provider=os.getenv("HN_DIGEST_LLM_PROVIDER", "deepseek").strip().lower(),
                api_key=os.getenv("HN_DIGEST_LLM_API_KEY", ""),
                model=_env_optional("HN_DIGEST_LLM_MODEL"),
                base_url=_env_optional("HN_DIGEST_LLM_BASE_URL"),
                batch_size=int(os.getenv("HN_DIGEST_LLM_BATCH_SIZE", "10")),
                max_retries=int(os.getenv("HN_DIGEST_LLM_MAX_RETRIES", "2")),
                timeout_seconds=_env_optional_float("HN_DIGEST_LLM_TIMEOUT_SECONDS"),
                retry_delay_seconds=_env_optional_float("HN_DIGEST_LLM_RETRY_DELAY_SECONDS"),
                openrouter_site_url=_env_optional("HN_DIGEST_OPENROUTER_SITE_URL"),
                openrouter_site_name=_env_optional("HN_DIGEST_OPENROUTER_SITE_NAME"),
            ),
            content=ContentSettings(
                crawler_api_url=_env_optional("HN_DIGEST_CRAWLER_API_URL"),
                crawler_api_token=_env_optional("HN_DIGEST_CRAWLER_API_TOKEN"),
                request_timeout_seconds=float(
                    os.getenv("HN_DIGEST_CONTENT_TIMEOUT_SECONDS", "10.0"),
                ),
                max_content_chars=int(os.getenv("HN_DIGEST_MAX_CONTENT_CHARS", "4000")),
                max_description_chars=int(os.getenv("HN_DIGEST_MAX_DESCRIPTION_CHARS", "200")),
            ),
            publish=PublishSettings(
                github_enabled=_env_bool("HN_DIGEST_GITHUB_ENABLED", default=False),
                github_token=os.getenv("HN_DIGEST_GITHUB_TOKEN", ""),
                github_repo=os.getenv("HN_DIGEST_GITHUB_REPO", ""),
                github_branch=os.getenv("HN_DIGEST_GITHUB_BRANCH", "main"),
                telegram_enabled=_env_bool("HN_DIGEST_TELEGRAM_ENABLED", default=False),
                telegram_bot_token=os.getenv("HN_DIGEST_TELEGRAM_BOT_TOKEN", ""),
                telegram_channel_id=os.getenv("HN_DIGEST_TELEGRAM_CHANNEL_ID", ""),
                terminal_enabled=_env_bool("HN_DIGEST_TERMINAL_ENABLED", default=False),
            ),
            content_filter=FilterSettings(
                enabled=_env_bool("HN_DIGEST_CONTENT_FILTER_ENABLED", default=False),
                sensitivity=os.getenv("HN_DIGEST_CONTENT_FILTER_SENSITIVITY", "medium")
                .strip()
                .lower(),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error on invalid or inconsistent values."""

        if self.task.batch_size < 0:
            raise ValueError("HN_DIGEST_TASK_BATCH_SIZE must be >= 0.")
        if not 1 <= self.task.story_limit <= 100:  # noqa: PLR2004
            raise ValueError("HN_DIGEST_STORY_LIMIT must be between 1 and 100.")
        if self.task.comment_limit < 0:
            raise ValueError("HN_DIGEST_COMMENT_LIMIT must be >= 0.")
        if self.task.fetch_concurrency <= 0:
            raise ValueError("HN_DIGEST_FETCH_CONCURRENCY must be > 0.")
        if self.task.claim_stale_seconds <= 0:
            raise ValueError("HN_DIGEST_CLAIM_STALE_SECONDS must be > 0.")
        if self.task.archive_retention_days < 0:
            raise ValueError("HN_DIGEST_ARCHIVE_RETENTION_DAYS must be >= 0.")

        if self.llm.provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported HN_DIGEST_LLM_PROVIDER: {self.llm.provider!r}. "
                f"Expected one of: {', '.join(SUPPORTED_PROVIDERS)}.",
            )
        if not self.llm.api_key.strip():
            raise ValueError("HN_DIGEST_LLM_API_KEY is required.")
        if self.llm.batch_size < 0:
            raise ValueError("HN_DIGEST_LLM_BATCH_SIZE must be >= 0.")
        if self.llm.max_retries < 1:
            raise ValueError("HN_DIGEST_LLM_MAX_RETRIES must be >= 1.")

        if self.content.crawler_api_url is not None:
            _validate_http_url(self.content.crawler_api_url, name="HN_DIGEST_CRAWLER_API_URL")
            if not self.content.crawler_api_token:
                raise ValueError(
                    "HN_DIGEST_CRAWLER_API_TOKEN is required when "
                    "HN_DIGEST_CRAWLER_API_URL is set.",
                )
        if self.content.max_content_chars <= 0:
            raise ValueError("HN_DIGEST_MAX_CONTENT_CHARS must be > 0.")

        if self.publish.github_enabled:
            if not self.publish.github_token:
                raise ValueError("HN_DIGEST_GITHUB_TOKEN is required when GitHub is enabled.")
            if self.publish.github_repo.count("/") != 1:
                raise ValueError(
                    f"Invalid HN_DIGEST_GITHUB_REPO: {self.publish.github_repo!r}. "
                    "Expected format 'owner/repo'.",
                )
        if self.publish.telegram_enabled and not (
            self.publish.telegram_bot_token and self.publish.telegram_channel_id
        ):
            raise ValueError(
                "HN_DIGEST_TELEGRAM_BOT_TOKEN and HN_DIGEST_TELEGRAM_CHANNEL_ID are required "
                "when Telegram is enabled.",
            )

        if self.content_filter.sensitivity not in SENSITIVITY_LEVELS:
            raise ValueError(
                "Invalid HN_DIGEST_CONTENT_FILTER_SENSITIVITY: "
                f"{self.content_filter.sensitivity!r}.",
            )


def _validate_http_url(value: str, *, name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _env_optional_float(name: str) -> float | None:
    value = _env_optional(name)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError as error:
        raise ValueError(f"Invalid numeric value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
