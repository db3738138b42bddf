"""OpenAI-compatible chat completion providers over httpx."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from typing import Protocol

import httpx

from hn_digest.errors import LlmCallError, RateLimitError
from hn_digest.llm.failure_classifier import HTTP_TOO_MANY_REQUESTS, classify_llm_failure

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProviderProfile:
    """Endpoint, default model and timing policy of one provider."""

    name: str
    base_url: str
    default_model: str
    timeout_seconds: float = 30.0
    retry_delay_seconds: float = 1.0


PROVIDER_PROFILES: Mapping[str, ProviderProfile] = {
    "deepseek": ProviderProfile(
        name="deepseek",
        base_url="https://api.deepseek.com/v1",
        default_model="deepseek-chat",
    ),
    "openrouter": ProviderProfile(
        name="openrouter",
        base_url="https://openrouter.ai/api/v1",
        default_model="deepseek/deepseek-chat-v3-0324",
    ),
    "zhipu": ProviderProfile(
        name="zhipu",
        base_url="https://open.bigmodel.cn/api/paas/v4",
        default_model="glm-4.5-flash",
        retry_delay_seconds=2.0,
    ),
}


@dataclass(slots=True)
class ChatMessage:
    role: str
    content: str


class ChatProvider(Protocol):
    """Anything able to answer a chat completion request with plain text."""

    name: str

    def chat_complete(self, messages: list[ChatMessage], *, temperature: float) -> str:
        """Return the assistant message text."""
        raise NotImplementedError


class OpenAICompatibleProvider:
    """``/chat/completions`` client with explicit timeout and 429 retry policy."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        profile: ProviderProfile,
        api_key: str,
        model: str | None = None,
        max_retries: int = 2,
        extra_headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.profile = profile
        self.name = profile.name
        self.model = model or profile.default_model
        self.max_retries = max(1, max_retries)
        self._sleep = sleep
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        if extra_headers:
            headers.update(extra_headers)
        self._client = httpx.Client(
            base_url=profile.base_url,
            timeout=httpx.Timeout(profile.timeout_seconds, connect=10.0),
            headers=headers,
            transport=transport,
        )

    def chat_complete(self, messages: list[ChatMessage], *, temperature: float) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": message.role, "content": message.content} for message in messages],
            "temperature": temperature,
        }
        for attempt in range(1, self.max_retries + 1):
            try:
                return self._request(payload)
            except RateLimitError:
                if attempt >= self.max_retries:
                    raise
                logger.warning(
                    "%s rate limited, retrying in %.1fs (%d/%d)",
                    self.name,
                    self.profile.retry_delay_seconds,
                    attempt,
                    self.max_retries,
                )
                self._sleep(self.profile.retry_delay_seconds)
        raise LlmCallError(f"{self.name}: no attempts made")

    def _request(self, payload: dict[str, object]) -> str:
        try:
            response = self._client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as exc:
            classification = classify_llm_failure(status_code=None, message=str(exc), timed_out=True)
            logger.warning("%s call timed out (%s)", self.name, classification.failure_class.value)
            raise LlmCallError(f"{self.name}: request timed out") from exc
        except httpx.HTTPError as exc:
            classification = classify_llm_failure(status_code=None, message=str(exc))
            logger.warning(
                "%s transport error (%s): %s",
                self.name,
                classification.failure_class.value,
                exc,
            )
            raise LlmCallError(f"{self.name}: {exc}") from exc

        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            raise RateLimitError(
                f"{self.name}: HTTP 429 rate limited",
                status_code=response.status_code,
            )
        if not response.is_success:
            body = response.text[:500]
            classification = classify_llm_failure(status_code=response.status_code, message=body)
            logger.warning(
                "%s returned HTTP %d (%s)",
                self.name,
                response.status_code,
                classification.failure_class.value,
            )
            raise LlmCallError(
                f"{self.name}: HTTP {response.status_code} "
                f"({classification.failure_class.value}): {body}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise LlmCallError(f"{self.name}: malformed completion payload") from exc
        if not isinstance(content, str) or not content.strip():
            raise LlmCallError(f"{self.name}: empty completion")
        return content.strip()

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> OpenAICompatibleProvider:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def build_provider(  # noqa: PLR0913
    provider: str,
    *,
    api_key: str,
    model: str | None = None,
    base_url: str | None = None,
    max_retries: int = 2,
    timeout_seconds: float | None = None,
    retry_delay_seconds: float | None = None,
    openrouter_site_url: str | None = None,
    openrouter_site_name: str | None = None,
    profiles: Mapping[str, ProviderProfile] = PROVIDER_PROFILES,
    transport: httpx.BaseTransport | None = None,
) -> OpenAICompatibleProvider:
    """Create a provider from its profile plus per-deployment overrides."""

    try:
        profile = profiles[provider]
    except KeyError as error:
        raise ValueError(f"Unsupported LLM provider: {provider!r}") from error

    if base_url is not None:
        profile = replace(profile, base_url=base_url)
    if timeout_seconds is not None:
        profile = replace(profile, timeout_seconds=timeout_seconds)
    if retry_delay_seconds is not None:
        profile = replace(profile, retry_delay_seconds=retry_delay_seconds)

    extra_headers: dict[str, str] = {}
    if provider == "openrouter":
        if openrouter_site_url:
            extra_headers["HTTP-Referer"] = openrouter_site_url
        if openrouter_site_name:
            extra_headers["X-Title"] = openrouter_site_name

    return OpenAICompatibleProvider(
        profile=profile,
        api_key=api_key,
        model=model,
        max_retries=max_retries,
        extra_headers=extra_headers,
        transport=transport,
    )
