"""Deterministic classification of language model call failures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500


class FailureClass(str, Enum):
    """Normalized failure classes for provider errors."""

    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"
    BACKEND_TRANSIENT = "backend_transient"
    BACKEND_NON_RETRYABLE = "backend_non_retryable"


_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "insufficient",
    "billing",
    "payment",
    "credits",
    "balance",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "invalid api key",
    "authentication",
    "incorrect api key",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "model not exist",
    "unknown model",
    "invalid model",
    "model is not available",
)
_GENERIC_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "temporarily unavailable",
    "connection reset",
    "network error",
    "overloaded",
    "try again later",
)


@dataclass(slots=True)
class LlmFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    matched_rule: str
    matched_pattern: str | None

    @property
    def retryable(self) -> bool:
        return self.failure_class in (
            FailureClass.TIMEOUT,
            FailureClass.RATE_LIMITED,
            FailureClass.BACKEND_TRANSIENT,
        )


def classify_llm_failure(
    *,
    status_code: int | None,
    message: str,
    timed_out: bool = False,
) -> LlmFailureClassification:
    """Classify a failed provider call by HTTP status and error text."""

    if timed_out:
        return LlmFailureClassification(FailureClass.TIMEOUT, "timeout", None)
    if status_code == HTTP_TOO_MANY_REQUESTS:
        return LlmFailureClassification(FailureClass.RATE_LIMITED, "http_429", None)

    haystack = message.lower()
    for failure_class, rule, patterns in (
        (FailureClass.BILLING_OR_QUOTA, "billing_or_quota", _BILLING_OR_QUOTA_PATTERNS),
        (FailureClass.ACCESS_OR_AUTH, "access_or_auth", _ACCESS_OR_AUTH_PATTERNS),
        (FailureClass.MODEL_NOT_AVAILABLE, "model_not_available", _MODEL_NOT_AVAILABLE_PATTERNS),
    ):
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return LlmFailureClassification(failure_class, rule, pattern)

    if status_code in (401, 403):
        return LlmFailureClassification(FailureClass.ACCESS_OR_AUTH, "http_auth_status", None)

    pattern = _first_match(haystack, _GENERIC_TRANSIENT_PATTERNS)
    if pattern is not None or (status_code is not None and status_code >= HTTP_SERVER_ERROR):
        return LlmFailureClassification(
            FailureClass.BACKEND_TRANSIENT,
            "generic_transient" if pattern is not None else "http_server_error",
            pattern,
        )

    return LlmFailureClassification(
        FailureClass.BACKEND_NON_RETRYABLE,
        "fallback_non_retryable",
        None,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
