"""Domain exceptions for the digest pipeline."""

from __future__ import annotations


class DigestError(Exception):
    """Base class for digest pipeline errors."""


class UnknownTaskStatusError(DigestError):
    """Persisted task status is not a known lifecycle state."""

    def __init__(self, status: str) -> None:
        super().__init__(f"Unknown task status: {status}")
        self.status = status


class AlignmentError(DigestError):
    """Batch output does not align with batch input."""


class ResponseParseError(DigestError):
    """Model response does not contain a usable JSON array of strings."""


class LlmCallError(DigestError):
    """Language model provider call failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(LlmCallError):
    """Provider rejected the call with HTTP 429."""


class PublishError(DigestError):
    """Publisher could not deliver the digest."""


class SourceError(DigestError):
    """Upstream story source request failed."""


class InvalidTransitionError(DigestError):
    """Requested task status change is not in the lifecycle table."""

    def __init__(self, status_from: str, status_to: str) -> None:
        super().__init__(f"Invalid task transition: {status_from} -> {status_to}")
        self.status_from = status_from
        self.status_to = status_to
