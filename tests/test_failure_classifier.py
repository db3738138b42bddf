from __future__ import annotations

import allure
import pytest

from hn_digest.llm.failure_classifier import FailureClass, classify_llm_failure

pytestmark = [
    allure.epic("LLM Runtime"),
    allure.feature("Failure Classification"),
]


def test_timeout_wins_over_everything() -> None:
    classified = classify_llm_failure(status_code=500, message="quota", timed_out=True)

    assert classified.failure_class == FailureClass.TIMEOUT
    assert classified.retryable


def test_http_429_is_rate_limited() -> None:
    classified = classify_llm_failure(status_code=429, message="slow down")

    assert classified.failure_class == FailureClass.RATE_LIMITED
    assert classified.matched_rule == "http_429"


def test_billing_text_beats_server_status() -> None:
    classified = classify_llm_failure(status_code=500, message="Insufficient Balance")

    assert classified.failure_class == FailureClass.BILLING_OR_QUOTA
    assert classified.matched_pattern == "insufficient"
    assert not classified.retryable


@pytest.mark.parametrize(
    ("status_code", "message", "expected"),
    [
        (400, "Model Not Found: glm-9", FailureClass.MODEL_NOT_AVAILABLE),
        (401, "", FailureClass.ACCESS_OR_AUTH),
        (400, "Invalid API key provided", FailureClass.ACCESS_OR_AUTH),
        (502, "bad gateway", FailureClass.BACKEND_TRANSIENT),
        (None, "connection reset by peer", FailureClass.BACKEND_TRANSIENT),
        (400, "bad request", FailureClass.BACKEND_NON_RETRYABLE),
    ],
)
def test_classification_table(status_code: int | None, message: str, expected: FailureClass) -> None:
    assert classify_llm_failure(status_code=status_code, message=message).failure_class == expected
