from __future__ import annotations

import allure
import pytest

from hn_digest.errors import LlmCallError, ResponseParseError
from hn_digest.pipeline.content_filter import (
    CLASSIFICATION_TEMPERATURE,
    ContentFilter,
    build_classification_prompt,
    parse_classifications,
)

from conftest import make_story

pytestmark = [
    allure.epic("Daily Digest"),
    allure.feature("Content Filter"),
]


class _ScriptedProvider:
    name = "scripted"

    def __init__(self, answer: str | Exception) -> None:
        self.answer = answer
        self.temperatures: list[float] = []

    def chat_complete(self, messages, *, temperature: float) -> str:
        self.temperatures.append(temperature)
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer


def test_sensitive_stories_are_dropped() -> None:
    provider = _ScriptedProvider(
        'Sure: [{"index": 0, "classification": "SAFE"}, {"index": 1, "classification": "SENSITIVE"}]',
    )
    stories = [make_story(1), make_story(2), make_story(3)]

    kept = ContentFilter(provider=provider, sensitivity="high").filter_stories(stories)

    assert [story.story_id for story in kept] == [1, 3]
    assert provider.temperatures == [CLASSIFICATION_TEMPERATURE]


@pytest.mark.parametrize("answer", [LlmCallError("down"), "no json here", '[{"index": 0}]'])
def test_filter_fails_open(answer: str | Exception) -> None:
    stories = [make_story(1), make_story(2)]

    kept = ContentFilter(provider=_ScriptedProvider(answer)).filter_stories(stories)

    assert kept == stories


def test_prompt_numbers_titles_from_zero() -> None:
    prompt = build_classification_prompt(["First", "Second"], "low")

    assert "0. First\n1. Second" in prompt
    assert "Sensitivity Level: low" in prompt


def test_parse_classifications_rejects_unknown_labels() -> None:
    with pytest.raises(ResponseParseError):
        parse_classifications('[{"index": 0, "classification": "MAYBE"}]')


def test_unknown_sensitivity_is_rejected() -> None:
    with pytest.raises(ValueError):
        ContentFilter(provider=_ScriptedProvider("[]"), sensitivity="extreme")
