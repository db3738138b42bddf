from __future__ import annotations

import allure

from hn_digest.translation.translator import (
    EMPTY_DESCRIPTION,
    MAX_COMMENTS_CHARS,
    SUMMARY_TEMPERATURE,
    TITLE_TEMPERATURE,
    Translator,
    contains_chinese,
    join_comments,
)

from conftest import EchoProvider

pytestmark = [
    allure.epic("Batch Alignment"),
    allure.feature("Translation"),
]


class _TemperatureProvider(EchoProvider):
    def __init__(self) -> None:
        super().__init__()
        self.temperatures: list[float] = []

    def chat_complete(self, messages, *, temperature: float) -> str:
        self.temperatures.append(temperature)
        return super().chat_complete(messages, temperature=temperature)


def test_titles_already_in_chinese_are_not_sent() -> None:
    provider = EchoProvider()

    result = Translator(provider=provider).translate_titles(["Rust 2026", "中文标题"])

    assert result.outputs == ["译:Rust 2026", "中文标题"]
    assert result.failed == set()
    assert len(provider.prompts) == 1
    assert "中文标题" not in provider.prompts[0]


def test_failed_title_keeps_original_and_is_reported() -> None:
    provider = EchoProvider(poisoned={"Bad title"})

    result = Translator(provider=provider).translate_titles(["Good title", "Bad title"])

    assert result.outputs == ["单:Good title", "Bad title"]
    assert result.failed == {1}


def test_title_and_summary_temperatures() -> None:
    provider = _TemperatureProvider()
    translator = Translator(provider=provider)

    translator.translate_titles(["A"])
    translator.summarize_contents(["Body"])

    assert provider.temperatures == [TITLE_TEMPERATURE, SUMMARY_TEMPERATURE]


def test_missing_content_yields_empty_summary() -> None:
    provider = EchoProvider()

    result = Translator(provider=provider, max_content_chars=4).summarize_contents([None, "Long body"])

    assert result.outputs == ["", "译:Long"]


def test_comments_below_minimum_are_skipped() -> None:
    result = Translator(provider=EchoProvider()).summarize_comments([["a", "b"], ["a", "b", "c"]])

    assert result.outputs == ["", "译:a\n---\nb\n---\nc"]


def test_join_comments_caps_length() -> None:
    joined = join_comments(["x" * 3_000, "y" * 3_000, "z"])

    assert joined is not None
    assert len(joined) == MAX_COMMENTS_CHARS
    assert join_comments(["only", "two"]) is None


def test_descriptions_translate_one_by_one() -> None:
    provider = EchoProvider(poisoned={"broken"})

    translated = Translator(provider=provider).translate_descriptions(
        ["A tiny database", None, "已是中文", "broken"],
    )

    assert translated == ["单:A tiny database", EMPTY_DESCRIPTION, "已是中文", "broken"]
    assert len(provider.prompts) == 2


def test_contains_chinese() -> None:
    assert contains_chinese("Rust 编程")
    assert not contains_chinese("Rust programming")
