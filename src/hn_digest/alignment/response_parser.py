"""Extract a JSON array of strings from free-form model text."""

from __future__ import annotations

import json
import re
from collections.abc import Callable

from hn_digest.errors import ResponseParseError

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",\s*([\]}])")


def parse_json_array(text: str) -> list[str]:
    """Return the string elements of the first JSON array recoverable from ``text``.

    Strategies run in order and the first one producing a list wins. The result is
    never padded or truncated; callers compare its length with what they sent.
    """

    if not text or not text.strip():
        raise ResponseParseError("empty model response")

    for strategy in PARSE_STRATEGIES:
        parsed = strategy(text)
        if parsed is not None:
            return parsed
    preview = text.strip()[:120]
    raise ResponseParseError(f"no JSON array of strings found in response: {preview!r}")


def _strict(text: str) -> list[str] | None:
    return _load_string_array(text.strip())


def _fenced(text: str) -> list[str] | None:
    for match in _FENCED_BLOCK.finditer(text):
        parsed = _load_string_array(match.group(1))
        if parsed is None:
            parsed = _load_string_array(_strip_trailing_commas(match.group(1)))
        if parsed is not None:
            return parsed
    return None


def _trailing_commas(text: str) -> list[str] | None:
    return _load_string_array(_strip_trailing_commas(text.strip()))


def _bracket_substring(text: str) -> list[str] | None:
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        return None
    candidate = text[start : end + 1]
    parsed = _load_string_array(candidate)
    if parsed is None:
        parsed = _load_string_array(_strip_trailing_commas(candidate))
    return parsed


PARSE_STRATEGIES: tuple[Callable[[str], list[str] | None], ...] = (
    _strict,
    _fenced,
    _trailing_commas,
    _bracket_substring,
)


def _strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


def _load_string_array(text: str) -> list[str] | None:
    try:
        payload = json.loads(text)
    except ValueError:
        return None
    if not isinstance(payload, list):
        return None

    values: list[str] = []
    for element in payload:
        value = _coerce_element(element)
        if value is None:
            return None
        values.append(value)
    return values


def _coerce_element(element: object) -> str | None:
    if isinstance(element, bool):
        return None
    if isinstance(element, str):
        return element
    if isinstance(element, int | float):
        return str(element)
    if isinstance(element, dict) and len(element) == 1:
        (value,) = element.values()
        if isinstance(value, str):
            return value
    return None
