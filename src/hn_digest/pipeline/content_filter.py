"""Optional model-based filter for sensitive story titles (fails open)."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence

from hn_digest.errors import ResponseParseError
from hn_digest.llm.provider import ChatMessage, ChatProvider
from hn_digest.pipeline.models import StoryDetail

logger = logging.getLogger(__name__)

CLASSIFICATION_TEMPERATURE = 0.1
SAFE = "SAFE"
SENSITIVE = "SENSITIVE"

_JSON_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)

SENSITIVITY_GUIDELINES = {
    "low": """Only classify as SENSITIVE if content:
- Explicitly violates Chinese law
- Contains explicit adult or violent content
- Promotes illegal activities""",
    "medium": """Classify as SENSITIVE if the content:
- Relates to Chinese political controversies
- Discusses topics restricted in mainland China
- Contains explicit adult or violent content
- Promotes illegal activities or hate speech""",
    "high": """Classify as SENSITIVE if the content:
- Relates to any Chinese political topics
- Discusses censorship or internet freedom
- Contains controversial social or political content
- Contains adult, violent, or offensive content
- Discusses topics that may be sensitive in China""",
}


def build_classification_prompt(titles: Sequence[str], sensitivity: str) -> str:
    numbered = "\n".join(f"{index}. {title}" for index, title in enumerate(titles))
    return f"""You are a content moderator for a Chinese news aggregator.
Your task is to classify news titles as either "SAFE" or "SENSITIVE".

Sensitivity Level: {sensitivity}
{SENSITIVITY_GUIDELINES[sensitivity]}

IMPORTANT:
- Focus on the title content only
- Consider the context (e.g., historical discussion vs current politics)
- When in doubt at the boundary, classify as SAFE

Respond ONLY with a valid JSON array in this exact format:
[{{"index": 0, "classification": "SAFE"}}, {{"index": 1, "classification": "SENSITIVE"}}, ...]

Titles to classify:
{numbered}

JSON Response:"""


def parse_classifications(text: str) -> dict[int, str]:
    """Map of title index to SAFE/SENSITIVE; raises on malformed answers."""

    match = _JSON_ARRAY_RE.search(text)
    if match is None:
        raise ResponseParseError("No JSON array found in classification response")
    try:
        payload = json.loads(match.group(0))
    except ValueError as error:
        raise ResponseParseError(f"Failed to parse classification JSON: {error}") from error
    if not isinstance(payload, list):
        raise ResponseParseError("Classification response is not an array")

    classifications: dict[int, str] = {}
    for entry in payload:
        if not isinstance(entry, dict) or not isinstance(entry.get("index"), int):
            raise ResponseParseError("Invalid classification: missing or invalid index")
        value = entry.get("classification")
        if value not in (SAFE, SENSITIVE):
            raise ResponseParseError(f"Invalid classification value: {value!r}")
        classifications[entry["index"]] = value
    return classifications


class ContentFilter:
    """Drop stories whose titles the model classifies as sensitive."""

    def __init__(self, *, provider: ChatProvider, sensitivity: str = "medium") -> None:
        if sensitivity not in SENSITIVITY_GUIDELINES:
            raise ValueError(f"Unknown sensitivity level: {sensitivity!r}")
        self.provider = provider
        self.sensitivity = sensitivity

    def filter_stories(self, stories: Sequence[StoryDetail]) -> list[StoryDetail]:
        if not stories:
            return []
        prompt = build_classification_prompt([story.title for story in stories], self.sensitivity)
        try:
            answer = self.provider.chat_complete(
                [ChatMessage(role="user", content=prompt)],
                temperature=CLASSIFICATION_TEMPERATURE,
            )
            classifications = parse_classifications(answer)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Content filter unavailable, keeping all %d stories: %s", len(stories), exc)
            return list(stories)

        kept = [
            story
            for index, story in enumerate(stories)
            if classifications.get(index, SAFE) != SENSITIVE
        ]
        if len(kept) != len(stories):
            logger.info("Content filter removed %d of %d stories", len(stories) - len(kept), len(stories))
        return kept
