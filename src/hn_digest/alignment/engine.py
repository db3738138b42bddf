"""Batch alignment engine: chunked model calls with per-item fallback."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from hn_digest.alignment.chunking import chunk
from hn_digest.alignment.response_parser import parse_json_array
from hn_digest.errors import AlignmentError

logger = logging.getLogger(__name__)

T = TypeVar("T")

BatchCall = Callable[[list[str]], str]
SingleCall = Callable[[str], str]


@dataclass(slots=True)
class FallbackRecord:
    """One item that was retried individually after its batch failed."""

    index: int
    reason: str


@dataclass(slots=True)
class AlignmentResult:
    """Outputs aligned position by position with the engine input."""

    outputs: list[str]
    fallbacks: list[FallbackRecord] = field(default_factory=list)
    failures: list[int] = field(default_factory=list)


@dataclass(slots=True)
class _Pending:
    index: int
    text: str


class BatchAlignmentEngine:
    """Send texts to a model in chunks and guarantee positional alignment.

    Items whose extracted text is blank are never sent and produce ``""``. A chunk
    whose response cannot be parsed, has the wrong element count or whose call
    raises is retried item by item. Items that still fail produce ``""``.
    """

    def __init__(self, *, batch_size: int) -> None:
        if batch_size < 0:
            raise ValueError(f"batch_size must be >= 0, got {batch_size}")
        self.batch_size = batch_size

    def process(
        self,
        items: Sequence[T],
        extract_text: Callable[[T], str | None],
        call_model: BatchCall,
        call_single: SingleCall | None = None,
    ) -> AlignmentResult:
        outputs = [""] * len(items)
        result = AlignmentResult(outputs=outputs)
        # Times each input position was settled: skipped, answered or failed.
        settled = [0] * len(items)

        pending: list[_Pending] = []
        for index, item in enumerate(items):
            text = extract_text(item)
            if text is None or not text.strip():
                settled[index] += 1
                continue
            pending.append(_Pending(index=index, text=text))

        for batch_no, batch in enumerate(chunk(pending, self.batch_size)):
            answers, reason = self._call_batch(batch, call_model)
            if answers is not None:
                for entry, answer in zip(batch, answers, strict=True):
                    outputs[entry.index] = answer
                    settled[entry.index] += 1
                continue

            logger.warning(
                "Batch %d (%d items) failed, falling back to per-item calls: %s",
                batch_no,
                len(batch),
                reason,
            )
            for entry in batch:
                logger.warning("Per-item fallback for item %d: %s", entry.index, reason)
                result.fallbacks.append(FallbackRecord(index=entry.index, reason=reason))
                answer = self._call_single(entry.text, call_model, call_single)
                settled[entry.index] += 1
                if answer is None:
                    result.failures.append(entry.index)
                    continue
                outputs[entry.index] = answer

        unsettled = [index for index, count in enumerate(settled) if count != 1]
        if unsettled:
            raise AlignmentError(
                f"Positions {unsettled} were not settled exactly once for {len(items)} inputs",
            )
        return result

    @staticmethod
    def _call_batch(
        batch: list[_Pending],
        call_model: BatchCall,
    ) -> tuple[list[str] | None, str]:
        try:
            raw = call_model([entry.text for entry in batch])
            answers = parse_json_array(raw)
        except Exception as exc:  # noqa: BLE001
            return None, f"{type(exc).__name__}: {exc}"
        if len(answers) != len(batch):
            return None, f"expected {len(batch)} results, got {len(answers)}"
        return answers, ""

    @staticmethod
    def _call_single(
        text: str,
        call_model: BatchCall,
        call_single: SingleCall | None,
    ) -> str | None:
        try:
            if call_single is not None:
                answer = call_single(text).strip()
                return answer or None
            answers = parse_json_array(call_model([text]))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Per-item call failed: %s", exc)
            return None
        if len(answers) != 1:
            logger.warning("Per-item call returned %d results instead of 1", len(answers))
            return None
        return answers[0]
