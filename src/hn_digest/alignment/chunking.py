"""Split ordered collections into contiguous batches."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def chunk(items: Sequence[T], batch_size: int) -> list[list[T]]:
    """Split ``items`` into contiguous batches.

    ``batch_size == 0`` keeps everything in a single batch, ``1`` yields one batch
    per item and larger values yield groups of at most ``batch_size``. Items are
    never filtered or reordered, so concatenating the batches gives back the input.
    """

    if batch_size < 0:
        raise ValueError(f"batch_size must be >= 0, got {batch_size}")
    if not items:
        return []
    if batch_size == 0:
        return [list(items)]
    return [list(items[start : start + batch_size]) for start in range(0, len(items), batch_size)]
