"""Positional batch alignment of model outputs with their inputs."""

from hn_digest.alignment.chunking import chunk
from hn_digest.alignment.engine import AlignmentResult, BatchAlignmentEngine, FallbackRecord
from hn_digest.alignment.response_parser import parse_json_array

__all__ = [
    "AlignmentResult",
    "BatchAlignmentEngine",
    "FallbackRecord",
    "chunk",
    "parse_json_array",
]
