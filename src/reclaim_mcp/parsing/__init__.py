"""Interpreters for the recovery engines' terminal output and logs."""

from .partitions import PartitionRecord, PartitionStatus
from .partitions import parse as parse_partitions
from .partitions import parse_file as parse_partitions_file
from .progress import LineKind, ProgressRecord, parse_chunk, parse_line
from .terminal import sanitize, split_partial_escape

__all__ = [
    "LineKind",
    "PartitionRecord",
    "PartitionStatus",
    "ProgressRecord",
    "parse_chunk",
    "parse_line",
    "parse_partitions",
    "parse_partitions_file",
    "sanitize",
    "split_partial_escape",
]
