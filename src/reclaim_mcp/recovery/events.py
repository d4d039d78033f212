"""Events emitted by recovery and partition analysis sessions."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from ..parsing.partitions import PartitionRecord
from ..errors import RecoveryError


@dataclass(frozen=True, slots=True)
class Progress:
    files_found: int
    speed_label: str
    percent: float
    eta_seconds: int | None


@dataclass(frozen=True, slots=True)
class Completed:
    total_files: int
    output_location: Path


@dataclass(frozen=True, slots=True)
class Failed:
    error: RecoveryError

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass(frozen=True, slots=True)
class Cancelled:
    pass


@dataclass(frozen=True, slots=True)
class LogChunk:
    text: str


@dataclass(frozen=True, slots=True)
class ParserStalled:
    """Output keeps arriving but none of it has been recognized for a while."""

    silent_seconds: float


RecoveryEvent = Union[Progress, Completed, Failed, Cancelled, LogChunk, ParserStalled]
TERMINAL_EVENTS = (Completed, Failed, Cancelled)


@dataclass(frozen=True, slots=True)
class PartitionFound:
    record: PartitionRecord


@dataclass(frozen=True, slots=True)
class AnalysisComplete:
    partitions: tuple[PartitionRecord, ...]


PartitionEvent = Union[PartitionFound, AnalysisComplete, Failed, Cancelled]


def describe(event: object) -> dict[str, object]:
    """Return a JSON-friendly description of an event."""

    if isinstance(event, Progress):
        return {
            "type": "progress",
            "files_found": event.files_found,
            "speed": event.speed_label,
            "percent": round(event.percent, 2),
            "eta_seconds": event.eta_seconds,
        }
    if isinstance(event, Completed):
        return {"type": "completed", "total_files": event.total_files, "output": str(event.output_location)}
    if isinstance(event, Failed):
        return {"type": "failed", "error": event.error.as_dict()}
    if isinstance(event, Cancelled):
        return {"type": "cancelled"}
    if isinstance(event, LogChunk):
        return {"type": "log", "text": event.text}
    if isinstance(event, ParserStalled):
        return {"type": "parser_stalled", "silent_seconds": round(event.silent_seconds, 1)}
    if isinstance(event, PartitionFound):
        return {"type": "partition_found", **event.record.as_dict()}
    if isinstance(event, AnalysisComplete):
        return {"type": "analysis_complete", "partitions": [record.as_dict() for record in event.partitions]}
    raise TypeError(f"Unknown event type: {type(event).__name__}")


__all__ = [
    "AnalysisComplete",
    "Cancelled",
    "Completed",
    "Failed",
    "LogChunk",
    "ParserStalled",
    "PartitionEvent",
    "PartitionFound",
    "Progress",
    "RecoveryEvent",
    "TERMINAL_EVENTS",
    "describe",
]
