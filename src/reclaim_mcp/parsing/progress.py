"""Line grammar for the recovery engine's progress output."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

_SECTOR_LINE = re.compile(
    r"Pass\s*(?P<pass>\d+)\s*-\s*Reading\s*sector\s*(?P<current>\d+)\s*/\s*(?P<total>\d+)"
    r"\s*,\s*(?P<files>\d+)\s*files?\s*found",
    re.IGNORECASE,
)
_DURATION = re.compile(r"(?P<h>\d+)h\s*(?P<m>\d+)m\s*(?P<s>\d+)(?:s|\b|$)")
_CATEGORY_LINE = re.compile(
    r"^\s*(?P<label>[\w*?.+-]+)\s*:\s*(?P<count>\d+)\s*recovered\b",
    re.IGNORECASE,
)
_COMPLETION_LINE = re.compile(r"\bRecovery\s+completed\b", re.IGNORECASE)


class LineKind(str, Enum):
    """Which grammar rule recognized a line."""

    SECTOR = "sector"
    TIME = "time"
    CATEGORY = "category"
    COMPLETION = "completion"


@dataclass(slots=True)
class ProgressRecord:
    """Accumulated progress for a single recovery session."""

    current_sector: int = 0
    total_sectors: int = 0
    files_found: int = 0
    elapsed_seconds: int = 0
    estimated_seconds: int = 0
    recovered_by_category: dict[str, int] = field(default_factory=dict)
    completed: bool = False
    pass_number: int = 0

    @property
    def recovered_total(self) -> int:
        return sum(self.recovered_by_category.values())

    def fraction(self) -> float | None:
        """Return the scan fraction in ``[0, 1]``, or ``None`` when unknown.

        Sector counters win when present. Otherwise the elapsed/estimated times
        give a fallback capped below 1 so the indicator keeps moving while the
        sector counters are stale.
        """

        if self.total_sectors > 0 and self.current_sector > 0:
            return min(1.0, self.current_sector / self.total_sectors)
        window = self.elapsed_seconds + self.estimated_seconds
        if window > 0:
            return min(0.99, self.elapsed_seconds / window)
        return None

    def percent_string(self) -> str:
        value = self.fraction()
        if value is None:
            return "n/a"
        return f"{value * 100:.1f}%"


def _seconds(match: re.Match[str]) -> int:
    return int(match.group("h")) * 3600 + int(match.group("m")) * 60 + int(match.group("s"))


def parse_line(line: str, record: ProgressRecord) -> LineKind | None:
    """Apply one sanitized line to ``record``.

    Returns the kind of line that was recognized, or ``None`` when the line is
    not part of the grammar. Unrecognized lines never modify the record.
    """

    match = _SECTOR_LINE.search(line)
    if match:
        total = int(match.group("total"))
        current = int(match.group("current"))
        if total >= record.total_sectors:
            record.total_sectors = total
        if record.total_sectors:
            current = min(current, record.total_sectors)
        record.current_sector = current
        record.pass_number = int(match.group("pass"))
        record.files_found = max(record.files_found, int(match.group("files")))
        return LineKind.SECTOR

    durations = list(_DURATION.finditer(line))
    if len(durations) >= 2:
        record.elapsed_seconds = _seconds(durations[0])
        record.estimated_seconds = _seconds(durations[1])
        return LineKind.TIME

    match = _CATEGORY_LINE.search(line)
    if match:
        record.recovered_by_category[match.group("label")] = int(match.group("count"))
        record.files_found = max(record.files_found, record.recovered_total)
        return LineKind.CATEGORY

    if _COMPLETION_LINE.search(line):
        record.completed = True
        return LineKind.COMPLETION

    return None


def parse_chunk(text: str, record: ProgressRecord | None = None) -> ProgressRecord:
    """Parse every line of ``text`` into ``record`` (a new one by default)."""

    record = record if record is not None else ProgressRecord()
    for line in text.splitlines():
        parse_line(line, record)
    return record


__all__ = ["LineKind", "ProgressRecord", "parse_chunk", "parse_line"]
