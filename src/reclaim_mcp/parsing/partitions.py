"""Parser for partition tables reported in the partition engine's log."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

SECTOR_SIZE = 512

_DEFAULT_HEADS = 255
_DEFAULT_SECTORS_PER_TRACK = 63

_GEOMETRY = re.compile(r"\bCHS\s+(?P<c>\d+)\s+(?P<h>\d+)\s+(?P<s>\d+)")
_PARTITION_LINE = re.compile(
    r"^\s*(?P<marker>[*PDLE])\s+(?P<label>\S.*?)\s{2,}"
    r"(?P<sc>\d+)\s+(?P<sh>\d+)\s+(?P<ss>\d+)\s+"
    r"(?P<ec>\d+)\s+(?P<eh>\d+)\s+(?P<es>\d+)\s+"
    r"(?P<size>\d+)\b"
)


class PartitionStatus(str, Enum):
    PRIMARY = "primary"
    DELETED = "deleted"
    LOGICAL = "logical"
    EXTENDED = "extended"

    @classmethod
    def from_marker(cls, marker: str) -> "PartitionStatus":
        # "*" flags a bootable primary partition.
        return {
            "*": cls.PRIMARY,
            "P": cls.PRIMARY,
            "D": cls.DELETED,
            "L": cls.LOGICAL,
            "E": cls.EXTENDED,
        }[marker]


@dataclass(frozen=True, slots=True)
class PartitionRecord:
    index: int
    type_label: str
    size_bytes: int
    status: PartitionStatus
    start_sector: int
    end_sector: int
    active: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "index": self.index,
            "type_label": self.type_label,
            "size_bytes": self.size_bytes,
            "status": self.status.value,
            "start_sector": self.start_sector,
            "end_sector": self.end_sector,
            "active": self.active,
        }


def _chs_to_lba(cylinder: int, head: int, sector: int, heads: int, per_track: int) -> int:
    return (cylinder * heads + head) * per_track + max(sector - 1, 0)


def parse(log_text: str) -> list[PartitionRecord]:
    """Return the partitions listed in ``log_text``.

    Lines that do not start with a status marker, or that do not carry the
    start/end CHS triples and a sector count, are skipped. Empty or
    partition-less input yields an empty list.
    """

    heads, per_track = _DEFAULT_HEADS, _DEFAULT_SECTORS_PER_TRACK
    records: list[PartitionRecord] = []

    for line in log_text.splitlines():
        geometry = _GEOMETRY.search(line)
        if geometry and int(geometry.group("h")) and int(geometry.group("s")):
            heads, per_track = int(geometry.group("h")), int(geometry.group("s"))
            continue

        match = _PARTITION_LINE.match(line)
        if not match:
            continue

        sectors = int(match.group("size"))
        start = _chs_to_lba(
            int(match.group("sc")), int(match.group("sh")), int(match.group("ss")), heads, per_track
        )
        end = start + sectors - 1 if sectors else start
        records.append(
            PartitionRecord(
                index=len(records) + 1,
                type_label=match.group("label").strip(),
                size_bytes=sectors * SECTOR_SIZE,
                status=PartitionStatus.from_marker(match.group("marker")),
                start_sector=start,
                end_sector=end,
                active=match.group("marker") == "*",
            )
        )

    return records


def parse_file(path: Path) -> list[PartitionRecord]:
    """Parse a log file; a missing file yields no partitions."""

    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return []
    return parse(text)


__all__ = ["PartitionRecord", "PartitionStatus", "SECTOR_SIZE", "parse", "parse_file"]
