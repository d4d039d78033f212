"""Outcome classification for finished recovery sessions."""

from __future__ import annotations

import re
import signal
from pathlib import Path

from ..navigation.script import SENTINEL_PREFIX
from ..parsing.progress import ProgressRecord
from ..errors import InsufficientPermissions, ProcessExitedUnexpectedly
from .events import Cancelled, Completed, Failed

TERMINATION_EXIT_CODE = 128 + signal.SIGTERM

PERMISSION_MARKERS = (
    "permission denied",
    "operation not permitted",
    "you need to be root",
    "no harddisk found",
)


def _sentinel_pattern(prefix: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(prefix)}:(-?\d+)\s*$", re.MULTILINE)


def read_sentinel(text: str, *, prefix: str = SENTINEL_PREFIX) -> int | None:
    """Return the exit code from the last sentinel line in ``text``."""

    matches = _sentinel_pattern(prefix).findall(text)
    if not matches:
        return None
    return int(matches[-1])


def mentions_permission_problem(line: str) -> bool:
    lowered = line.lower()
    return any(marker in lowered for marker in PERMISSION_MARKERS)


def classify(
    exit_code: int | None,
    record: ProgressRecord,
    *,
    permission_denied: bool,
    output_location: Path,
) -> Completed | Failed | Cancelled:
    """Reconcile the recovered exit code with what the output showed.

    Evidence of recovered files outranks a non-zero exit code: the engine can
    exit non-zero after a harmless session-save prompt.
    """

    if exit_code is None:
        return Cancelled()
    if permission_denied:
        return Failed(InsufficientPermissions())
    if exit_code == 0 or record.completed or record.files_found > 0:
        return Completed(total_files=record.files_found, output_location=Path(output_location))
    if exit_code == TERMINATION_EXIT_CODE:
        return Cancelled()
    return Failed(ProcessExitedUnexpectedly(exit_code))


__all__ = [
    "PERMISSION_MARKERS",
    "TERMINATION_EXIT_CODE",
    "classify",
    "mentions_permission_problem",
    "read_sentinel",
]
