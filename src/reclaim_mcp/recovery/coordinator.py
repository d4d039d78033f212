"""Consumer-side state for recovery sessions."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import ReclaimSettings, get_settings
from ..errors import RecoveryError, SessionActiveError
from ..models import DeviceDescriptor, ScanOptions
from .controller import RecoveryEventStream, RecoveryTaskController
from .events import (
    TERMINAL_EVENTS,
    Cancelled,
    Completed,
    Failed,
    LogChunk,
    ParserStalled,
    Progress,
    RecoveryEvent,
    describe,
)
from .results import DirectoryResultEnumerator, RecoveredFile

logger = logging.getLogger(__name__)

# Share of the remaining gap closed by each display tick.
DISPLAY_EASING = 0.25
_DISPLAY_SNAP = 0.05


class SessionCoordinator:
    """Fold a controller's event stream into state a client can render.

    Log text is buffered and flushed every ``log_flush_interval`` seconds into a
    window of the most recent ``log_max_lines`` lines. The displayed percentage
    eases towards the last reported one on the same tick and never moves
    backwards. Recovered files are listed once a session completes.
    """

    def __init__(
        self,
        controller: RecoveryTaskController,
        *,
        enumerator: DirectoryResultEnumerator | None = None,
        settings: ReclaimSettings | None = None,
    ) -> None:
        self._controller = controller
        self._enumerator = enumerator or DirectoryResultEnumerator()
        self._settings = settings or get_settings()
        self._log_lines: deque[str] = deque(maxlen=self._settings.log_max_lines)
        self._pending_lines: list[str] = []
        self._consumer: asyncio.Task | None = None
        self._ticker: asyncio.Task | None = None
        self._generation = 0
        self._reset()

    def _reset(self) -> None:
        self.status = "idle"
        self.device: DeviceDescriptor | None = None
        self.destination: Path | None = None
        self.files_found = 0
        self.speed_label = ""
        self.eta_seconds: int | None = None
        self.target_percent = 0.0
        self.display_percent = 0.0
        self.last_error: RecoveryError | None = None
        self.parser_warning: str | None = None
        self.outcome: dict[str, object] | None = None
        self.recovered_files: list[RecoveredFile] = []
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None
        self._log_lines.clear()
        self._pending_lines.clear()

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    @property
    def log_lines(self) -> list[str]:
        return list(self._log_lines)

    async def start(
        self,
        device: DeviceDescriptor,
        destination: Path,
        options: ScanOptions | None = None,
    ) -> dict[str, Any]:
        """Start a session and consume its events in the background."""

        if self._controller.active:
            raise SessionActiveError("A recovery session is already active")
        if self._consumer is not None and not self._consumer.done():
            # The previous session is still listing its recovered files.
            await asyncio.wait({self._consumer})

        stream = await self._controller.start(device, destination, options)
        self._reset()
        self._generation += 1
        self.status = "running"
        self.device = device
        self.destination = Path(destination)
        self.started_at = datetime.now(timezone.utc)
        self._ticker = asyncio.create_task(self._tick())
        self._consumer = asyncio.create_task(self._consume(stream, self._generation, self._ticker))
        return self.snapshot()

    async def run(
        self,
        device: DeviceDescriptor,
        destination: Path,
        options: ScanOptions | None = None,
    ) -> dict[str, Any]:
        """Run a session to its end and return the final snapshot."""

        await self.start(device, destination, options)
        await self.wait()
        return self.snapshot()

    async def wait(self) -> None:
        if self._consumer is not None:
            await self._consumer

    def cancel(self) -> bool:
        return self._controller.cancel()

    def flush_logs(self) -> list[str]:
        """Move buffered log lines into the visible window."""

        flushed, self._pending_lines = self._pending_lines, []
        self._log_lines.extend(flushed)
        return flushed

    def advance_display(self) -> float:
        gap = self.target_percent - self.display_percent
        if gap <= _DISPLAY_SNAP:
            self.display_percent = max(self.display_percent, self.target_percent)
        else:
            self.display_percent += gap * DISPLAY_EASING
        return self.display_percent

    def apply(self, event: RecoveryEvent) -> None:
        """Fold one event into the coordinator state."""

        if isinstance(event, LogChunk):
            self._pending_lines.extend(event.text.splitlines())
        elif isinstance(event, Progress):
            self.files_found = event.files_found
            self.speed_label = event.speed_label
            self.eta_seconds = event.eta_seconds
            self.target_percent = max(self.target_percent, min(event.percent, 100.0))
        elif isinstance(event, ParserStalled):
            self.parser_warning = (
                f"No recognizable progress output for {event.silent_seconds:.0f} seconds"
            )
        elif isinstance(event, Completed):
            self.status = "completed"
            self.files_found = event.total_files
            self.target_percent = self.display_percent = 100.0
        elif isinstance(event, Failed):
            self.status = "failed"
            self.last_error = event.error
        elif isinstance(event, Cancelled):
            self.status = "cancelled"

        if isinstance(event, TERMINAL_EVENTS):
            self.outcome = describe(event)

    async def _consume(self, stream: RecoveryEventStream, generation: int, ticker: asyncio.Task) -> None:
        try:
            async for event in stream:
                if generation != self._generation:
                    return
                self.apply(event)
                if isinstance(event, Completed):
                    await self._enumerate(event.output_location, generation)
        finally:
            ticker.cancel()
            if self._ticker is ticker:
                self._ticker = None
            if generation == self._generation:
                self.flush_logs()
                self.finished_at = datetime.now(timezone.utc)
                logger.info(
                    "Recovery session ended",
                    extra={"status": self.status, "files_found": self.files_found},
                )

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._settings.log_flush_interval)
            self.flush_logs()
            self.advance_display()

    async def _enumerate(self, destination: Path, generation: int) -> None:
        try:
            files = await asyncio.to_thread(self._enumerator.enumerate, destination)
        except OSError as exc:
            logger.warning(
                "Could not list recovered files",
                extra={"destination": str(destination), "error": str(exc)},
            )
            return
        if generation != self._generation:
            return
        self.recovered_files = files
        if files:
            self.files_found = len(files)

    def snapshot(self) -> dict[str, Any]:
        categories: dict[str, int] = {}
        for item in self.recovered_files:
            categories[item.category] = categories.get(item.category, 0) + 1

        return {
            "status": self.status,
            "device": self.device.id if self.device else None,
            "destination": str(self.destination) if self.destination else None,
            "files_found": self.files_found,
            "speed": self.speed_label,
            "eta_seconds": self.eta_seconds,
            "percent": round(self.display_percent, 2),
            "target_percent": round(self.target_percent, 2),
            "error": self.last_error.as_dict() if self.last_error else None,
            "parser_warning": self.parser_warning,
            "outcome": self.outcome,
            "recovered": {
                "count": len(self.recovered_files),
                "by_category": categories,
            },
            "log_tail": self.log_lines[-20:],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


__all__ = ["DISPLAY_EASING", "SessionCoordinator"]
