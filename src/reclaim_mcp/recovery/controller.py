"""Task controller supervising one recovery engine session at a time."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable

from ..config import ReclaimSettings, get_settings
from ..engine.runner import EngineRunner
from ..errors import (
    BinaryNotFound,
    DeviceNotFound,
    OutputDirectoryNotWritable,
    RecoveryError,
    SessionActiveError,
)
from ..models import DeviceDescriptor, ScanOptions
from ..navigation.script import generate
from ..parsing.progress import ProgressRecord, parse_line
from ..parsing.terminal import sanitize, split_partial_escape
from ..profiles import EngineProfile
from .classify import classify, mentions_permission_problem, read_sentinel
from .events import Cancelled, Completed, Failed, LogChunk, ParserStalled, Progress, RecoveryEvent

logger = logging.getLogger(__name__)

TEARDOWN_TIMEOUT = 10.0

_END_OF_STREAM = object()


class ControllerState(str, Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    RUNNING = "running"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def format_speed(sectors: int, seconds: int) -> str:
    """Scan speed in MB/s from sectors read and elapsed seconds."""

    if seconds <= 0 or sectors <= 0:
        return "n/a"
    megabytes_per_second = (sectors * 512 / seconds) / 1_048_576
    return f"{megabytes_per_second:.1f} MB/s"


@dataclass(slots=True)
class Session:
    """Resources owned by one recovery run."""

    device: DeviceDescriptor
    destination: Path
    options: ScanOptions
    work_dir: Path
    log_path: Path
    script_path: Path
    record: ProgressRecord = field(default_factory=ProgressRecord)
    process: asyncio.subprocess.Process | None = None
    exit_code: int | None = None
    permission_denied: bool = False
    offset: int = 0
    raw_tail: str = ""
    line_tail: str = ""
    last_line: str | None = None
    last_progress_at: float = float("-inf")
    last_recognized_at: float = 0.0
    stall_reported: bool = False
    percent: float = 0.0
    decoder: codecs.IncrementalDecoder = field(
        default_factory=lambda: codecs.getincrementaldecoder("utf-8")(errors="replace")
    )


class RecoveryEventStream:
    """Ordered, unbounded stream of events for one session."""

    def __init__(self, queue: asyncio.Queue) -> None:
        self._queue = queue

    def __aiter__(self) -> "RecoveryEventStream":
        return self

    async def __anext__(self) -> RecoveryEvent:
        event = await self._queue.get()
        if event is _END_OF_STREAM:
            raise StopAsyncIteration
        return event


class RecoveryTaskController:
    """Launch, observe and finalize recovery engine sessions.

    One controller owns at most one session. Events for a session are produced
    only from the event loop the controller runs on: by the log poller, by the
    exit watcher and by :meth:`cancel`. Exactly one terminal event
    (``Completed``, ``Failed`` or ``Cancelled``) ends every stream.
    """

    def __init__(
        self,
        settings: ReclaimSettings | None = None,
        *,
        runner: EngineRunner | None = None,
        profile: EngineProfile | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._runner = runner
        self._profile = profile
        self._clock = clock or time.monotonic
        self._state = ControllerState.IDLE
        self._session: Session | None = None
        self._queue: asyncio.Queue | None = None
        self._closed = True
        self._poller: asyncio.Task | None = None
        self._waiter: asyncio.Task | None = None
        self._teardowns: set[asyncio.Task] = set()

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def active(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> Session | None:
        return self._session

    async def start(
        self,
        device: DeviceDescriptor,
        destination: Path,
        options: ScanOptions | None = None,
    ) -> RecoveryEventStream:
        """Start a session and return its event stream.

        Launch failures are reported on the stream as a single ``Failed`` event.
        Raises :class:`SessionActiveError` if a session is already running.
        """

        if self._session is not None:
            raise SessionActiveError("A recovery session is already active")

        self._queue = asyncio.Queue()
        self._closed = False
        stream = RecoveryEventStream(self._queue)
        self._state = ControllerState.LAUNCHING
        options = options or ScanOptions()

        try:
            runner = self._resolve_runner()
            session = self._prepare(runner, device, Path(destination), options)
        except RecoveryError as exc:
            logger.warning("Recovery launch failed", extra={"device": device.id, "error": str(exc)})
            self._state = ControllerState.FAILED
            self._emit(Failed(exc))
            self._close_stream()
            return stream

        self._session = session
        logger.info(
            "Starting recovery session",
            extra={"device": device.id, "destination": str(session.destination), "work_dir": str(session.work_dir)},
        )

        try:
            process = await runner.launch(session.script_path)
        except OSError as exc:
            logger.warning("Could not spawn the recovery engine", extra={"error": str(exc)})
            if self._session is session:
                self._finish(session, Failed(BinaryNotFound(runner.name)), ControllerState.FAILED)
            else:
                self._cleanup(session)
            return stream

        session.process = process
        if self._session is not session:
            # Cancelled while the process was being spawned.
            await self._teardown(runner, session)
            return stream

        self._state = ControllerState.RUNNING
        self._poller = asyncio.create_task(self._poll_loop(session))
        self._waiter = asyncio.create_task(self._watch_exit(session))
        return stream

    def cancel(self) -> bool:
        """Cancel the active session.

        ``Cancelled`` is emitted immediately and nothing is emitted after it;
        the engine is stopped and the session files are removed in the
        background. Returns ``False`` when no session is active.
        """

        session = self._session
        if session is None:
            return False

        self._session = None
        self._stop_poller()
        self._state = ControllerState.CANCELLED
        self._emit(Cancelled())
        self._close_stream()
        logger.info("Recovery session cancelled", extra={"device": session.device.id})

        if session.process is not None and self._runner is not None:
            task = asyncio.get_running_loop().create_task(self._teardown(self._runner, session))
            self._teardowns.add(task)
            task.add_done_callback(self._teardowns.discard)
        return True

    async def wait_closed(self) -> None:
        """Wait for background teardown of cancelled sessions."""

        if self._teardowns:
            await asyncio.gather(*list(self._teardowns), return_exceptions=True)

    def _resolve_runner(self) -> EngineRunner:
        if self._runner is None:
            explicit = Path(self._settings.photorec_path) if self._settings.photorec_path else None
            self._runner = EngineRunner(explicit, name="photorec", elevation=self._settings.elevation())
        return self._runner

    def _prepare(
        self,
        runner: EngineRunner,
        device: DeviceDescriptor,
        destination: Path,
        options: ScanOptions,
    ) -> Session:
        if device.id.startswith("/") and not Path(device.id).exists():
            raise DeviceNotFound(device.id)

        destination = destination.expanduser()
        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputDirectoryNotWritable(destination) from exc
        if not os.access(destination, os.W_OK):
            raise OutputDirectoryNotWritable(destination)

        base = self._settings.work_dir
        try:
            work_dir = Path(tempfile.mkdtemp(prefix="reclaim-", dir=str(base) if base else None))
            log_path = work_dir / "session.log"
            log_path.touch()
            script = generate(
                runner.executable,
                destination,
                device.id,
                log_path,
                options,
                profile=self._profile,
                filesystem_label=device.filesystem_label,
                working_directory=work_dir,
                timeout_seconds=self._settings.navigation_timeout,
            )
            script_path = script.write(work_dir / "navigation.yaml")
        except OSError as exc:
            raise OutputDirectoryNotWritable(base or Path(tempfile.gettempdir())) from exc

        now = self._clock()
        return Session(
            device=device,
            destination=destination,
            options=options,
            work_dir=work_dir,
            log_path=log_path,
            script_path=script_path,
            last_recognized_at=now,
        )

    async def _poll_loop(self, session: Session) -> None:
        while self._session is session:
            await asyncio.sleep(self._settings.poll_interval)
            if self._session is not session:
                return
            self._poll(session)

    def _poll(self, session: Session, *, final: bool = False) -> None:
        try:
            with open(session.log_path, "rb") as handle:
                handle.seek(session.offset)
                data = handle.read()
        except FileNotFoundError:
            return
        session.offset += len(data)

        text = session.decoder.decode(data, final=final)
        text, session.raw_tail = split_partial_escape(session.raw_tail + text)
        if final:
            text, session.raw_tail = text + session.raw_tail, ""
        lines = (session.line_tail + sanitize(text)).split("\n")
        session.line_tail = "" if final else lines.pop()

        now = self._clock()
        fresh: list[str] = []
        seen_output = False
        recognized = False
        for raw_line in lines:
            line = raw_line.rstrip()
            if not line.strip():
                continue
            code = read_sentinel(line)
            if code is not None:
                session.exit_code = code
                continue
            seen_output = True
            if mentions_permission_problem(line):
                session.permission_denied = True
            if parse_line(line, session.record) is not None:
                recognized = True
            if line != session.last_line:
                fresh.append(line)
                session.last_line = line

        if fresh:
            self._emit(LogChunk("\n".join(fresh)))

        if recognized:
            session.last_recognized_at = now
            session.stall_reported = False
        elif seen_output and not session.stall_reported:
            silent = now - session.last_recognized_at
            if silent >= self._settings.stall_warning_seconds:
                session.stall_reported = True
                logger.warning(
                    "Engine output is not being recognized",
                    extra={"silent_seconds": round(silent, 1), "device": session.device.id},
                )
                self._emit(ParserStalled(silent_seconds=silent))

        if seen_output and now - session.last_progress_at >= self._settings.progress_throttle:
            session.last_progress_at = now
            self._emit(self._progress_event(session))

    def _progress_event(self, session: Session) -> Progress:
        record = session.record
        fraction = record.fraction()
        percent = fraction * 100 if fraction is not None else 0.0
        session.percent = max(session.percent, percent)
        return Progress(
            files_found=record.files_found,
            speed_label=format_speed(record.current_sector, record.elapsed_seconds),
            percent=session.percent,
            eta_seconds=record.estimated_seconds or None,
        )

    async def _watch_exit(self, session: Session) -> None:
        assert session.process is not None
        await session.process.wait()
        if self._session is not session:
            return

        self._state = ControllerState.FINALIZING
        await asyncio.sleep(self._settings.finalize_grace)
        if self._session is not session:
            return

        self._stop_poller()
        self._poll(session, final=True)
        outcome = classify(
            session.exit_code,
            session.record,
            permission_denied=session.permission_denied,
            output_location=session.destination,
        )
        logger.info(
            "Recovery session finished",
            extra={
                "device": session.device.id,
                "exit_code": session.exit_code,
                "process_returncode": session.process.returncode,
                "files_found": session.record.files_found,
                "outcome": type(outcome).__name__,
            },
        )
        state = {
            Completed: ControllerState.COMPLETED,
            Failed: ControllerState.FAILED,
            Cancelled: ControllerState.CANCELLED,
        }[type(outcome)]
        self._finish(session, outcome, state)

    def _finish(self, session: Session, outcome: RecoveryEvent, state: ControllerState) -> None:
        self._session = None
        self._stop_poller()
        self._cleanup(session)
        self._state = state
        self._emit(outcome)
        self._close_stream()

    async def _teardown(self, runner: EngineRunner, session: Session) -> None:
        process = session.process
        if process is not None and process.returncode is None:
            try:
                await runner.terminate(process, session.script_path)
            except OSError as exc:
                logger.warning("Could not signal the recovery engine", extra={"error": str(exc)})
            try:
                await asyncio.wait_for(process.wait(), timeout=TEARDOWN_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("Recovery engine did not exit after cancellation", extra={"pid": process.pid})
        self._cleanup(session)

    def _stop_poller(self) -> None:
        if self._poller is not None and not self._poller.done():
            self._poller.cancel()
        self._poller = None

    def _cleanup(self, session: Session) -> None:
        shutil.rmtree(session.work_dir, ignore_errors=True)

    def _emit(self, event: RecoveryEvent) -> None:
        if self._closed or self._queue is None:
            return
        self._queue.put_nowait(event)

    def _close_stream(self) -> None:
        if self._closed or self._queue is None:
            return
        self._closed = True
        self._queue.put_nowait(_END_OF_STREAM)


__all__ = [
    "ControllerState",
    "RecoveryEventStream",
    "RecoveryTaskController",
    "Session",
    "format_speed",
]
