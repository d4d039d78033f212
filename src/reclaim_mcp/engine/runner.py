"""Async launcher for the recovery engines."""

from __future__ import annotations

import asyncio
import shutil
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from ..errors import BinaryNotFound
from ..navigation.script import NavigationScript
from .utils import sanitize_environment

DRIVER_MODULE = "reclaim_mcp.navigation.driver"

STANDARD_PREFIXES = (
    Path("/usr/local/bin"),
    Path("/opt/homebrew/bin"),
    Path("/usr/sbin"),
    Path("/usr/bin"),
)


@dataclass(slots=True)
class EngineExecutionResult:
    """Holds the outcome of a batch engine invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def resolve_binary(name: str, explicit: Path | None = None) -> Path:
    """Locate an engine binary: explicit path, then PATH, then standard prefixes."""

    if explicit is not None:
        candidate = Path(explicit)
        if candidate.exists() and candidate.is_file():
            return candidate
        raise BinaryNotFound(name)

    binary = shutil.which(name)
    if binary is not None:
        return Path(binary)
    for prefix in STANDARD_PREFIXES:
        candidate = prefix / name
        if candidate.is_file():
            return candidate
    raise BinaryNotFound(name)


class EngineRunner:
    """Launch an engine, elevated, either under a navigation script or in batch mode."""

    def __init__(
        self,
        executable: Path | None = None,
        *,
        name: str = "photorec",
        elevation: Sequence[str] = (),
        python: str | None = None,
    ) -> None:
        self.name = name
        self._executable_path = resolve_binary(name, executable)
        self._elevation = list(elevation)
        self._python = python or sys.executable
        self._batch_process: asyncio.subprocess.Process | None = None

    @property
    def executable(self) -> Path:
        return self._executable_path

    @property
    def elevation(self) -> list[str]:
        return list(self._elevation)

    def driver_command(self, script_path: Path) -> list[str]:
        return [*self._elevation, self._python, "-m", DRIVER_MODULE, str(script_path)]

    async def launch(self, script_path: Path) -> asyncio.subprocess.Process:
        """Start the navigation driver for ``script_path`` and return the process."""

        return await asyncio.create_subprocess_exec(
            *self.driver_command(script_path),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            env=sanitize_environment(),
            start_new_session=True,
        )

    async def terminate(self, process: asyncio.subprocess.Process, script_path: Path) -> None:
        """Ask the driver to stop, through the same elevation path used to launch it."""

        if not self._elevation:
            try:
                process.send_signal(signal.SIGTERM)
            except ProcessLookupError:
                pass
            return

        killer = await asyncio.create_subprocess_exec(
            *self._elevation,
            "pkill",
            "-TERM",
            "-f",
            str(script_path),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        await killer.wait()

    async def run_batch(self, *args: str, cwd: Path | None = None) -> EngineExecutionResult:
        """Run the engine non-interactively and collect its output."""

        cmd = [*self._elevation, str(self._executable_path), *args]
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=sanitize_environment(),
            cwd=str(cwd) if cwd is not None else None,
            start_new_session=True,
        )
        self._batch_process = process
        try:
            stdout_bytes, stderr_bytes = await process.communicate()
        finally:
            self._batch_process = None
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return EngineExecutionResult(args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr)

    def cancel_batch(self) -> bool:
        """Signal a running batch invocation; returns whether one was running."""

        process = self._batch_process
        if process is None or process.returncode is not None:
            return False
        try:
            process.send_signal(signal.SIGTERM)
        except ProcessLookupError:
            return False
        return True


_PLAYBACK_PROGRAM = """
import signal, sys, time
log_path, prefix, code = sys.argv[1:4]
delay, hold = float(sys.argv[4]), float(sys.argv[5])

def finish(value):
    if value != "none":
        with open(log_path, "a") as log:
            log.write("\\n%s:%s\\n" % (prefix, value))
    sys.exit(0)

signal.signal(signal.SIGTERM, lambda *_: finish("143"))
for line in sys.argv[6:]:
    with open(log_path, "a") as log:
        log.write(line + "\\n")
    time.sleep(delay)
time.sleep(hold)
finish(code)
"""


class FakeEngineRunner(EngineRunner):
    """Test double that plays a captured transcript into the session log."""

    def __init__(  # type: ignore[override]
        self,
        transcript: Iterable[str] = (),
        *,
        exit_code: int | None = 0,
        line_delay: float = 0.0,
        hold_seconds: float = 0.0,
        batch_results: Iterable[EngineExecutionResult] | None = None,
        batch_log: str | None = None,
    ) -> None:
        self.name = "photorec"
        self._executable_path = Path("/tmp/fake-photorec")
        self._elevation = []
        self._python = sys.executable
        self._batch_process = None
        self._transcript = list(transcript)
        self._exit_code = exit_code
        self._line_delay = line_delay
        self._hold_seconds = hold_seconds
        self._batch_results = list(batch_results or [])
        self._batch_log = batch_log
        self.launched: list[Path] = []
        self.terminated: list[Path] = []
        self.batch_invocations: list[tuple[str, ...]] = []

    async def launch(self, script_path: Path) -> asyncio.subprocess.Process:  # type: ignore[override]
        script = NavigationScript.load(script_path)
        self.launched.append(Path(script_path))
        code = "none" if self._exit_code is None else str(self._exit_code)
        return await asyncio.create_subprocess_exec(
            self._python,
            "-c",
            _PLAYBACK_PROGRAM,
            str(script.log_path),
            script.sentinel_prefix,
            code,
            str(self._line_delay),
            str(self._hold_seconds),
            *self._transcript,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )

    async def terminate(self, process: asyncio.subprocess.Process, script_path: Path) -> None:  # type: ignore[override]
        self.terminated.append(Path(script_path))
        await super().terminate(process, script_path)

    async def run_batch(self, *args: str, cwd: Path | None = None) -> EngineExecutionResult:  # type: ignore[override]
        self.batch_invocations.append(tuple(args))
        if self._batch_log is not None and cwd is not None:
            (Path(cwd) / "testdisk.log").write_text(self._batch_log, encoding="utf-8")
        if self._batch_results:
            return self._batch_results.pop(0)
        return EngineExecutionResult(args=tuple(args), returncode=0, stdout="", stderr="")


__all__ = [
    "DRIVER_MODULE",
    "EngineExecutionResult",
    "EngineRunner",
    "FakeEngineRunner",
    "STANDARD_PREFIXES",
    "resolve_binary",
]
