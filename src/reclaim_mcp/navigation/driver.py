"""Interpreter for navigation scripts.

This module is what the controller launches through the privilege-elevation
command::

    python -m reclaim_mcp.navigation.driver /tmp/session/navigation.yaml

It forks the engine on a pseudo-terminal, copies everything the engine draws
into the session log, answers prompts from the script's rule table and, once
the engine is gone, appends the ``MARKER:<exit-code>`` sentinel to the log.
"""

from __future__ import annotations

import argparse
import errno
import fcntl
import logging
import os
import pty
import select
import signal
import struct
import sys
import termios
import time
from pathlib import Path
from typing import BinaryIO, Callable

from ..parsing.terminal import sanitize, split_partial_escape
from .script import NavigationScript, NavigationScriptError

logger = logging.getLogger(__name__)

READ_SIZE = 4096
SELECT_TIMEOUT = 0.2
TERMINATE_GRACE_SECONDS = 5.0
EXEC_FAILED_CODE = 127
DRIVER_FAILED_CODE = 125
FILE_OPTIONS_NAME = "photorec.cfg"
SCREEN_ROWS, SCREEN_COLUMNS = 24, 80

_SCREEN_LIMIT = 16384


def exit_code_from_status(status: int) -> int:
    """Translate a wait status into a shell-style exit code (``128 + signal``)."""

    if os.WIFSIGNALED(status):
        return 128 + os.WTERMSIG(status)
    if os.WIFEXITED(status):
        return os.WEXITSTATUS(status)
    return 1


class NavigationDriver:
    """Drive one engine process to completion under a navigation script."""

    def __init__(
        self,
        script: NavigationScript,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.script = script
        self._clock = clock or time.monotonic
        self._pid: int | None = None
        self._fd: int | None = None
        self._status: int | None = None
        self._screen = ""
        self._pending = ""
        self._finishing = False
        self._timed_out = False
        self._kill_at: float | None = None
        self.responses: list[str] = []

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    def run(self) -> int:
        """Run the engine and return its exit code after writing the sentinel."""

        script = self.script
        script.working_directory.mkdir(parents=True, exist_ok=True)
        if script.file_options:
            (script.working_directory / FILE_OPTIONS_NAME).write_text(
                script.file_options_document(), encoding="utf-8"
            )

        exit_code = DRIVER_FAILED_CODE
        with open(script.log_path, "ab", buffering=0) as log:
            previous = signal.signal(signal.SIGTERM, self._on_terminate)
            try:
                self._spawn()
                self._pump(log)
                exit_code = self._reap()
            finally:
                signal.signal(signal.SIGTERM, previous)
                if self._status is None:
                    self._abandon_child()
                if self._fd is not None:
                    os.close(self._fd)
                    self._fd = None
                # Every exit path records a sentinel.
                log.write(f"\n{script.sentinel_line(exit_code)}\n".encode("utf-8"))

        logger.info(
            "Engine finished",
            extra={"exit_code": exit_code, "timed_out": self._timed_out, "responses": len(self.responses)},
        )
        return exit_code

    def _spawn(self) -> None:
        script = self.script
        pid, fd = pty.fork()
        if pid == 0:
            try:
                os.chdir(script.working_directory)
                os.environ.setdefault("TERM", "xterm")
                os.execv(str(script.engine), [str(script.engine), *script.args])
            except OSError as exc:
                os.write(2, f"Cannot start {script.engine}: {exc}\n".encode("utf-8"))
            os._exit(EXEC_FAILED_CODE)

        self._pid, self._fd = pid, fd
        winsize = struct.pack("HHHH", SCREEN_ROWS, SCREEN_COLUMNS, 0, 0)
        try:
            fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)
        except OSError:
            logger.debug("Could not set terminal size")

    def _pump(self, log: BinaryIO) -> None:
        script = self.script
        started = self._clock()
        deadline = started + script.timeout_seconds
        last_activity = started

        while True:
            now = self._clock()
            if now >= deadline and not self._timed_out:
                self._timed_out = True
                logger.warning("Navigation timeout reached", extra={"timeout": script.timeout_seconds})
                log.write(b"\nNavigation timeout reached, terminating engine\n")
                self._terminate_child(now)
            if self._kill_at is not None and now >= self._kill_at:
                self._signal_child(signal.SIGKILL)
                self._kill_at = None

            try:
                ready, _, _ = select.select([self._fd], [], [], SELECT_TIMEOUT)
            except InterruptedError:
                continue

            if not ready:
                if self._child_exited():
                    return
                if now - last_activity >= script.fallback_after_seconds and self._kill_at is None:
                    keys = script.quit_keys if self._finishing else script.fallback_keys
                    self._send(keys, "quit" if self._finishing else "fallback")
                    last_activity = now
                continue

            try:
                data = os.read(self._fd, READ_SIZE)
            except OSError as exc:
                # Linux reports EIO once the slave side is closed.
                if exc.errno == errno.EIO:
                    return
                raise
            if not data:
                return

            log.write(data)
            last_activity = self._clock()
            self._observe(data.decode("utf-8", errors="replace"))

    def _observe(self, text: str) -> None:
        complete, self._pending = split_partial_escape(self._pending + text)
        self._screen = (self._screen + sanitize(complete))[-_SCREEN_LIMIT:]
        rule = self.script.match(self._screen, finishing=self._finishing)
        if rule is None:
            return
        self._send(rule.keys, rule.name)
        self._screen = ""
        if rule.terminal:
            self._finishing = True

    def _send(self, keys: str, name: str) -> None:
        if not keys or self._fd is None:
            return
        try:
            os.write(self._fd, keys.encode("utf-8"))
        except OSError as exc:
            logger.debug("Failed to send keys", extra={"rule": name, "error": str(exc)})
            return
        self.responses.append(name)
        logger.debug("Answered prompt", extra={"rule": name})

    def _child_exited(self) -> bool:
        if self._pid is None or self._status is not None:
            return self._status is not None
        pid, status = os.waitpid(self._pid, os.WNOHANG)
        if pid == 0:
            return False
        self._status = status
        return True

    def _reap(self) -> int:
        if self._status is None and self._pid is not None:
            _, self._status = os.waitpid(self._pid, 0)
        return exit_code_from_status(self._status if self._status is not None else 0)

    def _signal_child(self, signum: int) -> None:
        if self._pid is None or self._status is not None:
            return
        try:
            os.kill(self._pid, signum)
        except ProcessLookupError:
            pass

    def _abandon_child(self) -> None:
        if self._pid is None:
            return
        self._signal_child(signal.SIGKILL)
        try:
            _, self._status = os.waitpid(self._pid, 0)
        except ChildProcessError:
            pass

    def _terminate_child(self, now: float) -> None:
        self._signal_child(signal.SIGTERM)
        self._kill_at = now + TERMINATE_GRACE_SECONDS

    def _on_terminate(self, signum, frame) -> None:  # noqa: ARG002 - signal handler signature
        logger.info("Termination requested, forwarding to engine")
        self._terminate_child(self._clock())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Drive the recovery engine with a navigation script")
    parser.add_argument("script", type=Path, help="Path to the navigation script (YAML)")
    parser.add_argument("--verbose", action="store_true", help="Log prompt responses to stderr")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        script = NavigationScript.load(args.script)
    except NavigationScriptError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    return NavigationDriver(script).run()


if __name__ == "__main__":
    raise SystemExit(main())
