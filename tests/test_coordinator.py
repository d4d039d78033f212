from __future__ import annotations

import asyncio
import time
from pathlib import Path

from reclaim_mcp.config import ReclaimSettings
from reclaim_mcp.engine.runner import FakeEngineRunner
from reclaim_mcp.errors import ProcessExitedUnexpectedly
from reclaim_mcp.models import DeviceDescriptor
from reclaim_mcp.recovery.controller import RecoveryTaskController
from reclaim_mcp.recovery.coordinator import SessionCoordinator
from reclaim_mcp.recovery.events import Cancelled, Completed, Failed, LogChunk, ParserStalled, Progress
from reclaim_mcp.recovery.results import DirectoryResultEnumerator


def make_settings(tmp_path: Path, **overrides) -> ReclaimSettings:
    work_dir = tmp_path / "work"
    work_dir.mkdir(exist_ok=True)
    values = {
        "poll_interval": 0.02,
        "progress_throttle": 0.01,
        "finalize_grace": 0.05,
        "log_flush_interval": 0.02,
        "elevation_command": "",
        "work_dir": work_dir,
    }
    values.update(overrides)
    return ReclaimSettings(**values)


def make_coordinator(tmp_path: Path, runner=None, **overrides) -> SessionCoordinator:
    settings = make_settings(tmp_path, **overrides)
    controller = RecoveryTaskController(settings, runner=runner or FakeEngineRunner())
    return SessionCoordinator(controller, settings=settings)


def test_log_lines_are_batched_and_capped(tmp_path: Path) -> None:
    coordinator = make_coordinator(tmp_path, log_max_lines=3)

    coordinator.apply(LogChunk("one\ntwo"))
    coordinator.apply(LogChunk("three\nfour"))

    assert coordinator.log_lines == []
    assert coordinator.flush_logs() == ["one", "two", "three", "four"]
    assert coordinator.log_lines == ["two", "three", "four"]
    assert coordinator.flush_logs() == []


def test_display_percent_eases_towards_target_without_going_back(tmp_path: Path) -> None:
    coordinator = make_coordinator(tmp_path)

    coordinator.apply(Progress(files_found=3, speed_label="1.0 MB/s", percent=40.0, eta_seconds=120))
    first = coordinator.advance_display()
    second = coordinator.advance_display()

    assert 0 < first < second < 40.0

    coordinator.apply(Progress(files_found=3, speed_label="1.0 MB/s", percent=10.0, eta_seconds=100))
    assert coordinator.target_percent == 40.0

    for _ in range(100):
        coordinator.advance_display()
    assert coordinator.display_percent == 40.0
    assert coordinator.files_found == 3
    assert coordinator.eta_seconds == 100


def test_terminal_events_set_status(tmp_path: Path) -> None:
    coordinator = make_coordinator(tmp_path)

    coordinator.apply(ParserStalled(silent_seconds=121.0))
    assert coordinator.parser_warning == "No recognizable progress output for 121 seconds"

    coordinator.apply(Failed(ProcessExitedUnexpectedly(4)))
    snapshot = coordinator.snapshot()
    assert snapshot["status"] == "failed"
    assert snapshot["error"]["code"] == 4
    assert snapshot["outcome"]["type"] == "failed"

    coordinator.apply(Cancelled())
    assert coordinator.status == "cancelled"

    coordinator.apply(Completed(total_files=5, output_location=tmp_path))
    assert coordinator.status == "completed"
    assert coordinator.display_percent == 100.0


def test_run_enumerates_recovered_files(tmp_path: Path) -> None:
    destination = tmp_path / "out"
    (destination / "recup_dir.1").mkdir(parents=True)
    (destination / "recup_dir.1" / "f0001.jpg").write_bytes(b"\xff\xd8")
    sibling = tmp_path / "out.1"
    sibling.mkdir()
    (sibling / "f0002.mp4").write_bytes(b"\x00" * 8)

    runner = FakeEngineRunner(
        ["Pass 1 - Reading sector 50/100, 2 files found", "jpg: 1 recovered", "Recovery completed."],
        exit_code=0,
    )
    coordinator = make_coordinator(tmp_path, runner=runner)

    snapshot = asyncio.run(coordinator.run(DeviceDescriptor(id="disk-fixture"), destination))

    assert snapshot["status"] == "completed"
    assert snapshot["files_found"] == 2
    assert snapshot["recovered"] == {"count": 2, "by_category": {"image": 1, "video": 1}}
    assert snapshot["percent"] == 100.0
    assert "Recovery completed." in snapshot["log_tail"]
    assert snapshot["finished_at"] is not None
    assert not coordinator.running


class SlowEnumerator(DirectoryResultEnumerator):
    def enumerate(self, destination: Path):
        time.sleep(0.3)
        return super().enumerate(destination)


def test_next_session_does_not_inherit_previous_results(tmp_path: Path) -> None:
    first = tmp_path / "first"
    first.mkdir()
    (first / "f0001.jpg").write_bytes(b"\xff\xd8")
    second = tmp_path / "second"
    settings = make_settings(tmp_path)
    runner = FakeEngineRunner(["Pass 1 - Reading sector 50/100, 1 files found"], exit_code=0, hold_seconds=1.0)
    controller = RecoveryTaskController(settings, runner=runner)
    coordinator = SessionCoordinator(controller, enumerator=SlowEnumerator(), settings=settings)
    device = DeviceDescriptor(id="disk-fixture")

    async def scenario():
        await coordinator.start(device, first)
        while controller.active:
            await asyncio.sleep(0.01)
        started = await coordinator.start(device, second)
        await asyncio.sleep(0.2)
        during = coordinator.snapshot()
        ticking = coordinator._ticker is not None and not coordinator._ticker.done()
        coordinator.cancel()
        await coordinator.wait()
        await controller.wait_closed()
        return started, during, ticking

    started, during, ticking = asyncio.run(scenario())

    for snapshot in (started, during):
        assert snapshot["status"] == "running"
        assert snapshot["destination"] == str(second)
        assert snapshot["recovered"]["count"] == 0
        assert snapshot["finished_at"] is None
        assert snapshot["outcome"] is None
    assert ticking is True
    assert "Pass 1 - Reading sector 50/100, 1 files found" in during["log_tail"]
    assert coordinator.status == "cancelled"
    assert coordinator.outcome == {"type": "cancelled"}
