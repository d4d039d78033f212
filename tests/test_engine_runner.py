from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path

import pytest

from reclaim_mcp.engine import runner as runner_module
from reclaim_mcp.engine.runner import (
    DRIVER_MODULE,
    EngineExecutionResult,
    EngineRunner,
    FakeEngineRunner,
    resolve_binary,
)
from reclaim_mcp.engine.utils import sanitize_environment
from reclaim_mcp.errors import BinaryNotFound
from reclaim_mcp.models import ScanOptions
from reclaim_mcp.navigation import generate


def write_script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(0o755)
    return path


def test_resolve_binary_prefers_explicit_path(tmp_path: Path) -> None:
    engine = write_script(tmp_path / "photorec", "exit 0\n")

    assert resolve_binary("photorec", engine) == engine
    with pytest.raises(BinaryNotFound):
        resolve_binary("photorec", tmp_path / "missing")


def test_resolve_binary_searches_path_then_prefixes(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    on_path = tmp_path / "bin"
    on_path.mkdir()
    write_script(on_path / "testdisk", "exit 0\n")
    prefix = tmp_path / "prefix"
    prefix.mkdir()
    write_script(prefix / "photorec", "exit 0\n")

    monkeypatch.setenv("PATH", str(on_path))
    monkeypatch.setattr(runner_module, "STANDARD_PREFIXES", (prefix,))

    assert resolve_binary("testdisk") == on_path / "testdisk"
    assert resolve_binary("photorec") == prefix / "photorec"
    with pytest.raises(BinaryNotFound) as excinfo:
        resolve_binary("qphotorec")
    assert excinfo.value.name == "qphotorec"


def test_driver_command_uses_elevation(tmp_path: Path) -> None:
    engine = write_script(tmp_path / "photorec", "exit 0\n")
    runner = EngineRunner(engine, elevation=["sudo", "-n"], python="/usr/bin/python3")

    command = runner.driver_command(tmp_path / "navigation.yaml")

    assert command == ["sudo", "-n", "/usr/bin/python3", "-m", DRIVER_MODULE, str(tmp_path / "navigation.yaml")]


def test_run_batch_collects_output(tmp_path: Path) -> None:
    engine = write_script(tmp_path / "testdisk", 'echo "args: $@"\npwd\nexit 4\n')
    runner = EngineRunner(engine, name="testdisk")

    result = asyncio.run(runner.run_batch("/log", "/list", cwd=tmp_path))

    assert result.returncode == 4
    assert not result.ok
    assert "args: /log /list" in result.stdout
    assert str(tmp_path.resolve()) in result.stdout


def test_cancel_batch_without_process() -> None:
    runner = FakeEngineRunner()

    assert runner.cancel_batch() is False


def test_launch_runs_driver_without_elevation(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYTHONPATH", str(Path(__file__).resolve().parents[1] / "src"))
    engine = write_script(tmp_path / "photorec", 'printf "Recovery completed\\n"\nexit 0\n')
    log_path = tmp_path / "session.log"
    script = generate(engine, tmp_path / "out", "/dev/sdb", log_path, ScanOptions())
    script_path = script.write(tmp_path / "navigation.yaml")
    runner = EngineRunner(engine, python=sys.executable)

    async def scenario() -> int:
        process = await runner.launch(script_path)
        return await process.wait()

    returncode = asyncio.run(scenario())

    assert returncode == 0
    log_text = log_path.read_text(encoding="utf-8", errors="replace")
    assert "Recovery completed" in log_text
    assert log_text.rstrip().endswith("MARKER:0")


def test_fake_runner_plays_transcript_and_sentinel(tmp_path: Path) -> None:
    log_path = tmp_path / "session.log"
    script = generate(Path("/tmp/fake-photorec"), tmp_path / "out", "/dev/sdb", log_path, ScanOptions())
    script_path = script.write(tmp_path / "navigation.yaml")
    fake = FakeEngineRunner(["jpg: 1 recovered"], exit_code=1)

    async def scenario() -> None:
        process = await fake.launch(script_path)
        await process.wait()

    asyncio.run(scenario())

    assert log_path.read_text(encoding="utf-8").splitlines()[-1] == "MARKER:1"
    assert fake.launched == [script_path]


def test_fake_runner_batch_results(tmp_path: Path) -> None:
    fake = FakeEngineRunner(
        batch_results=[EngineExecutionResult(args=("/list",), returncode=2, stdout="", stderr="boom")],
        batch_log="log body",
    )

    result = asyncio.run(fake.run_batch("/list", cwd=tmp_path))

    assert result.returncode == 2
    assert fake.batch_invocations == [("/list",)]
    assert (tmp_path / "testdisk.log").read_text(encoding="utf-8") == "log body"


def test_sanitize_environment_forces_c_locale(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PYTHONSTARTUP", "/tmp/startup.py")
    monkeypatch.setenv("LANG", "fr_FR.UTF-8")

    env = sanitize_environment({"EXTRA": "1"})

    assert "PYTHONSTARTUP" not in env
    assert env["LANG"] == "C"
    assert env["LC_ALL"] == "C"
    assert env["EXTRA"] == "1"


def test_terminate_goes_through_elevation(tmp_path: Path) -> None:
    engine = write_script(tmp_path / "photorec", "exit 0\n")
    recorded = tmp_path / "elevation-argv.txt"
    elevate = write_script(tmp_path / "elevate", f'echo "$@" >> "{recorded}"\nexit 0\n')
    runner = EngineRunner(engine, elevation=[str(elevate)])
    script_path = tmp_path / "navigation.yaml"

    async def scenario() -> int | None:
        process = await asyncio.create_subprocess_exec(sys.executable, "-c", "import time; time.sleep(30)")
        try:
            await runner.terminate(process, script_path)
            await asyncio.sleep(0.1)
            return process.returncode
        finally:
            process.kill()
            await process.wait()

    returncode = asyncio.run(scenario())

    assert recorded.read_text(encoding="utf-8").split() == ["pkill", "-TERM", "-f", str(script_path)]
    assert returncode is None


def test_terminate_without_elevation_signals_directly(tmp_path: Path) -> None:
    engine = write_script(tmp_path / "photorec", "exit 0\n")
    runner = EngineRunner(engine)

    async def scenario() -> int:
        process = await asyncio.create_subprocess_exec(sys.executable, "-c", "import time; time.sleep(30)")
        await runner.terminate(process, tmp_path / "navigation.yaml")
        return await asyncio.wait_for(process.wait(), timeout=5)

    assert asyncio.run(scenario()) == -signal.SIGTERM
