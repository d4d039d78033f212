from __future__ import annotations

from pathlib import Path

from reclaim_mcp.errors import InsufficientPermissions, ProcessExitedUnexpectedly
from reclaim_mcp.parsing.progress import ProgressRecord
from reclaim_mcp.recovery.classify import (
    TERMINATION_EXIT_CODE,
    classify,
    mentions_permission_problem,
    read_sentinel,
)
from reclaim_mcp.recovery.events import Cancelled, Completed, Failed, describe

OUT = Path("/tmp/recovered")


def run(exit_code, record=None, *, permission_denied=False):
    return classify(
        exit_code,
        record or ProgressRecord(),
        permission_denied=permission_denied,
        output_location=OUT,
    )


def test_missing_sentinel_is_cancelled() -> None:
    log = "PhotoRec 7.2\nPass 1 - Reading sector 10/100, 0 files found\n"

    assert read_sentinel(log) is None
    assert run(read_sentinel(log)) == Cancelled()


def test_read_sentinel_takes_last_marker_line() -> None:
    log = "MARKER:1\nsome output mentioning MARKER:5 inline\nMARKER:0\n"

    assert read_sentinel(log) == 0
    assert read_sentinel("the MARKER:143 is here") is None


def test_permission_problem_wins_over_exit_code() -> None:
    record = ProgressRecord(files_found=3)

    outcome = run(0, record, permission_denied=True)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, InsufficientPermissions)


def test_exit_zero_without_files_completes_with_zero_total() -> None:
    assert run(0) == Completed(total_files=0, output_location=OUT)


def test_recovered_files_outrank_nonzero_exit_code() -> None:
    assert run(1, ProgressRecord(files_found=7)) == Completed(total_files=7, output_location=OUT)
    assert run(1, ProgressRecord(completed=True)) == Completed(total_files=0, output_location=OUT)
    assert run(TERMINATION_EXIT_CODE, ProgressRecord(files_found=2)).total_files == 2


def test_termination_code_is_cancelled() -> None:
    assert TERMINATION_EXIT_CODE == 143
    assert run(143) == Cancelled()


def test_other_codes_fail_with_raw_code() -> None:
    outcome = run(2)

    assert isinstance(outcome, Failed)
    assert isinstance(outcome.error, ProcessExitedUnexpectedly)
    assert outcome.error.code == 2
    assert "2" in outcome.message
    assert describe(outcome)["error"] == {
        "kind": "process_exited_unexpectedly",
        "message": "The recovery engine exited unexpectedly with code 2.",
        "code": 2,
    }


def test_permission_markers() -> None:
    assert mentions_permission_problem("open(/dev/sdb): Permission denied")
    assert mentions_permission_problem("No harddisk found")
    assert not mentions_permission_problem("jpg: 4 recovered")
