from __future__ import annotations

import textwrap

from reclaim_mcp.parsing.progress import LineKind, ProgressRecord, parse_chunk, parse_line


def test_recovery_scenario_builds_expected_record() -> None:
    record = ProgressRecord()

    assert parse_line("Pass 1 - Reading sector 32768/124735488, 14 files found", record) == LineKind.SECTOR
    assert parse_line("jpg: 14 recovered", record) == LineKind.CATEGORY
    assert parse_line("Recovery completed.", record) == LineKind.COMPLETION

    assert record.current_sector == 32768
    assert record.total_sectors == 124735488
    assert record.files_found == 14
    assert record.recovered_by_category["jpg"] == 14
    assert record.completed is True


def test_sector_line_tolerates_missing_padding() -> None:
    record = ProgressRecord()

    parse_line("Pass 2 -Reading sector12/100,3 files found", record)

    assert (record.pass_number, record.current_sector, record.total_sectors, record.files_found) == (2, 12, 100, 3)


def test_sector_line_with_redraw_padding() -> None:
    record = ProgressRecord()

    parse_line("Pass 1 - Reading sector     65536/124735488, 8 files found", record)

    assert record.current_sector == 65536
    assert record.files_found == 8


def test_current_sector_is_clamped_to_total() -> None:
    record = ProgressRecord()

    parse_line("Pass 1 - Reading sector 500/100, 0 files found", record)

    assert record.current_sector <= record.total_sectors == 100


def test_files_found_and_total_never_decrease() -> None:
    record = ProgressRecord()
    parse_line("Pass 1 - Reading sector 40000/124735488, 14 files found", record)

    parse_line("Pass 1 - Reading sector 41000/1000, 10 files found", record)

    assert record.files_found == 14
    assert record.total_sectors == 124735488


def test_time_line_parses_elapsed_and_estimate() -> None:
    record = ProgressRecord()

    kind = parse_line("Elapsed time 0h05m23s - Estimated time for achievement 0h17m51s", record)

    assert kind == LineKind.TIME
    assert record.elapsed_seconds == 323
    assert record.estimated_seconds == 1071


def test_time_line_accepts_estimate_without_trailing_s() -> None:
    record = ProgressRecord()

    parse_line("Elapsed time 0h01m02s - Estimated time to completion 1h10m05", record)

    assert record.elapsed_seconds == 62
    assert record.estimated_seconds == 4205


def test_category_counts_raise_files_found_floor() -> None:
    record = ProgressRecord(files_found=20)

    for line in ["jpg: 12 recovered", "png:  2 recovered", "tx?: 1 recovered"]:
        parse_line(line, record)

    assert record.recovered_by_category == {"jpg": 12, "png": 2, "tx?": 1}
    assert record.files_found == 20

    parse_line("mp4: 10 recovered", record)

    assert record.files_found == 25


def test_unrecognized_lines_leave_record_untouched() -> None:
    record = ProgressRecord()

    for line in ["", "   ", "some random output we don't understand", "PhotoRec 7.2, Data Recovery Utility"]:
        assert parse_line(line, record) is None

    assert record == ProgressRecord()


def test_fraction_prefers_sectors_then_time() -> None:
    record = ProgressRecord(current_sector=62367744, total_sectors=124735488)
    assert abs(record.fraction() - 0.5) < 0.001
    assert record.percent_string() == "50.0%"

    timed = ProgressRecord(elapsed_seconds=60, estimated_seconds=60)
    assert timed.fraction() == 0.5

    assert ProgressRecord(elapsed_seconds=30).fraction() == 0.99
    assert ProgressRecord().fraction() is None
    assert ProgressRecord().percent_string() == "n/a"


def test_fraction_is_monotonic_over_session_trace() -> None:
    trace = textwrap.dedent(
        """
        PhotoRec 7.2, Data Recovery Utility, April 2023
        Disk /dev/sdb - 64 GB / 59 GiB
        Pass 1 - Reading sector     65536/124735488, 8 files found
        Elapsed time 0h00m04s - Estimated time for achievement 0h25m17s
        jpg:  8 recovered
        Pass 1 - Reading sector    131072/124735488, 22 files found
        Elapsed time 0h00m08s - Estimated time for achievement 0h23m46s
        jpg: 20 recovered
        png:  2 recovered
        Pass 1 - Reading sector  62367744/124735488, 40 files found
        Pass 1 - Reading sector 124735488/124735488, 41 files found
        Recovery completed.
        """
    )
    record = ProgressRecord()
    fractions: list[float] = []

    for line in trace.splitlines():
        parse_line(line, record)
        value = record.fraction()
        if value is not None:
            fractions.append(value)

    assert fractions == sorted(fractions)
    assert fractions[-1] == 1.0


def test_parse_chunk_accumulates_full_output() -> None:
    chunk = "\n".join(
        [
            "Pass 1 - Reading sector     65536/124735488, 8 files found",
            "jpg:  8 recovered",
            "Pass 1 - Reading sector    131072/124735488, 22 files found",
            "jpg: 20 recovered",
            "png:  2 recovered",
            "Recovery completed.",
        ]
    )

    record = parse_chunk(chunk)

    assert record.current_sector == 131072
    assert record.recovered_by_category == {"jpg": 20, "png": 2}
    assert record.files_found == 22
    assert record.completed is True
