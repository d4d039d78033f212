from __future__ import annotations

from pathlib import Path
import textwrap

from reclaim_mcp.parsing.partitions import PartitionStatus, parse, parse_file

SAMPLE_LOG = textwrap.dedent(
    """
    TestDisk 7.2, Data Recovery Utility, April 2023
    Christophe GRENIER <grenier@cgsecurity.org>
    https://www.cgsecurity.org

    Disk /dev/sdb - 64 GB / 59 GiB - CHS 7763 255 63
         Partition               Start        End    Size in sectors
     P  W95 FAT32              0   0  1 7762 254 63  124735488
     D  Linux                  7763   0  1 7900 254 63    2241792
    """
)


def test_parses_partitions_from_sample_log() -> None:
    partitions = parse(SAMPLE_LOG)

    assert [record.index for record in partitions] == [1, 2]

    first, second = partitions
    assert first.status == PartitionStatus.PRIMARY
    assert first.type_label == "W95 FAT32"
    assert first.size_bytes == 124735488 * 512
    assert first.start_sector == 0
    assert first.end_sector == 124735487

    assert second.status == PartitionStatus.DELETED
    assert second.type_label == "Linux"
    assert second.start_sector == 7763 * 255 * 63
    assert second.end_sector == second.start_sector + 2241792 - 1


def test_multi_word_labels_are_kept_whole() -> None:
    log = " L  HPFS - NTFS            12   0  1   99 254 63    1397655\n"

    (record,) = parse(log)

    assert record.type_label == "HPFS - NTFS"
    assert record.status == PartitionStatus.LOGICAL


def test_active_marker_is_a_bootable_primary() -> None:
    (record,) = parse(" *  Linux Swap   0   1  1   10 254 63   176652\n")

    assert record.status == PartitionStatus.PRIMARY
    assert record.active is True
    assert record.type_label == "Linux Swap"
    assert record.start_sector == 63


def test_extended_and_unparseable_lines() -> None:
    log = "\n".join(
        [
            " E  extended LBA     100   0  1  200 254 63   1606500",
            " P  truncated line   100   0",
            "garbage",
        ]
    )

    partitions = parse(log)

    assert len(partitions) == 1
    assert partitions[0].status == PartitionStatus.EXTENDED


def test_empty_or_partitionless_log_returns_empty_list() -> None:
    assert parse("") == []
    assert parse(
        "TestDisk 7.2, Data Recovery Utility\nDisk /dev/sdb - 64 GB\nNo partition found or selected for recovery\n"
    ) == []


def test_parse_file_missing_returns_empty(tmp_path: Path) -> None:
    assert parse_file(tmp_path / "testdisk.log") == []

    path = tmp_path / "present.log"
    path.write_text(SAMPLE_LOG, encoding="utf-8")
    assert len(parse_file(path)) == 2
