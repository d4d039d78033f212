"""Reclaim MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from pathlib import Path

from reclaim_mcp.config import ReclaimSettings
from reclaim_mcp.models import ScanOptions
from reclaim_mcp.navigation import generate
from reclaim_mcp.parsing import parse_chunk, parse_partitions_file, sanitize
from reclaim_mcp.profiles import DEFAULT_PROFILE_ID, ProfileLoadError, ProfileLoader


def read_capture(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        print(f"Cannot read {path}: {exc}")
        raise SystemExit(1)


def cmd_progress(args: argparse.Namespace) -> None:
    text = sanitize(read_capture(args.log))
    record = parse_chunk(text)
    payload = asdict(record)
    payload["fraction"] = record.fraction()
    payload["percent"] = record.percent_string()
    print(json.dumps(payload, indent=2))


def cmd_partitions(args: argparse.Namespace) -> None:
    if not args.log.exists():
        print(f"Cannot read {args.log}: no such file")
        raise SystemExit(1)
    records = parse_partitions_file(args.log)
    if args.json:
        print(json.dumps([record.as_dict() for record in records], indent=2))
        return
    for record in records:
        print(
            f"{record.index:>2} {record.status.value:<8} {record.type_label:<20} "
            f"{record.start_sector:>12} {record.end_sector:>12} {record.size_bytes:>16}"
        )


def load_loader(settings: ReclaimSettings) -> ProfileLoader:
    return ProfileLoader(path.expanduser() for path in settings.profile_paths)


def cmd_script(args: argparse.Namespace) -> None:
    settings = ReclaimSettings()
    try:
        profile = load_loader(settings).get(args.profile)
    except ProfileLoadError as exc:
        print(f"Profiles unavailable: {exc}")
        raise SystemExit(1)

    options = ScanOptions(scan_whole_partition=args.whole, file_type_filter=args.types or [])
    script = generate(
        args.engine,
        args.destination,
        args.device,
        args.log,
        options,
        profile=profile,
        filesystem_label=args.filesystem,
        timeout_seconds=settings.navigation_timeout,
    )
    print(script.dump(), end="")


def cmd_profiles(args: argparse.Namespace) -> None:
    settings = ReclaimSettings()
    try:
        profiles = load_loader(settings).load_all()
    except ProfileLoadError as exc:
        print(f"Profiles unavailable: {exc}")
        raise SystemExit(1)

    if args.json:
        print(json.dumps([profile.model_dump(mode="json") for profile in profiles.values()], indent=2))
    else:
        for profile in profiles.values():
            print(f"{profile.id} [{profile.engine} {profile.version or '?'}] prompts={len(profile.prompts)}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reclaim MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_progress = sub.add_parser("progress", help="Replay a captured engine transcript through the parser")
    p_progress.add_argument("log", type=Path)
    p_progress.set_defaults(func=cmd_progress)

    p_partitions = sub.add_parser("partitions", help="Parse a partition engine log")
    p_partitions.add_argument("log", type=Path)
    p_partitions.add_argument("--json", action="store_true", help="Output JSON")
    p_partitions.set_defaults(func=cmd_partitions)

    p_script = sub.add_parser("script", help="Render the navigation script for a session")
    p_script.add_argument("--engine", type=Path, default=Path("/usr/bin/photorec"))
    p_script.add_argument("--destination", type=Path, required=True)
    p_script.add_argument("--device", required=True)
    p_script.add_argument("--log", type=Path, default=Path("/tmp/reclaim-session.log"))
    p_script.add_argument("--whole", action="store_true", help="Scan the whole partition")
    p_script.add_argument("--types", nargs="*", help="Only recover these extensions")
    p_script.add_argument("--filesystem", default=None, help="Filesystem label of the device")
    p_script.add_argument("--profile", default=DEFAULT_PROFILE_ID)
    p_script.set_defaults(func=cmd_script)

    p_profiles = sub.add_parser("profiles", help="List engine profiles")
    p_profiles.add_argument("--json", action="store_true", help="Output JSON")
    p_profiles.set_defaults(func=cmd_profiles)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
