"""Tool registration for Reclaim MCP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from fastmcp import Context, FastMCP

from ..config import ReclaimSettings
from ..engine import EngineRunner
from ..errors import BinaryNotFound
from ..models import DeviceDescriptor, ScanOptions
from ..profiles import ProfileLoader
from ..recovery.coordinator import SessionCoordinator
from ..recovery.events import AnalysisComplete, Cancelled, Failed, PartitionFound
from ..recovery.partitions import PartitionAnalyzer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    start_recovery: Any
    cancel_recovery: Any
    recovery_status: Any
    analyse_partitions: Any
    list_engine_profiles: Any
    coordinator: SessionCoordinator


def register_tools(
    server: FastMCP,
    *,
    profiles: ProfileLoader,
    settings: ReclaimSettings,
    coordinator: SessionCoordinator,
    partition_runner: EngineRunner | None = None,
    partition_runner_factory: Callable[[], EngineRunner] | None = None,
) -> ToolHandles:
    """Register Reclaim's MCP tools on the server."""

    runner_factory = partition_runner_factory or (
        lambda: EngineRunner(
            Path(settings.testdisk_path) if settings.testdisk_path else None,
            name="testdisk",
            elevation=settings.elevation(),
        )
    )
    analyzers: dict[str, PartitionAnalyzer] = {}

    async def _start_recovery(
        device_id: str,
        destination: str,
        scan_whole_partition: bool = False,
        file_types: list[str] | None = None,
        display_name: str = "",
        filesystem_label: str = "Unknown",
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Start recovering files from a device into a destination directory."""

        device = DeviceDescriptor(id=device_id, display_name=display_name, filesystem_label=filesystem_label)
        options = ScanOptions(scan_whole_partition=scan_whole_partition, file_type_filter=file_types or [])
        snapshot = await coordinator.start(device, Path(destination).expanduser(), options)

        _emit_log(
            context,
            "info",
            "Recovery session started",
            extra={
                "device": device.id,
                "destination": destination,
                "whole_partition": scan_whole_partition,
                "file_types": sorted(options.file_type_filter),
            },
        )
        return snapshot

    def _cancel_recovery(context: Context | None = None) -> dict[str, Any]:
        """Cancel the active recovery session and any running partition analysis."""

        cancelled = coordinator.cancel()
        analyses = [device_id for device_id, analyzer in list(analyzers.items()) if analyzer.cancel()]
        _emit_log(
            context,
            "info",
            "Recovery cancellation requested",
            extra={"cancelled": cancelled, "analyses": analyses},
        )
        return {"cancelled": cancelled, "cancelled_analyses": analyses, **coordinator.snapshot()}

    def _recovery_status(
        include_files: bool = False,
        limit: int = 50,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Report progress of the current or last recovery session."""

        snapshot = coordinator.snapshot()
        if include_files:
            snapshot["files"] = [item.as_dict() for item in coordinator.recovered_files[: max(limit, 0)]]

        _emit_log(
            context,
            "debug",
            "Recovery status requested",
            extra={"status": snapshot["status"], "files_found": snapshot["files_found"]},
        )
        return snapshot

    async def _analyse_partitions(device_id: str, context: Context | None = None) -> dict[str, Any]:
        """List the partitions of a device without modifying it."""

        device = DeviceDescriptor(id=device_id)
        runner = partition_runner
        if runner is None:
            try:
                runner = runner_factory()
            except BinaryNotFound as exc:
                _emit_log(context, "warning", "Partition engine unavailable", extra={"error": str(exc)})
                return {"device": device.id, "status": "failed", "error": exc.as_dict(), "partitions": []}

        analyzer = PartitionAnalyzer(runner, work_dir=settings.work_dir)
        analyzers[device.id] = analyzer
        response: dict[str, Any] = {"device": device.id, "status": "running", "error": None, "partitions": []}
        try:
            async for event in analyzer.analyse(device):
                if isinstance(event, PartitionFound):
                    response["partitions"].append(event.record.as_dict())
                elif isinstance(event, AnalysisComplete):
                    response["status"] = "complete"
                elif isinstance(event, Failed):
                    response["status"] = "failed"
                    response["error"] = event.error.as_dict()
                elif isinstance(event, Cancelled):
                    response["status"] = "cancelled"
        finally:
            analyzers.pop(device.id, None)

        _emit_log(
            context,
            "info",
            "Partition analysis finished",
            extra={"device": device.id, "status": response["status"], "count": len(response["partitions"])},
        )
        return response

    def _list_engine_profiles(context: Context | None = None) -> list[dict[str, Any]]:
        """List the engine prompt profiles that are available."""

        catalog = [
            {
                "id": profile.id,
                "engine": profile.engine,
                "version": profile.version,
                "prompts": {role.value: list(matches) for role, matches in profile.prompts.items()},
                "fallback_after_seconds": profile.fallback_after_seconds,
            }
            for profile in profiles.load_all().values()
        ]
        _emit_log(context, "debug", "Listing engine profiles", extra={"count": len(catalog)})
        return catalog

    tool_start = server.tool(
        name="start_recovery",
        description="Start a file recovery session for a device, writing files to a destination directory.",
    )(_start_recovery)

    tool_cancel = server.tool(
        name="cancel_recovery",
        description="Cancel the running recovery session.",
    )(_cancel_recovery)

    tool_status = server.tool(
        name="recovery_status",
        description="Fetch progress, counts and recent log lines for the recovery session.",
    )(_recovery_status)

    tool_partitions = server.tool(
        name="analyse_partitions",
        description="Analyse a device's partition table read-only and list the partitions found.",
    )(_analyse_partitions)

    tool_profiles = server.tool(
        name="list_engine_profiles",
        description="List engine prompt profiles known to the server.",
    )(_list_engine_profiles)

    return ToolHandles(
        start_recovery=tool_start,
        cancel_recovery=tool_cancel,
        recovery_status=tool_status,
        analyse_partitions=tool_partitions,
        list_engine_profiles=tool_profiles,
        coordinator=coordinator,
    )


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)


__all__ = ["register_tools", "ToolHandles"]
