"""FastMCP server bootstrap for Reclaim."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import ReclaimSettings, get_settings
from .engine import EngineRunner
from .errors import BinaryNotFound
from .profiles import DEFAULT_PROFILE_ID, ProfileLoadError, ProfileLoader
from .recovery.controller import RecoveryTaskController
from .recovery.coordinator import SessionCoordinator
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the Reclaim server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _engine_metadata(name: str, explicit: str | None) -> dict[str, object]:
    metadata: dict[str, object] = {"available": False, "path": None, "error": None}
    try:
        runner = EngineRunner(Path(explicit) if explicit else None, name=name)
    except BinaryNotFound as exc:
        metadata["error"] = str(exc)
    else:
        metadata["available"] = True
        metadata["path"] = str(runner.executable)
    return metadata


def create_server(
    settings: Optional[ReclaimSettings] = None,
    runner: EngineRunner | None = None,
    partition_runner: EngineRunner | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with baseline resources."""

    settings = settings or get_settings()

    profile_loader = ProfileLoader(settings.profile_paths)
    try:
        profile = profile_loader.get(DEFAULT_PROFILE_ID)
    except ProfileLoadError as exc:
        logging.getLogger(__name__).warning(
            "Falling back to the built-in engine profile", extra={"error": str(exc)}
        )
        profile = None

    if runner is None:
        engine_metadata = _engine_metadata("photorec", settings.photorec_path)
    else:
        engine_metadata = {"available": True, "path": str(runner.executable), "error": None}

    if partition_runner is None:
        partition_metadata = _engine_metadata("testdisk", settings.testdisk_path)
    else:
        partition_metadata = {"available": True, "path": str(partition_runner.executable), "error": None}

    controller = RecoveryTaskController(settings, runner=runner, profile=profile)
    coordinator = SessionCoordinator(controller, settings=settings)

    server = FastMCP(
        name="Reclaim MCP",
        version=__version__,
        instructions=(
            "Reclaim supervises PhotoRec and TestDisk. Start a recovery session for a "
            "device, poll its status for progress and recovered file counts, and analyse "
            "partition tables read-only."
        ),
    )

    handles = register_tools(
        server,
        profiles=profile_loader,
        settings=settings,
        coordinator=coordinator,
        partition_runner=partition_runner,
    )

    def status_payload(request_id: str | None = None) -> dict[str, object]:
        try:
            profile_ids = sorted(profile_loader.load_all().keys())
            profile_error: str | None = None
        except ProfileLoadError as exc:
            profile_ids = []
            profile_error = str(exc)

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "elevation": settings.elevation(),
            "profiles": {
                "count": len(profile_ids),
                "ids": profile_ids,
                "active": profile.id if profile else DEFAULT_PROFILE_ID,
                "error": profile_error,
            },
            "engines": {
                "photorec": engine_metadata,
                "testdisk": partition_metadata,
            },
            "controller": {
                "state": controller.state.value,
                "active": controller.active,
            },
            "session": coordinator.snapshot(),
            "request_id": request_id,
        }
        return payload

    @server.resource(
        "resource://reclaim/status",
        name="reclaim_status",
        title="Reclaim MCP Status",
        description="Provides the current runtime status for the Reclaim MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing basic runtime state."""

        return json.dumps(status_payload(getattr(context, "request_id", None)))

    setattr(server, "profile_loader", profile_loader)
    setattr(server, "controller", controller)
    setattr(server, "coordinator", coordinator)
    setattr(server, "engine_metadata", engine_metadata)
    setattr(server, "partition_metadata", partition_metadata)
    setattr(server, "tool_handles", handles)
    setattr(server, "status_payload", status_payload)
    return server


def main() -> None:
    """Entry point for running the Reclaim MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching Reclaim MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "photorec_available": getattr(server, "engine_metadata", {}).get("available"),
            "testdisk_available": getattr(server, "partition_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
