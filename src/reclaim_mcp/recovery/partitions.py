"""Partition analysis through the secondary engine's batch mode."""

from __future__ import annotations

import logging
import shutil
import signal
import tempfile
from pathlib import Path
from typing import AsyncIterator

from ..engine.runner import EngineRunner
from ..errors import ProcessExitedUnexpectedly
from ..models import DeviceDescriptor
from ..parsing.partitions import parse_file
from .classify import TERMINATION_EXIT_CODE
from .events import AnalysisComplete, Cancelled, Failed, PartitionEvent, PartitionFound

logger = logging.getLogger(__name__)

ENGINE_LOG_NAME = "testdisk.log"

# Batch processes killed by SIGTERM report a negative return code.
_TERMINATED_CODES = (TERMINATION_EXIT_CODE, -signal.SIGTERM)


class PartitionAnalyzer:
    """Run a read-only partition listing and stream the records it finds."""

    def __init__(self, runner: EngineRunner, *, work_dir: Path | None = None) -> None:
        self._runner = runner
        self._work_dir = work_dir
        self._cancelled = False

    def cancel(self) -> bool:
        self._cancelled = True
        return self._runner.cancel_batch()

    async def analyse(self, device: DeviceDescriptor) -> AsyncIterator[PartitionEvent]:
        self._cancelled = False
        work_dir = Path(tempfile.mkdtemp(prefix="reclaim-partitions-", dir=self._work_dir))
        try:
            result = await self._runner.run_batch(
                "/log", "/cmd", device.id, "analyse,list", cwd=work_dir
            )
            if self._cancelled or result.returncode in _TERMINATED_CODES:
                logger.info("Partition analysis cancelled", extra={"device": device.id})
                yield Cancelled()
                return

            partitions = parse_file(work_dir / ENGINE_LOG_NAME)
            if result.returncode != 0 and not partitions:
                logger.warning(
                    "Partition analysis failed",
                    extra={"device": device.id, "returncode": result.returncode, "stderr": result.stderr[-400:]},
                )
                yield Failed(ProcessExitedUnexpectedly(result.returncode))
                return

            logger.info("Partition analysis finished", extra={"device": device.id, "count": len(partitions)})
            for record in partitions:
                yield PartitionFound(record)
            yield AnalysisComplete(tuple(partitions))
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)


__all__ = ["ENGINE_LOG_NAME", "PartitionAnalyzer"]
