"""Recovery session supervision."""

from .classify import classify, read_sentinel
from .controller import ControllerState, RecoveryEventStream, RecoveryTaskController
from .coordinator import SessionCoordinator
from .events import (
    AnalysisComplete,
    Cancelled,
    Completed,
    Failed,
    LogChunk,
    ParserStalled,
    PartitionFound,
    Progress,
    describe,
)
from .partitions import PartitionAnalyzer
from .results import DirectoryResultEnumerator, RecoveredFile, output_roots

__all__ = [
    "AnalysisComplete",
    "Cancelled",
    "Completed",
    "ControllerState",
    "DirectoryResultEnumerator",
    "Failed",
    "LogChunk",
    "ParserStalled",
    "PartitionAnalyzer",
    "PartitionFound",
    "Progress",
    "RecoveredFile",
    "RecoveryEventStream",
    "RecoveryTaskController",
    "SessionCoordinator",
    "classify",
    "describe",
    "output_roots",
    "read_sentinel",
]
