"""Engine process orchestration utilities."""

from .runner import EngineExecutionResult, EngineRunner, FakeEngineRunner, resolve_binary
from .utils import elevation_prefix, sanitize_environment

__all__ = [
    "EngineExecutionResult",
    "EngineRunner",
    "FakeEngineRunner",
    "elevation_prefix",
    "resolve_binary",
    "sanitize_environment",
]
