"""Configuration management for Reclaim MCP."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .engine.utils import elevation_prefix


class ReclaimSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    photorec_path: str | None = Field(default=None, validation_alias="RECLAIM_PHOTOREC_PATH")
    testdisk_path: str | None = Field(default=None, validation_alias="RECLAIM_TESTDISK_PATH")
    elevation_command: str = Field(default="sudo -n", validation_alias="RECLAIM_ELEVATION_COMMAND")
    log_level: str = Field(default="INFO", validation_alias="RECLAIM_LOG_LEVEL")
    poll_interval: float = Field(default=0.2, validation_alias="RECLAIM_POLL_INTERVAL")
    progress_throttle: float = Field(default=0.5, validation_alias="RECLAIM_PROGRESS_THROTTLE")
    finalize_grace: float = Field(default=0.3, validation_alias="RECLAIM_FINALIZE_GRACE")
    navigation_timeout: float = Field(default=7200.0, validation_alias="RECLAIM_NAVIGATION_TIMEOUT")
    stall_warning_seconds: float = Field(default=120.0, validation_alias="RECLAIM_STALL_WARNING_SECONDS")
    log_flush_interval: float = Field(default=0.8, validation_alias="RECLAIM_LOG_FLUSH_INTERVAL")
    log_max_lines: int = Field(default=500, validation_alias="RECLAIM_LOG_MAX_LINES")
    profile_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(Path("profiles"),), validation_alias="RECLAIM_PROFILE_PATHS"
    )
    work_dir: Path | None = Field(default=None, validation_alias="RECLAIM_WORK_DIR")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "RECLAIM_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("profile_paths", mode="before")
    @classmethod
    def _parse_profile_paths(cls, value):
        if value is None or value == "":
            return (Path("profiles"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("profiles"),)
        raise TypeError("RECLAIM_PROFILE_PATHS must be a list of paths or a path-separated string")

    @field_validator(
        "poll_interval",
        "progress_throttle",
        "navigation_timeout",
        "stall_warning_seconds",
        "log_flush_interval",
    )
    @classmethod
    def _validate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Intervals and timeouts must be > 0")
        return value

    @field_validator("finalize_grace")
    @classmethod
    def _validate_grace(cls, value: float) -> float:
        if value < 0:
            raise ValueError("RECLAIM_FINALIZE_GRACE must be >= 0")
        return value

    @field_validator("log_max_lines")
    @classmethod
    def _validate_log_max_lines(cls, value: int) -> int:
        if value < 1:
            raise ValueError("RECLAIM_LOG_MAX_LINES must be >= 1")
        return value

    def elevation(self) -> list[str]:
        """Return the elevation command prefix, empty when running as root."""

        return elevation_prefix(self.elevation_command)


@lru_cache(maxsize=1)
def get_settings() -> ReclaimSettings:
    """Return cached settings instance."""

    settings = ReclaimSettings()
    settings.profile_paths = tuple(path.expanduser().resolve() for path in settings.profile_paths)
    if settings.work_dir is not None:
        settings.work_dir = settings.work_dir.expanduser().resolve()
    return settings


__all__ = ["ReclaimSettings", "get_settings"]
