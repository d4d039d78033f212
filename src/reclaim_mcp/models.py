"""Inputs shared by the recovery and partition sessions."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ScanOptions(BaseModel):
    """Immutable snapshot of the user's scan choices taken at session start."""

    model_config = ConfigDict(frozen=True)

    scan_whole_partition: bool = Field(
        default=False,
        description="Scan the whole partition instead of free space only.",
    )
    file_type_filter: frozenset[str] = Field(
        default_factory=frozenset,
        description="Extensions to recover; empty means every recognized type.",
    )

    @field_validator("file_type_filter", mode="before")
    @classmethod
    def _normalize_filter(cls, value):
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = [part for part in value.split(",")]
        return frozenset(str(item).strip().lstrip(".").lower() for item in value if str(item).strip())


class DeviceDescriptor(BaseModel):
    """A storage device as reported by the device-discovery collaborator."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Path-like device identifier, e.g. /dev/sdb.")
    display_name: str = Field(default="", description="Human-readable device name.")
    capacity_bytes: int = Field(default=0, ge=0)
    filesystem_label: str = Field(default="Unknown")
    is_external: bool = False
    mount_point: str | None = None

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Device id must not be empty")
        return normalized

    @property
    def title(self) -> str:
        return self.display_name or self.id


__all__ = ["DeviceDescriptor", "ScanOptions"]
