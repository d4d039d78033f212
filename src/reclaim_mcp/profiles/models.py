"""Engine profile models describing a pinned engine version's prompt grammar."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class PromptRole(str, Enum):
    """Screens of the engine's menu flow that the navigation script answers."""

    CONFIRM_SELECTION = "confirm_selection"
    FILESYSTEM_TYPE = "filesystem_type"
    SCAN_COVERAGE = "scan_coverage"
    OUTPUT_DIRECTORY = "output_directory"
    OUTPUT_DIRECTORY_SELECT = "output_directory_select"
    SESSION_SAVE_FAILED = "session_save_failed"
    SUMMARY = "summary"


class EngineProfile(BaseModel):
    """Prompt substrings emitted by one engine version."""

    id: str = Field(..., description="Unique identifier for the profile.")
    engine: str = Field(default="photorec", description="Binary name the profile applies to.")
    version: str = Field(..., description="Engine version whose output grammar is described.")
    prompts: dict[PromptRole, list[str]] = Field(
        default_factory=dict,
        description="Substrings identifying each prompt screen, matched case-insensitively.",
    )
    fallback_after_seconds: float = Field(
        default=60.0,
        description="Idle period after which the fallback keys are sent.",
    )
    fallback_keys: str = Field(
        default="\r",
        description="Keys sent when the engine waits on an unrecognized screen.",
    )
    quit_keys: str = Field(
        default="q",
        description="Keys sent on idle once the summary screen has been dismissed.",
    )
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Engine profile id must not be empty")
        return normalized

    @field_validator("prompts", mode="before")
    @classmethod
    def _ensure_lists(cls, value: Any):  # type: ignore[override]
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise TypeError("prompts must be a mapping of prompt role to substrings")
        normalized: dict[Any, list[str]] = {}
        for role, matches in value.items():
            if isinstance(matches, str):
                matches = [matches]
            normalized[role] = [str(item) for item in matches if str(item).strip()]
        return normalized

    @field_validator("fallback_after_seconds")
    @classmethod
    def _validate_fallback(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("fallback_after_seconds must be > 0")
        return value

    def matches_for(self, role: PromptRole) -> list[str]:
        return list(self.prompts.get(role, []))


__all__ = ["EngineProfile", "PromptRole"]
