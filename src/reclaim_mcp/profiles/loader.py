"""Engine profile loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from .models import EngineProfile, PromptRole

DEFAULT_PROFILE_ID = "photorec-7.2"

# Screens of the pinned engine release, in the order the menu flow shows them.
BUILTIN_PROFILE = EngineProfile(
    id=DEFAULT_PROFILE_ID,
    engine="photorec",
    version="7.2",
    prompts={
        PromptRole.CONFIRM_SELECTION: ["[Proceed ]", "press Enter when done", "[ Search ]"],
        PromptRole.FILESYSTEM_TYPE: ["need to know the filesystem type", "[ Other ]"],
        PromptRole.SCAN_COVERAGE: ["all space need to be analysed", "[ Whole ]"],
        PromptRole.OUTPUT_DIRECTORY: ["Do you want to save recovered files"],
        PromptRole.OUTPUT_DIRECTORY_SELECT: ["When the destination is correct, press C"],
        PromptRole.SESSION_SAVE_FAILED: ["Answer Y to really Quit", "Unable to save the session"],
        PromptRole.SUMMARY: ["Recovery completed"],
    },
)


class ProfileLoadError(RuntimeError):
    """Raised when one or more profile files cannot be parsed."""


class ProfileLoader:
    """Loads engine profiles from YAML files on disk."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [Path(path) for path in (search_paths or [])]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]

    @property
    def search_paths(self) -> list[Path]:
        """Return the normalized search paths."""

        return list(self._search_paths)

    def load_all(self) -> dict[str, EngineProfile]:
        """Load the built-in profile plus profiles from all search paths.

        Later search paths override earlier ones (and the built-in profile)
        when profile ids collide.
        """

        profiles: dict[str, EngineProfile] = {BUILTIN_PROFILE.id: BUILTIN_PROFILE}
        errors: list[str] = []

        for base in self._search_paths:
            for path in sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml")):
                try:
                    document = yaml.safe_load(path.read_text(encoding="utf-8"))
                except yaml.YAMLError as exc:  # pragma: no cover - library type
                    errors.append(f"Failed to parse YAML in {path}: {exc}")
                    continue

                if document is None:
                    continue

                try:
                    profile = EngineProfile.model_validate(document)
                except ValidationError as exc:
                    errors.append(f"Profile validation error in {path}: {exc}")
                    continue

                profiles[profile.id] = profile

        if errors:
            raise ProfileLoadError("; ".join(errors))

        return profiles

    def get(self, profile_id: str = DEFAULT_PROFILE_ID) -> EngineProfile:
        """Return a single profile by id."""

        profiles = self.load_all()
        try:
            return profiles[profile_id]
        except KeyError as exc:
            raise ProfileLoadError(f"Profile '{profile_id}' not found in search paths") from exc


__all__ = [
    "BUILTIN_PROFILE",
    "DEFAULT_PROFILE_ID",
    "EngineProfile",
    "ProfileLoadError",
    "ProfileLoader",
]
