"""Generation of navigation scripts that drive the recovery engine's menus."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..models import ScanOptions
from ..profiles import BUILTIN_PROFILE, EngineProfile, PromptRole

SENTINEL_PREFIX = "MARKER"
DEFAULT_TIMEOUT_SECONDS = 2 * 60 * 60

ENTER = "\r"
ARROW_DOWN = "\x1b[B"

# Filesystems the engine lists under its first (default) filesystem choice.
_NATIVE_FILESYSTEMS = ("ext2", "ext3", "ext4", "linux")


class NavigationScriptError(RuntimeError):
    """Raised when a navigation script cannot be read or validated."""


class PromptRule(BaseModel):
    """A single prompt substring table entry and the keys that answer it."""

    name: str
    match: list[str] = Field(..., min_length=1)
    keys: str
    terminal: bool = Field(
        default=False,
        description="After this rule fires only quit keys are sent until the engine exits.",
    )

    def matches(self, screen: str) -> bool:
        lowered = screen.lower()
        return any(candidate.lower() in lowered for candidate in self.match)


class NavigationScript(BaseModel):
    """Scripted automaton that steers the engine to a non-interactive conclusion."""

    engine: Path
    args: list[str] = Field(default_factory=list)
    working_directory: Path
    log_path: Path
    sentinel_prefix: str = SENTINEL_PREFIX
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    rules: list[PromptRule] = Field(default_factory=list)
    fallback_keys: str = ENTER
    fallback_after_seconds: float = 60.0
    quit_keys: str = "q"
    file_options: list[str] = Field(default_factory=list)

    @field_validator("timeout_seconds", "fallback_after_seconds")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be > 0")
        return value

    def match(self, screen: str, *, finishing: bool = False) -> PromptRule | None:
        """Return the first rule whose substrings appear in ``screen``."""

        for rule in self.rules:
            if finishing and not rule.terminal:
                continue
            if rule.matches(screen):
                return rule
        return None

    def sentinel_line(self, exit_code: int) -> str:
        return f"{self.sentinel_prefix}:{exit_code}"

    def file_options_document(self) -> str:
        if not self.file_options:
            return ""
        lines = ["everything,disable"]
        lines.extend(f"{extension},enable" for extension in self.file_options)
        return "\n".join(lines) + "\n"

    def dump(self) -> str:
        return yaml.safe_dump(self.model_dump(mode="json"), sort_keys=False, allow_unicode=True)

    def write(self, path: Path) -> Path:
        path = Path(path)
        path.write_text(self.dump(), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Path) -> "NavigationScript":
        try:
            document = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise NavigationScriptError(f"Cannot read navigation script {path}: {exc}") from exc
        try:
            return cls.model_validate(document)
        except ValidationError as exc:
            raise NavigationScriptError(f"Invalid navigation script {path}: {exc}") from exc


def _filesystem_keys(filesystem_label: str | None) -> str:
    label = (filesystem_label or "").lower()
    if label and any(name in label for name in _NATIVE_FILESYSTEMS):
        return ENTER
    return ARROW_DOWN + ENTER


def _normalize_extensions(extensions: Iterable[str]) -> list[str]:
    return sorted({extension.strip().lstrip(".").lower() for extension in extensions if extension.strip()})


def generate(
    binary_path: Path,
    output_dir: Path,
    device_id: str,
    log_path: Path,
    options: ScanOptions,
    *,
    profile: EngineProfile | None = None,
    filesystem_label: str | None = None,
    working_directory: Path | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> NavigationScript:
    """Build the navigation script for one recovery session.

    Rules are listed most specific first; the first rule whose substrings are
    on screen wins. The "really quit" prompt is always declined so files that
    were already recovered are kept.
    """

    profile = profile or BUILTIN_PROFILE
    coverage_keys = ARROW_DOWN + ENTER if options.scan_whole_partition else ENTER

    table: list[tuple[PromptRole, str, bool]] = [
        (PromptRole.SESSION_SAVE_FAILED, "n", False),
        (PromptRole.SUMMARY, ENTER + profile.quit_keys * 2, True),
        (PromptRole.OUTPUT_DIRECTORY, "y", False),
        (PromptRole.OUTPUT_DIRECTORY_SELECT, "C", False),
        (PromptRole.SCAN_COVERAGE, coverage_keys, False),
        (PromptRole.FILESYSTEM_TYPE, _filesystem_keys(filesystem_label), False),
        (PromptRole.CONFIRM_SELECTION, ENTER, False),
    ]
    rules = [
        PromptRule(name=role.value, match=profile.matches_for(role), keys=keys, terminal=terminal)
        for role, keys, terminal in table
        if profile.matches_for(role)
    ]

    log_path = Path(log_path)
    return NavigationScript(
        engine=Path(binary_path),
        args=["/log", "/d", str(Path(output_dir)), device_id],
        working_directory=Path(working_directory) if working_directory else log_path.parent,
        log_path=log_path,
        timeout_seconds=timeout_seconds,
        rules=rules,
        fallback_keys=profile.fallback_keys,
        fallback_after_seconds=profile.fallback_after_seconds,
        quit_keys=profile.quit_keys,
        file_options=_normalize_extensions(options.file_type_filter),
    )


__all__ = [
    "ARROW_DOWN",
    "DEFAULT_TIMEOUT_SECONDS",
    "ENTER",
    "NavigationScript",
    "NavigationScriptError",
    "PromptRule",
    "SENTINEL_PREFIX",
    "generate",
]
