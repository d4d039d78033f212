"""Utility helpers for the engine runner."""

from __future__ import annotations

import os
import shlex
from typing import Mapping, Sequence

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONSTARTUP",
    "PYTHONINSPECT",
    "LD_PRELOAD",
}

# The prompt grammar is the engine's English output.
_ENGINE_DEFAULTS = {
    "LC_ALL": "C",
    "LANG": "C",
}


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment suitable for launching the engines."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    env.update(_ENGINE_DEFAULTS)
    env.setdefault("TERM", "xterm")
    if additional:
        env.update(additional)
    return env


def elevation_prefix(command: str | Sequence[str] | None, *, euid: int | None = None) -> list[str]:
    """Split the configured elevation command; no prefix is needed as root."""

    if euid is None:
        euid = os.geteuid()
    if euid == 0 or not command:
        return []
    if isinstance(command, str):
        return shlex.split(command)
    return [str(part) for part in command]
