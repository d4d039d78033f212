"""Navigation scripts for the recovery engine's full-screen menus."""

from .script import (
    DEFAULT_TIMEOUT_SECONDS,
    SENTINEL_PREFIX,
    NavigationScript,
    NavigationScriptError,
    PromptRule,
    generate,
)

__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "NavigationScript",
    "NavigationScriptError",
    "PromptRule",
    "SENTINEL_PREFIX",
    "generate",
]
