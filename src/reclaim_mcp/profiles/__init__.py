"""Engine profile models and loader exports."""

from .loader import (
    BUILTIN_PROFILE,
    DEFAULT_PROFILE_ID,
    EngineProfile,
    ProfileLoadError,
    ProfileLoader,
)
from .models import PromptRole

__all__ = [
    "BUILTIN_PROFILE",
    "DEFAULT_PROFILE_ID",
    "EngineProfile",
    "ProfileLoadError",
    "ProfileLoader",
    "PromptRole",
]
