"""Reclaim MCP: supervised, scripted data recovery sessions."""

__version__ = "0.1.0"

__all__ = ["__version__"]
