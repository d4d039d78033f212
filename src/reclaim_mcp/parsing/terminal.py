"""Helpers for turning raw pseudo-terminal output into plain text."""

from __future__ import annotations

import re

_SEQUENCE = re.compile(
    # Cursor positioning (CUP/HVP) marks a new screen row; it becomes a line break.
    r"(?P<cursor>\x1b\[[0-9;]*[Hf])"
    r"|\x1b\[[0-?]*[ -/]*[@-~]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|\x1b[()*+][0-9A-Za-z]"
    # Every final byte except "[" and "]", which open CSI and OSC sequences.
    r"|\x1b[0-9:;<=>?@A-Z\\^_`a-z{|}~]"
    r"|[\x00-\x08\x0b\x0c\x0e-\x1a\x1c-\x1f\x7f]"
)

_MAX_PARTIAL = 64


def _replace(match: re.Match[str]) -> str:
    return "\n" if match.group("cursor") else ""


def _strip_once(text: str) -> str:
    text = _SEQUENCE.sub(_replace, text)
    return text.replace("\r\n", "\n").replace("\r", "\n")


def sanitize(raw: bytes | str) -> str:
    """Strip terminal control sequences and normalize line endings.

    Bytes are decoded as UTF-8 with replacement characters, so malformed input
    never raises. Escape bytes that do not form a recognized sequence are kept,
    unless removing a sequence next to them made them look like the start of a
    new one; those are dropped and the text after them is kept. Sanitizing the
    result again returns it unchanged.
    """

    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    cleaned = _strip_once(text)
    if _strip_once(cleaned) != cleaned:
        cleaned = cleaned.replace("\x1b", "")
    return cleaned


def split_partial_escape(text: str) -> tuple[str, str]:
    """Split ``text`` before a trailing, possibly incomplete escape sequence.

    Returns ``(complete, remainder)``. The remainder should be prepended to the
    next chunk read from the terminal so that sequences split across reads are
    still recognized.
    """

    index = text.rfind("\x1b")
    if index == -1 or len(text) - index > _MAX_PARTIAL:
        return text, ""
    tail = text[index:]
    if not sanitize(tail).startswith("\x1b"):
        return text, ""
    if len(tail) > 2 and tail[1] not in "[]()*+":
        # A lone escape followed by ordinary text is not a sequence in progress.
        return text, ""
    return text[:index], tail


__all__ = ["sanitize", "split_partial_escape"]
