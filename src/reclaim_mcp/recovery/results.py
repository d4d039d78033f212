"""Listing of files recovered into a destination directory."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_CATEGORIES: dict[str, frozenset[str]] = {
    "image": frozenset({"jpg", "jpeg", "png", "raw", "cr2", "arw", "nef", "dng", "heic", "tiff", "bmp"}),
    "video": frozenset({"mp4", "mov", "mkv", "avi", "m4v", "wmv"}),
    "document": frozenset({"pdf", "docx", "doc", "xlsx", "xls", "pptx", "ppt", "txt", "pages", "numbers"}),
    "audio": frozenset({"mp3", "flac", "aac", "wav", "m4a", "ogg"}),
    "archive": frozenset({"zip", "rar", "7z", "tar", "gz", "bz2"}),
}


def category_for(extension: str) -> str:
    extension = extension.lower().lstrip(".")
    for category, extensions in _CATEGORIES.items():
        if extension in extensions:
            return category
    return "other"


@dataclass(frozen=True, slots=True)
class RecoveredFile:
    path: Path
    name: str
    extension: str
    size: int
    category: str

    def as_dict(self) -> dict[str, object]:
        return {
            "path": str(self.path),
            "name": self.name,
            "extension": self.extension,
            "size": self.size,
            "category": self.category,
        }


def output_roots(destination: Path) -> list[Path]:
    """Return the destination and its numbered siblings (``<dest>.1``, ``<dest>.2``, ...).

    The engine spreads recovered files over numbered directories next to the
    requested destination. Only directories that exist are returned; numbered
    siblings are ordered by their number.
    """

    destination = Path(destination)
    roots = [destination] if destination.is_dir() else []
    parent = destination.parent
    if not parent.is_dir():
        return roots

    pattern = re.compile(rf"^{re.escape(destination.name)}\.(\d+)$")
    numbered: list[tuple[int, Path]] = []
    for entry in parent.iterdir():
        match = pattern.match(entry.name)
        if match and entry.is_dir():
            numbered.append((int(match.group(1)), entry))
    roots.extend(path for _, path in sorted(numbered))
    return roots


class DirectoryResultEnumerator:
    """Walk every output root and collect the recovered files."""

    def __init__(self, *, include_hidden: bool = False) -> None:
        self._include_hidden = include_hidden

    def enumerate(self, destination: Path) -> list[RecoveredFile]:
        files: list[RecoveredFile] = []
        for root in output_roots(destination):
            for path in root.rglob("*"):
                if not self._include_hidden and any(part.startswith(".") for part in path.relative_to(root).parts):
                    continue
                try:
                    if not path.is_file():
                        continue
                    size = path.stat().st_size
                except OSError as exc:
                    logger.debug("Skipping unreadable entry", extra={"path": str(path), "error": str(exc)})
                    continue
                extension = path.suffix.lstrip(".").lower()
                files.append(
                    RecoveredFile(
                        path=path,
                        name=path.name,
                        extension=extension,
                        size=size,
                        category=category_for(extension),
                    )
                )
        files.sort(key=lambda item: (item.name.lower(), str(item.path)))
        return files


__all__ = ["DirectoryResultEnumerator", "RecoveredFile", "category_for", "output_roots"]
