from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List


@dataclass(frozen=True, slots=True)
class RootBoundary:
    """The single absolute directory every operation is confined to."""

    path: Path

    def __str__(self) -> str:
        return str(self.path)


@dataclass(slots=True)
class DirectoryEntry:
    name: str
    size: int
    is_dir: bool

    def as_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "size": self.size, "isDir": self.is_dir}


@dataclass(slots=True)
class ReadResult:
    """Whole content of a file; path is the caller's path, not the resolved one."""

    path: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    def as_dict(self) -> Dict[str, Any]:
        # JSON carries text only; size stays the raw byte length.
        return {
            "content": self.content.decode("utf-8", errors="replace"),
            "size": self.size,
            "path": self.path,
        }


@dataclass(slots=True)
class ListResult:
    path: str
    entries: List[DirectoryEntry] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.entries)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "entries": [entry.as_dict() for entry in self.entries],
            "count": self.count,
        }


@dataclass(slots=True)
class SearchResult:
    pattern: str
    matches: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.matches)

    def as_dict(self) -> Dict[str, Any]:
        return {"pattern": self.pattern, "matches": list(self.matches), "count": self.count}


@dataclass(slots=True)
class FileStat:
    """Metadata of a single entry, as reported by get_file_info."""

    path: str
    size: int
    is_dir: bool
    mod_time: str
    mode: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "size": self.size,
            "isDir": self.is_dir,
            "modTime": self.mod_time,
            "mode": self.mode,
        }
