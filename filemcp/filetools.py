from __future__ import annotations

import stat
from datetime import datetime
from typing import List

from .patterns import compile_pattern, match
from .rootfs import ConfinedFS
from .types import FileStat, ListResult, ReadResult, SearchResult


class FileTools:
    """The four read-only file operations, all confined by the given filesystem."""

    def __init__(self, fs: ConfinedFS) -> None:
        self.fs = fs

    def read_file(self, path: str) -> ReadResult:
        """Read the whole file; either everything is returned or an error is raised."""
        content = self.fs.read_bytes(path)
        return ReadResult(path=path, content=content)

    def list_directory(self, path: str = "") -> ListResult:
        """List immediate children; empty path lists the root."""
        return ListResult(path=path, entries=self.fs.scandir(path))

    def search_files(self, pattern: str) -> SearchResult:
        """
        Walk the whole tree and collect files whose base name matches pattern.

        The pattern is compiled first, so a malformed one fails without a
        walk. A walk error discards whatever was collected so far.
        """
        compiled = compile_pattern(pattern)
        matches: List[str] = []
        for rel_path in self.fs.walk_files():
            if match(compiled, rel_path.rsplit("/", 1)[-1]):
                matches.append(rel_path)
        return SearchResult(pattern=pattern, matches=matches)

    def get_file_info(self, path: str) -> FileStat:
        st = self.fs.stat(path)
        is_dir = stat.S_ISDIR(st.st_mode)
        modified = datetime.fromtimestamp(st.st_mtime).astimezone()
        return FileStat(
            path=path,
            size=0 if is_dir else st.st_size,
            is_dir=is_dir,
            mod_time=modified.isoformat(timespec="seconds"),
            mode=stat.filemode(st.st_mode),
        )
