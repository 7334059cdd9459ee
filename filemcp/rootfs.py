from __future__ import annotations

import logging
import os
import stat
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, List, Tuple

from .errors import (
    IOFailure,
    IsADirectory,
    NotADirectory,
    NotFound,
    PathRejected,
    translate_os_error,
)
from .security import clean_parts, collapse, confine, is_absolute
from .types import DirectoryEntry, RootBoundary

LOGGER = logging.getLogger(__name__)

MAX_SYMLINKS = 40

_CLOEXEC = getattr(os, "O_CLOEXEC", 0)
_NOFOLLOW = getattr(os, "O_NOFOLLOW", 0)
_DIR_FLAGS = os.O_RDONLY | getattr(os, "O_DIRECTORY", 0) | _CLOEXEC
# O_NONBLOCK keeps open() on a FIFO from waiting for a writer.
_READ_FLAGS = os.O_RDONLY | getattr(os, "O_NONBLOCK", 0) | getattr(os, "O_BINARY", 0) | _CLOEXEC


def _raise(exc: OSError) -> None:
    raise exc


def _read_regular(fd: int, caller_path: str) -> bytes:
    """Read a whole file from an open descriptor; anything but a regular file is refused."""
    with os.fdopen(fd, "rb") as fh:
        mode = os.fstat(fh.fileno()).st_mode
        if stat.S_ISDIR(mode):
            raise IsADirectory(caller_path)
        if not stat.S_ISREG(mode):
            raise IOFailure(caller_path, "not a regular file")
        return fh.read()


def _entry_size(entry: os.DirEntry, is_dir: bool) -> int:
    if is_dir:
        return 0
    try:
        return entry.stat(follow_symlinks=False).st_size
    except OSError:
        # Entry vanished between listing and stat.
        return 0


def _collect_entries(iterator: Iterator[os.DirEntry]) -> List[DirectoryEntry]:
    entries: List[DirectoryEntry] = []
    for entry in iterator:
        is_dir = entry.is_dir(follow_symlinks=False)
        entries.append(DirectoryEntry(name=entry.name, size=_entry_size(entry, is_dir), is_dir=is_dir))
    return entries


class ConfinedFS(ABC):
    """
    Read-only filesystem capability scoped to a RootBoundary.

    Every method takes an untrusted caller path and either works on an entry
    under the root or raises a FileToolError. Nothing here holds mutable state
    after construction, so one instance is shared by concurrent calls.
    """

    strategy = ""

    def __init__(self, root: RootBoundary) -> None:
        self.root = root

    @abstractmethod
    def read_bytes(self, caller_path: str) -> bytes:
        """Return the whole content of a regular file."""

    @abstractmethod
    def scandir(self, caller_path: str) -> List[DirectoryEntry]:
        """Return the immediate children of a directory, in enumeration order."""

    @abstractmethod
    def walk_files(self) -> Iterator[str]:
        """Yield '/'-separated root-relative paths of every non-directory entry."""

    @abstractmethod
    def stat(self, caller_path: str) -> os.stat_result:
        """Return metadata of an entry, following a final symlink."""

    def close(self) -> None:
        pass

    def __enter__(self) -> "ConfinedFS":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class LexicalRootFS(ConfinedFS):
    """
    Confinement by lexical normalization and a separator-aware prefix check.

    Symlinks inside the root are followed by the OS without further checks,
    and the entry may change between the check and its use.
    """

    strategy = "lexical"

    def read_bytes(self, caller_path: str) -> bytes:
        target = confine(self.root.path, caller_path)
        try:
            if target.is_dir():
                raise IsADirectory(caller_path)
            return _read_regular(os.open(target, _READ_FLAGS), caller_path)
        except NotADirectoryError as exc:
            # A file used as an intermediate directory, as in 'a.txt/x'.
            raise NotFound(caller_path) from exc
        except OSError as exc:
            raise translate_os_error(exc, caller_path) from exc

    def scandir(self, caller_path: str) -> List[DirectoryEntry]:
        target = confine(self.root.path, caller_path)
        try:
            if target.exists() and not target.is_dir():
                raise NotADirectory(caller_path)
            with os.scandir(target) as iterator:
                return _collect_entries(iterator)
        except NotADirectoryError as exc:
            raise NotFound(caller_path) from exc
        except OSError as exc:
            raise translate_os_error(exc, caller_path) from exc

    def walk_files(self) -> Iterator[str]:
        top = str(self.root.path)
        try:
            for dirpath, _dirnames, filenames in os.walk(top, onerror=_raise, followlinks=False):
                rel_dir = os.path.relpath(dirpath, top)
                for name in filenames:
                    rel = name if rel_dir == os.curdir else os.path.join(rel_dir, name)
                    yield rel.replace(os.sep, "/")
        except OSError as exc:
            raise IOFailure(".", exc.strerror or str(exc)) from exc

    def stat(self, caller_path: str) -> os.stat_result:
        target = confine(self.root.path, caller_path)
        try:
            return os.stat(target)
        except NotADirectoryError as exc:
            raise NotFound(caller_path) from exc
        except OSError as exc:
            raise translate_os_error(exc, caller_path) from exc


class HandleRootFS(ConfinedFS):
    """
    Confinement through a directory descriptor opened once for the root.

    Paths are resolved one component at a time with dir_fd-relative calls and
    O_NOFOLLOW. Symlinks are expanded by hand and only followed while they
    stay inside the root, so neither '..' nor a link can reach outside it.
    """

    strategy = "handle"

    def __init__(self, root: RootBoundary) -> None:
        super().__init__(root)
        self._fd = os.open(root.path, _DIR_FLAGS)

    @staticmethod
    def supported() -> bool:
        return (
            hasattr(os, "fwalk")
            and os.open in os.supports_dir_fd
            and os.stat in os.supports_dir_fd
            and os.stat in os.supports_follow_symlinks
            and os.readlink in os.supports_dir_fd
            and os.scandir in os.supports_fd
        )

    def close(self) -> None:
        if self._fd >= 0:
            os.close(self._fd)
            self._fd = -1

    def _link_parts(self, caller_path: str, parent: int, name: str) -> List[str]:
        target = os.readlink(name, dir_fd=parent)
        if is_absolute(target):
            raise PathRejected(caller_path, "symbolic link leaves the root directory")
        try:
            return clean_parts(target)
        except PathRejected:
            raise PathRejected(caller_path, "symbolic link leaves the root directory") from None

    @contextmanager
    def _resolve(self, caller_path: str) -> Iterator[Tuple[int, str]]:
        """
        Yield (parent directory descriptor, final name) for caller_path.

        The final name is never a symlink; '.' stands for the directory the
        descriptor refers to. Descriptors opened here are closed on exit.
        """
        parts = clean_parts(caller_path)
        collapse(parts, caller_path)
        pending = list(reversed(parts))
        stack = [self._fd]
        final = os.curdir
        expansions = 0
        try:
            while pending:
                part = pending.pop()
                if part == os.pardir:
                    if len(stack) == 1:
                        raise PathRejected(caller_path, "path escapes the root directory")
                    os.close(stack.pop())
                    continue

                st = os.stat(part, dir_fd=stack[-1], follow_symlinks=False)
                if stat.S_ISLNK(st.st_mode):
                    expansions += 1
                    if expansions > MAX_SYMLINKS:
                        raise PathRejected(caller_path, "too many levels of symbolic links")
                    pending.extend(reversed(self._link_parts(caller_path, stack[-1], part)))
                    continue
                if not pending:
                    final = part
                    break
                if not stat.S_ISDIR(st.st_mode):
                    raise NotFound(caller_path)
                stack.append(os.open(part, _DIR_FLAGS | _NOFOLLOW, dir_fd=stack[-1]))

            yield stack[-1], final
        finally:
            for fd in stack[1:]:
                os.close(fd)

    def read_bytes(self, caller_path: str) -> bytes:
        try:
            with self._resolve(caller_path) as (parent, name):
                return _read_regular(os.open(name, _READ_FLAGS | _NOFOLLOW, dir_fd=parent), caller_path)
        except OSError as exc:
            raise translate_os_error(exc, caller_path) from exc

    def scandir(self, caller_path: str) -> List[DirectoryEntry]:
        try:
            with self._resolve(caller_path) as (parent, name):
                fd = os.open(name, _DIR_FLAGS | _NOFOLLOW, dir_fd=parent)
                try:
                    with os.scandir(fd) as iterator:
                        return _collect_entries(iterator)
                finally:
                    os.close(fd)
        except OSError as exc:
            raise translate_os_error(exc, caller_path) from exc

    def walk_files(self) -> Iterator[str]:
        try:
            walker = os.fwalk(os.curdir, dir_fd=self._fd, onerror=_raise, follow_symlinks=False)
            for dirpath, _dirnames, filenames, _dirfd in walker:
                for name in filenames:
                    yield os.path.normpath(os.path.join(dirpath, name)).replace(os.sep, "/")
        except OSError as exc:
            raise IOFailure(".", exc.strerror or str(exc)) from exc

    def stat(self, caller_path: str) -> os.stat_result:
        try:
            with self._resolve(caller_path) as (parent, name):
                return os.stat(name, dir_fd=parent, follow_symlinks=False)
        except OSError as exc:
            raise translate_os_error(exc, caller_path) from exc


STRATEGIES = {
    LexicalRootFS.strategy: LexicalRootFS,
    HandleRootFS.strategy: HandleRootFS,
}


def open_root(root: RootBoundary, strategy: str = "auto") -> ConfinedFS:
    """Open the confined filesystem, preferring the descriptor-based strategy."""
    if strategy == "auto":
        strategy = HandleRootFS.strategy if HandleRootFS.supported() else LexicalRootFS.strategy
    if strategy not in STRATEGIES:
        raise ValueError(f"unknown confinement strategy: {strategy}")
    if strategy == HandleRootFS.strategy and not HandleRootFS.supported():
        raise ValueError("descriptor-based confinement is not supported on this platform")
    LOGGER.info("confining operations to %s (strategy=%s)", root, strategy)
    return STRATEGIES[strategy](root)
