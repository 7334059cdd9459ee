from __future__ import annotations

import errno
from typing import Optional


class FileToolError(Exception):
    """Base class for every failure a file tool reports to its caller."""

    code = "io_failure"

    def __init__(self, target: str, detail: Optional[str] = None) -> None:
        self.target = target
        self.detail = detail
        message = f"{self.code}: {target!r}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class PathRejected(FileToolError):
    """Raised when a caller path would resolve outside the root directory."""

    code = "path_rejected"


class NotFound(FileToolError):
    code = "not_found"


class NotADirectory(FileToolError):
    code = "not_a_directory"


class IsADirectory(FileToolError):
    code = "is_a_directory"


class InvalidPattern(FileToolError, ValueError):
    """Raised for a malformed glob pattern, before any filesystem access."""

    code = "invalid_pattern"


class IOFailure(FileToolError):
    code = "io_failure"


def translate_os_error(exc: OSError, target: str) -> FileToolError:
    """
    Map an OSError from the filesystem onto the tool error taxonomy.

    The returned error carries the caller's path, never the absolute path
    the OS reported, so the root location does not leak to the caller.
    """
    if exc.errno == errno.ENOENT:
        return NotFound(target)
    if exc.errno == errno.ENOTDIR:
        return NotADirectory(target)
    if exc.errno == errno.EISDIR:
        return IsADirectory(target)
    return IOFailure(target, exc.strerror or exc.__class__.__name__)
