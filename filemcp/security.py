from __future__ import annotations

import ntpath
import os
from pathlib import Path
from typing import List

from .errors import PathRejected


def is_absolute(caller_path: str) -> bool:
    """True for any form the OS would treat as rooted, including drive letters on Windows."""
    if os.path.isabs(caller_path) or caller_path.startswith(("/", os.sep)):
        return True
    if os.name == "nt":
        drive, _ = ntpath.splitdrive(caller_path)
        return bool(drive)
    return False


def clean_parts(caller_path: str) -> List[str]:
    """
    Split a caller path into components with '.' and empty segments removed.

    '..' segments are kept so the caller can decide how to apply them. The
    empty list denotes the root itself.
    """
    if "\x00" in caller_path:
        raise PathRejected(caller_path.replace("\x00", "\\0"), "embedded NUL byte")
    if is_absolute(caller_path):
        raise PathRejected(caller_path, "absolute paths are not allowed")

    text = caller_path
    if os.altsep:
        text = text.replace(os.altsep, os.sep)
    return [part for part in text.split(os.sep) if part not in ("", ".")]


def collapse(parts: List[str], caller_path: str) -> List[str]:
    """Apply '..' segments lexically; climbing above the root is rejected."""
    stack: list[str] = []
    for part in parts:
        if part == "..":
            if not stack:
                raise PathRejected(caller_path, "path escapes the root directory")
            stack.pop()
        else:
            stack.append(part)
    return stack


def is_within(root: str, candidate: str) -> bool:
    """
    Check that candidate is root itself or a descendant of it.

    A bare prefix comparison would accept '/home/mike2' for root '/home/mike',
    so the prefix must be followed by a separator.
    """
    if candidate == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return candidate.startswith(prefix)


def confine(root: Path, caller_path: str) -> Path:
    """
    Resolve caller_path lexically against root (normalize-and-prefix-check).

    Symlinks are not inspected: a link inside the root that points elsewhere
    is followed by the later syscall. Use the handle-based filesystem where
    the platform supports it.
    """
    root_str = os.path.normpath(str(root))
    parts = clean_parts(caller_path)
    joined = os.path.normpath(os.path.join(root_str, *parts)) if parts else root_str
    if not is_within(root_str, joined):
        raise PathRejected(caller_path, "path escapes the root directory")
    return Path(joined)
