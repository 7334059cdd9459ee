"""
Read-only filesystem MCP server confined to a single root directory.
"""

from .errors import (
    FileToolError,
    InvalidPattern,
    IOFailure,
    IsADirectory,
    NotADirectory,
    NotFound,
    PathRejected,
)
from .filetools import FileTools
from .rootfs import ConfinedFS, HandleRootFS, LexicalRootFS, open_root
from .security import confine
from .types import RootBoundary

__version__ = "0.1.0"

__all__ = [
    "ConfinedFS",
    "FileToolError",
    "FileTools",
    "HandleRootFS",
    "IOFailure",
    "InvalidPattern",
    "IsADirectory",
    "LexicalRootFS",
    "NotADirectory",
    "NotFound",
    "PathRejected",
    "RootBoundary",
    "confine",
    "open_root",
]
