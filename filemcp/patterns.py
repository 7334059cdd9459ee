"""
Shell-style matching of file base names.

fnmatch accepts any string as a pattern and silently treats a stray '[' as a
literal, so patterns are compiled here instead: '*' matches any run of
characters, '?' a single character, '[...]' a character class with ranges
and '^' or '!' negation, and '\\' escapes the next character (except on
Windows, where it is the path separator). Malformed patterns raise
InvalidPattern before anything touches the filesystem.
"""

from __future__ import annotations

import os
import re
from typing import List, Pattern, Tuple

from .errors import InvalidPattern

_ESCAPES = os.sep != "\\"


def _class_char(pattern: str, pos: int) -> Tuple[str, int]:
    if pos >= len(pattern):
        raise InvalidPattern(pattern, "unterminated character class")
    char = pattern[pos]
    if char in "-]":
        raise InvalidPattern(pattern, f"unexpected {char!r} in character class")
    if char == "\\" and _ESCAPES:
        pos += 1
        if pos >= len(pattern):
            raise InvalidPattern(pattern, "unterminated character class")
        char = pattern[pos]
    return char, pos + 1


def _parse_class(pattern: str, pos: int) -> Tuple[str, int]:
    """Translate a class starting just after '[' into a regex class."""
    negate = False
    if pos < len(pattern) and pattern[pos] in "^!":
        negate = True
        pos += 1

    items: List[str] = []
    while True:
        if pos >= len(pattern):
            raise InvalidPattern(pattern, "unterminated character class")
        if pattern[pos] == "]" and items:
            pos += 1
            break
        lo, pos = _class_char(pattern, pos)
        if pos < len(pattern) and pattern[pos] == "-":
            hi, pos = _class_char(pattern, pos + 1)
            if hi < lo:
                raise InvalidPattern(pattern, f"bad range {lo}-{hi}")
            items.append(f"{re.escape(lo)}-{re.escape(hi)}")
        else:
            items.append(re.escape(lo))

    return "[" + ("^" if negate else "") + "".join(items) + "]", pos


def compile_pattern(pattern: str) -> Pattern[str]:
    parts: List[str] = []
    pos = 0
    while pos < len(pattern):
        char = pattern[pos]
        pos += 1
        if char == "*":
            while pos < len(pattern) and pattern[pos] == "*":
                pos += 1
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        elif char == "[":
            translated, pos = _parse_class(pattern, pos)
            parts.append(translated)
        elif char == "\\" and _ESCAPES:
            if pos >= len(pattern):
                raise InvalidPattern(pattern, "trailing backslash")
            parts.append(re.escape(pattern[pos]))
            pos += 1
        else:
            parts.append(re.escape(char))
    return re.compile("(?s:" + "".join(parts) + r")\Z")


def match(pattern: Pattern[str], name: str) -> bool:
    return pattern.match(name) is not None
