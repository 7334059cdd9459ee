from __future__ import annotations

import errno
import os
from datetime import datetime
from pathlib import Path
from typing import Callable

import pytest

from filemcp.errors import (
    FileToolError,
    InvalidPattern,
    IOFailure,
    IsADirectory,
    NotADirectory,
    NotFound,
    PathRejected,
)
from filemcp.filetools import FileTools
from filemcp.rootfs import ConfinedFS
from filemcp.types import DirectoryEntry

Writer = Callable[[Path, bytes], Path]


def test_read_file_returns_exact_bytes(fs: ConfinedFS, write: Writer) -> None:
    root = fs.root.path
    large = bytes(i % 256 for i in range(1024 * 1024))
    write(root / "simple.txt", b"simple content")
    write(root / "empty.txt", b"")
    write(root / "subdir" / "nested.txt", b"nested content")
    write(root / "special.txt", b"line1\nline2\ttab\r\nwindows\x00end")
    write(root / "large.bin", large)

    tools = FileTools(fs)
    cases = {
        "simple.txt": b"simple content",
        "empty.txt": b"",
        "subdir/nested.txt": b"nested content",
        "special.txt": b"line1\nline2\ttab\r\nwindows\x00end",
        "large.bin": large,
    }
    for path, expected in cases.items():
        result = tools.read_file(path)
        assert result.content == expected
        assert result.size == len(expected)
        assert result.path == path


@pytest.mark.parametrize("path", ["missing.txt", "nodir/file.txt"])
def test_read_missing_file(fs: ConfinedFS, path: str) -> None:
    with pytest.raises(NotFound):
        FileTools(fs).read_file(path)


@pytest.mark.parametrize("path", ["", ".", "subdir"])
def test_read_directory_fails(fs: ConfinedFS, write: Writer, path: str) -> None:
    write(fs.root.path / "subdir" / "nested.txt", b"x")
    with pytest.raises(IsADirectory):
        FileTools(fs).read_file(path)


@pytest.mark.parametrize(
    "path",
    [
        "../outside.txt",
        "../../outside.txt",
        "../../../etc/passwd",
        "/etc/passwd",
        "subdir/../../outside.txt",
        "./../../outside.txt",
        "./../outside.txt",
    ],
)
def test_read_file_escape(fs: ConfinedFS, write: Writer, path: str) -> None:
    write(fs.root.path / "inside.txt", b"inside")
    write(fs.root.path.parent / "outside.txt", b"outside")

    tools = FileTools(fs)
    assert tools.read_file("inside.txt").content == b"inside"
    with pytest.raises(PathRejected):
        tools.read_file(path)


def test_read_backslash_traversal_fails(fs: ConfinedFS, write: Writer) -> None:
    write(fs.root.path.parent / "outside.txt", b"outside")
    with pytest.raises(FileToolError):
        FileTools(fs).read_file("..\\outside.txt")


def _sorted(entries: list[DirectoryEntry]) -> list[DirectoryEntry]:
    return sorted(entries, key=lambda entry: entry.name)


def test_list_directory(fs: ConfinedFS, write: Writer) -> None:
    root = fs.root.path
    write(root / "file1.txt", b"content1")
    write(root / "file2.txt", b"content2")
    write(root / "subdir" / "nested.txt", b"nested")
    write(root / "subdir" / "another.txt", b"another")
    write(root / "empty" / ".gitkeep", b"")

    tools = FileTools(fs)
    top = [
        DirectoryEntry(name="empty", size=0, is_dir=True),
        DirectoryEntry(name="file1.txt", size=8, is_dir=False),
        DirectoryEntry(name="file2.txt", size=8, is_dir=False),
        DirectoryEntry(name="subdir", size=0, is_dir=True),
    ]
    for path in (".", ""):
        result = tools.list_directory(path)
        assert _sorted(result.entries) == top
        assert result.count == 4
        assert result.path == path

    assert _sorted(tools.list_directory("subdir").entries) == [
        DirectoryEntry(name="another.txt", size=7, is_dir=False),
        DirectoryEntry(name="nested.txt", size=6, is_dir=False),
    ]
    assert tools.list_directory("empty").entries == [DirectoryEntry(name=".gitkeep", size=0, is_dir=False)]


def test_list_default_path_is_root(fs: ConfinedFS, write: Writer) -> None:
    write(fs.root.path / "a.txt", b"a")
    assert [entry.name for entry in FileTools(fs).list_directory().entries] == ["a.txt"]


def test_list_empty_directory(fs: ConfinedFS) -> None:
    (fs.root.path / "fresh").mkdir()
    result = FileTools(fs).list_directory("fresh")
    assert result.entries == []
    assert result.count == 0


def test_list_errors(fs: ConfinedFS, write: Writer) -> None:
    write(fs.root.path / "file1.txt", b"content1")
    tools = FileTools(fs)
    with pytest.raises(NotFound):
        tools.list_directory("nonexistent")
    with pytest.raises(NotADirectory):
        tools.list_directory("file1.txt")


@pytest.mark.parametrize("path", ["..", "../..", "../../../etc", "/etc", "inside/../..", "./../../"])
def test_list_directory_escape(fs: ConfinedFS, write: Writer, path: str) -> None:
    write(fs.root.path / "inside" / "file.txt", b"inside")
    (fs.root.path.parent / "outsidedir").mkdir()

    tools = FileTools(fs)
    entries = tools.list_directory("inside").entries
    assert [entry.name for entry in entries] == ["file.txt"]
    with pytest.raises(PathRejected):
        tools.list_directory(path)


def test_search_files_by_base_name(fs: ConfinedFS, write: Writer) -> None:
    root = fs.root.path
    write(root / "a.txt", b"a")
    write(root / "sub" / "b.txt", b"b")
    write(root / "a.go", b"package main")

    result = FileTools(fs).search_files("*.txt")
    assert sorted(result.matches) == ["a.txt", "sub/b.txt"]
    assert result.count == 2
    assert result.pattern == "*.txt"


def test_search_includes_hidden_and_skips_directories(fs: ConfinedFS, write: Writer) -> None:
    root = fs.root.path
    write(root / ".hidden.txt", b"h")
    write(root / ".git" / "config.txt", b"c")
    (root / "dir.txt").mkdir()

    matches = FileTools(fs).search_files("*.txt").matches
    assert sorted(matches) == [".git/config.txt", ".hidden.txt"]


def test_search_character_classes(fs: ConfinedFS, write: Writer) -> None:
    root = fs.root.path
    for name in ("test1.md", "test2.md", "testa.md", "notes.md"):
        write(root / "docs" / name, b"")

    tools = FileTools(fs)
    assert sorted(tools.search_files("test[0-9].md").matches) == ["docs/test1.md", "docs/test2.md"]
    assert tools.search_files("test[^0-9].md").matches == ["docs/testa.md"]
    assert sorted(tools.search_files("test?.md").matches) == [
        "docs/test1.md",
        "docs/test2.md",
        "docs/testa.md",
    ]
    assert tools.search_files("*.go").matches == []


@pytest.mark.parametrize("pattern", ["[", "[a-", "abc[", "[]"])
def test_search_invalid_pattern_does_not_walk(
    fs: ConfinedFS, monkeypatch: pytest.MonkeyPatch, pattern: str
) -> None:
    def fail_walk():
        raise AssertionError("walk must not start for an invalid pattern")

    monkeypatch.setattr(fs, "walk_files", fail_walk)
    with pytest.raises(InvalidPattern):
        FileTools(fs).search_files(pattern)


@pytest.mark.skipif(not hasattr(os, "geteuid") or os.geteuid() == 0, reason="needs an unprivileged user")
def test_search_fails_fast_on_unreadable_directory(fs: ConfinedFS, write: Writer) -> None:
    root = fs.root.path
    write(root / "a.txt", b"a")
    locked = root / "locked"
    write(locked / "b.txt", b"b")
    locked.chmod(0)
    try:
        with pytest.raises(IOFailure):
            FileTools(fs).search_files("*.txt")
    finally:
        locked.chmod(0o755)


def test_search_discards_matches_when_walk_fails(fs: ConfinedFS, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_walk():
        yield "a.txt"
        raise IOFailure(".", "permission denied")

    monkeypatch.setattr(fs, "walk_files", broken_walk)
    with pytest.raises(IOFailure):
        FileTools(fs).search_files("*.txt")


def test_search_fails_on_directory_that_cannot_be_opened(
    fs: ConfinedFS, write: Writer, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = fs.root.path
    write(root / "a.txt", b"a")
    write(root / "locked" / "b.txt", b"b")
    real_scandir = os.scandir
    real_open = os.open

    def denied(path: object) -> bool:
        return isinstance(path, (str, bytes)) and os.path.basename(os.fsdecode(path)) == "locked"

    def guarded_scandir(path=os.curdir):
        if denied(path):
            raise PermissionError(errno.EACCES, "Permission denied", path)
        return real_scandir(path)

    def guarded_open(path, flags, mode=0o777, *, dir_fd=None):
        if denied(path):
            raise PermissionError(errno.EACCES, "Permission denied", path)
        return real_open(path, flags, mode, dir_fd=dir_fd)

    monkeypatch.setattr(os, "scandir", guarded_scandir)
    monkeypatch.setattr(os, "open", guarded_open)
    with pytest.raises(IOFailure):
        FileTools(fs).search_files("*.txt")


def test_get_file_info_for_root(fs: ConfinedFS, write: Writer) -> None:
    write(fs.root.path / "a.txt", b"abc")
    info = FileTools(fs).get_file_info("")
    assert info.is_dir is True
    assert info.size == 0
    assert info.path == ""
    assert info.mode.startswith("d")


def test_get_file_info_for_file(fs: ConfinedFS, write: Writer) -> None:
    target = write(fs.root.path / "sub" / "a.txt", b"abcdef")
    target.chmod(0o640)

    info = FileTools(fs).get_file_info("sub/a.txt")
    assert info.is_dir is False
    assert info.size == 6
    assert info.path == "sub/a.txt"
    if os.name != "nt":
        assert info.mode == "-rw-r-----"

    modified = datetime.fromisoformat(info.mod_time)
    assert modified.tzinfo is not None
    assert abs(modified.timestamp() - target.stat().st_mtime) < 1


def test_get_file_info_errors(fs: ConfinedFS) -> None:
    tools = FileTools(fs)
    with pytest.raises(NotFound):
        tools.get_file_info("missing.txt")
    with pytest.raises(PathRejected):
        tools.get_file_info("../")
    with pytest.raises(PathRejected):
        tools.get_file_info("/")


@pytest.mark.parametrize("path", ["a.txt/x", "sub/a.txt/x/y"])
def test_file_used_as_directory_is_not_found(fs: ConfinedFS, write: Writer, path: str) -> None:
    write(fs.root.path / "a.txt", b"a")
    write(fs.root.path / "sub" / "a.txt", b"a")
    tools = FileTools(fs)
    with pytest.raises(NotFound):
        tools.read_file(path)
    with pytest.raises(NotFound):
        tools.get_file_info(path)
    with pytest.raises(NotFound):
        tools.list_directory(path)


def test_read_fifo_fails_without_blocking(fs: ConfinedFS) -> None:
    if not hasattr(os, "mkfifo"):
        pytest.skip("named pipes are not available")
    os.mkfifo(fs.root.path / "pipe")
    with pytest.raises(IOFailure):
        FileTools(fs).read_file("pipe")
    assert FileTools(fs).get_file_info("pipe").mode.startswith("p")
