from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterator

import pytest

from filemcp.rootfs import ConfinedFS, HandleRootFS, open_root
from filemcp.types import RootBoundary


@pytest.fixture
def root_dir(tmp_path: Path) -> Path:
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def write() -> Callable[[Path, bytes], Path]:
    def _write(path: Path, content: bytes = b"") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    return _write


@pytest.fixture(params=["lexical", "handle"])
def fs(request: pytest.FixtureRequest, root_dir: Path) -> Iterator[ConfinedFS]:
    if request.param == "handle" and not HandleRootFS.supported():
        pytest.skip("descriptor-based confinement is not supported on this platform")
    with open_root(RootBoundary(path=root_dir), request.param) as confined:
        yield confined


@pytest.fixture
def handle_fs(root_dir: Path) -> Iterator[ConfinedFS]:
    if not HandleRootFS.supported():
        pytest.skip("descriptor-based confinement is not supported on this platform")
    with open_root(RootBoundary(path=root_dir), "handle") as confined:
        yield confined
