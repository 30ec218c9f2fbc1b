"""Shared test fixtures for nixrm.

Tests mirror a fake store under ``tmp_path`` into a local mirror directory
through ``LocalTransport``, so every remote operation is real but local.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pytest

from nixrm.bridge.transport import LocalTransport, RemoteFile
from nixrm.config import MirrorSettings
from nixrm.core.installation_ledger import InstallationLedger
from nixrm.core.remap import RemapFunction
from nixrm.models.closure import Closure


class RecordingTransport(LocalTransport):
    """LocalTransport that records every call that can change the mirror."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []

    def run(self, argv: Sequence[str]) -> int:
        self.calls.append(("run", tuple(argv)))
        return super().run(argv)

    def mkdir(self, path: str) -> None:
        self.calls.append(("mkdir", path))
        super().mkdir(path)

    def open_exclusive(self, path: str) -> RemoteFile:
        self.calls.append(("open_exclusive", path))
        return super().open_exclusive(path)

    def rename(self, src: str, dst: str) -> None:
        self.calls.append(("rename", (src, dst)))
        super().rename(src, dst)

    def remove(self, path: str) -> None:
        self.calls.append(("remove", path))
        super().remove(path)


class FailingTransport(LocalTransport):
    """LocalTransport whose commands fail when ``predicate(argv)`` is true."""

    def __init__(self, predicate: Callable[[Sequence[str]], bool]) -> None:
        self._predicate = predicate

    def run(self, argv: Sequence[str]) -> int:
        if self._predicate(argv):
            return 1
        return super().run(argv)


@pytest.fixture
def store_root(tmp_path: Path) -> str:
    """A fake store directory, as a root string ending with '/'."""
    root = tmp_path / "nix" / "store"
    root.mkdir(parents=True)
    return str(root) + "/"


@pytest.fixture
def mirror_root(tmp_path: Path) -> str:
    """The mirror root; not created up front, the ledger creates it."""
    return str(tmp_path / "mirror") + "/"


@pytest.fixture
def settings(store_root: str, mirror_root: str) -> MirrorSettings:
    return MirrorSettings(store_root=store_root, mirror_root=mirror_root)


@pytest.fixture
def remap(store_root: str, mirror_root: str) -> RemapFunction:
    return RemapFunction(store_root, mirror_root)


@pytest.fixture
def transport() -> LocalTransport:
    return LocalTransport()


@pytest.fixture
def recording_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def ledger(transport: LocalTransport, mirror_root: str) -> InstallationLedger:
    """An InstallationLedger with its container already created."""
    led = InstallationLedger(transport, mirror_root)
    led.ensure()
    return led


# ---------------------------------------------------------------------------
# Store factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_artifact(store_root: str) -> Callable[..., str]:
    """Factory fixture: build a store artifact directory.

    ``files`` maps relative file paths to bytes, ``symlinks`` maps relative
    link paths to targets, ``modes`` maps relative paths (``""`` for the
    artifact itself) to modes applied after everything is created.
    Returns the full store path.
    """

    def _factory(
        name: str,
        files: dict[str, bytes] | None = None,
        *,
        symlinks: dict[str, str] | None = None,
        modes: dict[str, int] | None = None,
    ) -> str:
        top = Path(store_root + name)
        top.mkdir()
        for rel, content in (files or {}).items():
            path = top / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        for rel, target in (symlinks or {}).items():
            path = top / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(target, path)
        # Deepest paths first so read-only parents are applied last.
        for rel, mode in sorted((modes or {}).items(), key=lambda kv: -len(kv[0])):
            os.chmod(top / rel if rel else top, mode)
        return str(top)

    return _factory


@pytest.fixture
def make_closure(store_root: str) -> Callable[..., Closure]:
    """Factory fixture: a Closure over names already present in the store."""

    def _factory(*names: str, primary: str | None = None) -> Closure:
        paths = frozenset(store_root + n for n in names)
        return Closure(
            store_root=store_root,
            paths=paths,
            primary=store_root + (primary or names[0]),
        )

    return _factory


@pytest.fixture
def failing_transport() -> Callable[[Callable[[Sequence[str]], bool]], FailingTransport]:
    """Factory fixture: a FailingTransport for the given argv predicate."""
    return FailingTransport
