"""File tree entry models — transient, scoped to one artifact's replication."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class EntryKind(str, Enum):
    """The file types that a store artifact may contain."""

    DIRECTORY = "directory"
    REGULAR_FILE = "regular_file"
    SYMLINK = "symlink"


class FileEntry(BaseModel):
    """One node of an artifact's local tree.

    ``relative_path`` is relative to the store root, so it begins with the
    artifact's own name (``<hash>-<name>/bin/foo``). ``mode`` is the full
    ``st_mode``; ``link_target`` is set for symlinks only.
    """

    model_config = ConfigDict(frozen=True)

    kind: EntryKind
    relative_path: str
    local_path: str
    mode: int = 0
    size: int = 0
    link_target: str | None = None


class DeferredPermission(BaseModel):
    """A mode applied only after every descendant has been written."""

    model_config = ConfigDict(frozen=True)

    remote_path: str
    mode: int

    @property
    def permission_bits(self) -> int:
        return self.mode & 0o777

    @property
    def octal(self) -> str:
        """Three-digit octal string as passed to ``chmod``."""
        return f"{self.permission_bits:03o}"
