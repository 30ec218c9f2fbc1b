"""Pydantic models shared across nixrm."""

from nixrm.models.closure import Closure
from nixrm.models.entries import DeferredPermission, EntryKind, FileEntry
from nixrm.models.states import (
    VALID_TRANSITIONS,
    MirrorReport,
    MirrorState,
    MirrorTransition,
)

__all__ = [
    "Closure",
    "DeferredPermission",
    "EntryKind",
    "FileEntry",
    "MirrorReport",
    "MirrorState",
    "MirrorTransition",
    "VALID_TRANSITIONS",
]
