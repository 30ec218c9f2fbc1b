"""Mirror orchestrator state machine models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MirrorState(str, Enum):
    """States of one mirroring run."""

    IDLE = "idle"
    DIFFING = "diffing"
    INSTALLING = "installing"
    FINALIZING = "finalizing"
    MARKING = "marking"
    DONE = "done"
    FAILED = "failed"


# Valid state transitions, enforced by MirrorOrchestrator.
# MARKING loops back to INSTALLING for the next missing artifact.
# Terminal states (DONE, FAILED) have no outgoing transitions.
VALID_TRANSITIONS: dict[MirrorState, set[MirrorState]] = {
    MirrorState.IDLE: {MirrorState.DIFFING},
    MirrorState.DIFFING: {MirrorState.INSTALLING, MirrorState.DONE, MirrorState.FAILED},
    MirrorState.INSTALLING: {MirrorState.FINALIZING, MirrorState.FAILED},
    MirrorState.FINALIZING: {MirrorState.MARKING, MirrorState.FAILED},
    MirrorState.MARKING: {MirrorState.INSTALLING, MirrorState.DONE, MirrorState.FAILED},
    MirrorState.DONE: set(),  # terminal
    MirrorState.FAILED: set(),  # terminal
}


class MirrorTransition(BaseModel):
    """Records a single state transition of a run."""

    model_config = ConfigDict(frozen=True)

    from_state: MirrorState
    to_state: MirrorState
    artifact: str | None = None  # relative component being worked on
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class MirrorReport(BaseModel):
    """Summary of a completed run."""

    model_config = ConfigDict(frozen=True)

    closure_size: int
    already_installed: list[str] = []
    installed: list[str] = []
    transitions: list[MirrorTransition] = []
