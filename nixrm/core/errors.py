"""Error taxonomy for a mirroring run.

Every error is fatal to the current run. There is no retry; recovery is
re-running, which skips marked artifacts and wipes a half-installed one.
"""

from __future__ import annotations


class NixrmError(RuntimeError):
    """Base class for every failure surfaced by nixrm."""


class BuildFailure(NixrmError):
    """Raised when ``nix build`` exits non-zero."""


class ClosureQueryFailure(NixrmError):
    """Raised when the closure or primary path cannot be resolved."""


class RemoteSessionFailure(NixrmError):
    """Raised when the SSH or SFTP session cannot be established."""


class NonUtf8Path(NixrmError):
    """Raised for a path that cannot be represented as UTF-8 text."""


class ReplicationError(NixrmError):
    """Raised when a remote filesystem operation fails for one path.

    Parameters
    ----------
    message:
        Human-readable description.
    path:
        The remote path the operation targeted.
    """

    def __init__(self, message: str, *, path: str = "") -> None:
        super().__init__(message)
        self.path = path


class MkdirFailed(ReplicationError):
    """Remote directory creation failed."""


class CreateConflict(ReplicationError):
    """Exclusive remote file creation failed (usually: it already exists)."""


class WriteFailed(ReplicationError):
    """Writing or closing a remote file failed."""


class MarkerWriteFailed(WriteFailed):
    """Writing an installation marker failed."""


class ChmodFailed(ReplicationError):
    """Remote permission change failed."""


class SymlinkFailed(ReplicationError):
    """Remote symlink creation failed."""


class RemoveFailed(ReplicationError):
    """Forced removal of a stale remote artifact failed."""


class SourceReadFailed(ReplicationError):
    """Reading a local store file failed; ``path`` is the local path."""
