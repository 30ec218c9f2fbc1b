"""Installation ledger — which artifacts are fully mirrored on the remote.

Layout: ``<mirror_root>installed/<relative-component>``, one zero-length
marker per artifact. A marker is written only after the artifact's tree and
its final permissions are in place, and is never removed by this tool.

Markers are written under a dot-prefixed temporary name and renamed into
place, so a crash mid-write never leaves a marker that looks complete.
Store path names never begin with ``.``; such names are ignored by
:meth:`InstallationLedger.query`.
"""

from __future__ import annotations

import logging
import posixpath

from nixrm.bridge.transport import RemoteTransport
from nixrm.core.errors import MarkerWriteFailed, MkdirFailed
from nixrm.core.remap import ensure_text

logger = logging.getLogger(__name__)

_CONTAINER_NAME = "installed"


class InstallationLedger:
    """Remote marker records for mirrored artifacts.

    Parameters
    ----------
    transport:
        The remote filesystem and command channel.
    mirror_root:
        Remote mirror prefix, ending with ``/``.
    """

    def __init__(self, transport: RemoteTransport, mirror_root: str) -> None:
        self._transport = transport
        self._mirror_root = mirror_root
        self._container = mirror_root + _CONTAINER_NAME

    @property
    def container(self) -> str:
        """Remote directory holding the markers."""
        return self._container

    def ensure(self) -> None:
        """Create the mirror root and marker container if missing."""
        for path in (self._mirror_root, self._container):
            if self._transport.run(["mkdir", "-p", "--", path]) != 0:
                raise MkdirFailed(f"failed to create {path}", path=path)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query(self) -> set[str]:
        """Return the relative components that carry a marker."""
        logger.info("querying existing paths")
        names = self._transport.listdir(self._container)
        return {
            ensure_text(name)
            for name in names
            if name != _CONTAINER_NAME and not name.startswith(".")
        }

    def is_installed(self, relative: str) -> bool:
        return self._transport.exists(self._marker_path(relative))

    # ------------------------------------------------------------------
    # Mark
    # ------------------------------------------------------------------

    def mark(self, relative: str) -> None:
        """Record *relative* as fully mirrored.

        Must only be called once replication and the permission pass for
        the artifact have both succeeded.
        """
        final = self._marker_path(relative)
        partial = posixpath.join(self._container, f".{relative}.partial")
        try:
            if self._transport.exists(partial):
                self._transport.remove(partial)
            self._transport.open_exclusive(partial).close()
            self._transport.rename(partial, final)
        except OSError as exc:
            raise MarkerWriteFailed(
                f"failed to write marker for {relative}: {exc}", path=final
            ) from exc
        logger.debug("marked %s", relative)

    def _marker_path(self, relative: str) -> str:
        if not relative or "/" in relative or relative.startswith("."):
            raise ValueError(f"invalid relative component {relative!r}")
        return ensure_text(posixpath.join(self._container, relative))
