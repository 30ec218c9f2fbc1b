"""Helpers shared by the CLI commands."""

from __future__ import annotations

from nixrm.bridge.transport import LocalTransport, RemoteTransport, SSHTransport
from nixrm.config import MirrorSettings


def open_transport(
    destination: str, settings: MirrorSettings, *, local: bool = False
) -> RemoteTransport:
    """Open the transport for *destination*.

    With ``local`` the mirror root is treated as a local directory and no
    SSH session is opened.
    """
    if local:
        return LocalTransport()
    return SSHTransport.connect(destination, settings)
