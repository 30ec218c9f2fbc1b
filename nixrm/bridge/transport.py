"""Remote transport — the filesystem and command channel to the target host.

Bridge boundary
---------------
The replicator and ledger depend only on the ``RemoteTransport`` Protocol.
Two backends satisfy it:

1. **SSHTransport**: paramiko ``SSHClient`` for commands plus an SFTP
   session for file operations. Used against real hosts.
2. **LocalTransport**: the same operations against the local filesystem,
   with commands run through ``subprocess``. Used by tests and for local
   mirrors.

Operations are blocking and are issued one at a time; the SFTP channel is
never shared between concurrent callers.
"""

from __future__ import annotations

import errno
import logging
import os
import shlex
import stat
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import paramiko

from nixrm.config import MirrorSettings
from nixrm.core.errors import RemoteSessionFailure

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class RemoteFile(Protocol):
    """A writable remote file handle."""

    def write(self, data: bytes) -> Any:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class RemoteTransport(Protocol):
    """Protocol for the remote side of a mirroring run.

    Filesystem methods raise ``OSError`` subclasses on failure
    (``FileExistsError`` and ``FileNotFoundError`` where applicable).
    ``run`` returns the command's exit status.
    """

    def run(self, argv: Sequence[str]) -> int:
        """Execute *argv* on the remote host and return its exit status."""
        ...

    def exists(self, path: str) -> bool:
        """Whether anything (including a dangling symlink) exists at *path*."""
        ...

    def is_dir(self, path: str) -> bool:
        ...

    def mkdir(self, path: str) -> None:
        ...

    def listdir(self, path: str) -> list[str]:
        ...

    def open_exclusive(self, path: str) -> RemoteFile:
        """Create *path* for writing; fail if it already exists."""
        ...

    def rename(self, src: str, dst: str) -> None:
        ...

    def remove(self, path: str) -> None:
        ...

    def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# Local backend
# ---------------------------------------------------------------------------


class LocalTransport:
    """RemoteTransport over the local filesystem.

    Commands run through ``subprocess`` with the same argv the SSH backend
    would send, so chmod/ln/rm semantics are identical.
    """

    def run(self, argv: Sequence[str]) -> int:
        result = subprocess.run(
            list(argv),
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            logger.debug(
                "LocalTransport.run: %s exited %d: %s",
                shlex.join(argv),
                result.returncode,
                result.stderr.strip(),
            )
        return result.returncode

    def exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def is_dir(self, path: str) -> bool:
        try:
            return stat.S_ISDIR(os.lstat(path).st_mode)
        except FileNotFoundError:
            return False

    def mkdir(self, path: str) -> None:
        os.mkdir(path)

    def listdir(self, path: str) -> list[str]:
        return os.listdir(path)

    def open_exclusive(self, path: str) -> RemoteFile:
        return open(path, "xb")

    def rename(self, src: str, dst: str) -> None:
        os.replace(src, dst)

    def remove(self, path: str) -> None:
        os.unlink(path)

    def close(self) -> None:
        pass

    def __enter__(self) -> LocalTransport:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return "LocalTransport()"


# ---------------------------------------------------------------------------
# SSH backend
# ---------------------------------------------------------------------------


class _SFTPWriter:
    """Wraps an ``SFTPFile`` so session-level errors surface as ``OSError``.

    Writes are not pipelined: each write request is acknowledged by the
    server, so a failed remote write raises here or from ``close``.
    """

    def __init__(self, handle: paramiko.SFTPFile, path: str) -> None:
        self._handle = handle
        self._path = path

    def write(self, data: bytes) -> None:
        try:
            self._handle.write(data)
        except (paramiko.SSHException, EOFError) as exc:
            raise OSError(f"write to {self._path} failed: {exc}") from exc

    def close(self) -> None:
        try:
            self._handle.close()
        except (paramiko.SSHException, EOFError) as exc:
            raise OSError(f"close of {self._path} failed: {exc}") from exc


def parse_destination(destination: str) -> tuple[str | None, str, int | None]:
    """Split ``[user@]host[:port]`` into its parts."""
    user: str | None = None
    host = destination
    port: int | None = None
    if "@" in host:
        user, host = host.rsplit("@", 1)
    if host.count(":") == 1:
        host, raw_port = host.split(":", 1)
        try:
            port = int(raw_port)
        except ValueError:
            raise RemoteSessionFailure(f"invalid port in destination {destination!r}") from None
    if not host:
        raise RemoteSessionFailure(f"invalid destination {destination!r}")
    return user, host, port


def _load_ssh_config(host: str) -> dict[str, Any]:
    """Look *host* up in ``~/.ssh/config``, if present."""
    path = Path("~/.ssh/config").expanduser()
    if not path.exists():
        return {}
    return dict(paramiko.SSHConfig.from_path(str(path)).lookup(host))


class SSHTransport:
    """RemoteTransport over a paramiko SSH session and SFTP channel.

    Use :meth:`connect` rather than the constructor.

    Parameters
    ----------
    client:
        A connected ``paramiko.SSHClient``.
    sftp:
        An SFTP session opened on *client*.
    destination:
        The destination string, for logging.
    """

    def __init__(
        self,
        client: paramiko.SSHClient,
        sftp: paramiko.SFTPClient,
        destination: str,
    ) -> None:
        self._client = client
        self._sftp = sftp
        self._destination = destination

    @classmethod
    def connect(cls, destination: str, settings: MirrorSettings) -> SSHTransport:
        """Open an SSH session and SFTP channel to *destination*.

        Known hosts come from the system and user known_hosts files; with
        ``strict_host_keys`` (the default) unknown hosts are rejected.
        """
        user, host, port = parse_destination(destination)
        ssh_config = _load_ssh_config(host)

        client = paramiko.SSHClient()
        client.load_system_host_keys()
        if settings.strict_host_keys:
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            logger.warning("Host key checking disabled for %s.", host)
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs: dict[str, Any] = {
            "hostname": ssh_config.get("hostname", host),
            "port": port or int(ssh_config.get("port", 22)),
            "timeout": settings.connect_timeout_seconds,
        }
        username = user or ssh_config.get("user")
        if username:
            connect_kwargs["username"] = username
        if ssh_config.get("identityfile"):
            connect_kwargs["key_filename"] = ssh_config["identityfile"]

        logger.info("Connecting to %s", destination)
        try:
            client.connect(**connect_kwargs)
            sftp = client.open_sftp()
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise RemoteSessionFailure(f"cannot connect to {destination}: {exc}") from exc
        return cls(client, sftp, destination)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def run(self, argv: Sequence[str]) -> int:
        command = shlex.join(argv)
        try:
            _, stdout, stderr = self._client.exec_command(command)
            # Drain stderr first; a full channel window blocks the exit status.
            err = stderr.read().decode("utf-8", "replace").strip()
            status = stdout.channel.recv_exit_status()
        except paramiko.SSHException as exc:
            raise RemoteSessionFailure(f"command failed to start: {command}: {exc}") from exc
        if status != 0:
            logger.debug("SSHTransport.run: %s exited %d: %s", command, status, err)
        return status

    # ------------------------------------------------------------------
    # SFTP
    # ------------------------------------------------------------------

    def exists(self, path: str) -> bool:
        try:
            self._sftp.lstat(path)
        except FileNotFoundError:
            return False
        return True

    def is_dir(self, path: str) -> bool:
        try:
            mode = self._sftp.lstat(path).st_mode
        except FileNotFoundError:
            return False
        return mode is not None and stat.S_ISDIR(mode)

    def mkdir(self, path: str) -> None:
        try:
            self._sftp.mkdir(path)
        except OSError as exc:
            # SFTP reports EEXIST as a generic failure without errno.
            if self.exists(path):
                raise FileExistsError(errno.EEXIST, "File exists", path) from exc
            raise

    def listdir(self, path: str) -> list[str]:
        return self._sftp.listdir(path)

    def open_exclusive(self, path: str) -> RemoteFile:
        handle = self._sftp.open(path, "wx")
        return _SFTPWriter(handle, path)

    def rename(self, src: str, dst: str) -> None:
        self._sftp.posix_rename(src, dst)

    def remove(self, path: str) -> None:
        self._sftp.remove(path)

    def close(self) -> None:
        try:
            self._sftp.close()
        finally:
            self._client.close()
        logger.info("Closed SSH session to %s.", self._destination)

    def __enter__(self) -> SSHTransport:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SSHTransport(destination={self._destination!r})"
