"""Tree replicator — copies one store artifact onto the remote mirror.

Per-entry protocol, in pre-order (parents before children, siblings in
name order):

- Directory: SFTP mkdir at the remapped path; mode deferred.
- Regular file: exclusive create, rewritten content streamed in, close,
  ``chmod`` of the low 9 bits; mode also deferred.
- Symlink: absolute targets inside the store are remapped, relative
  targets are kept as-is; recreated with ``ln -s``.

Directories stay writable while they are populated. Deferred modes are
re-applied by :meth:`TreeReplicator.apply_permissions` once the whole tree
exists.

A remote object already sitting at the artifact's top-level path is the
leftover of an interrupted run. It is removed recursively, with a warning,
before anything is created.
"""

from __future__ import annotations

import contextlib
import logging
import os
import stat
from collections.abc import Iterator

from nixrm.bridge.transport import RemoteTransport
from nixrm.core.errors import (
    ChmodFailed,
    CreateConflict,
    MkdirFailed,
    RemoveFailed,
    ReplicationError,
    SourceReadFailed,
    SymlinkFailed,
    WriteFailed,
)
from nixrm.core.remap import RemapFunction, ensure_text
from nixrm.core.rewriter import ReferenceRewriter, map_source
from nixrm.models.entries import DeferredPermission, EntryKind, FileEntry

logger = logging.getLogger(__name__)


def walk_artifact(store_root: str, relative: str) -> Iterator[FileEntry]:
    """Yield the entries of ``<store_root><relative>`` in pre-order.

    The artifact itself may be a directory, a regular file or a symlink.
    Symlinks are never followed.
    """
    yield from _walk(store_root + relative, relative)


def _walk(local_path: str, relative: str) -> Iterator[FileEntry]:
    # Names must be text before they reach a model or a remote path.
    ensure_text(local_path)
    st = os.lstat(local_path)
    if stat.S_ISDIR(st.st_mode):
        yield FileEntry(
            kind=EntryKind.DIRECTORY,
            relative_path=relative,
            local_path=local_path,
            mode=st.st_mode,
        )
        for name in sorted(os.listdir(local_path)):
            yield from _walk(os.path.join(local_path, name), f"{relative}/{name}")
    elif stat.S_ISREG(st.st_mode):
        yield FileEntry(
            kind=EntryKind.REGULAR_FILE,
            relative_path=relative,
            local_path=local_path,
            mode=st.st_mode,
            size=st.st_size,
        )
    elif stat.S_ISLNK(st.st_mode):
        yield FileEntry(
            kind=EntryKind.SYMLINK,
            relative_path=relative,
            local_path=local_path,
            link_target=ensure_text(os.readlink(local_path)),
        )
    else:
        raise ReplicationError(
            f"unsupported file type {stat.filemode(st.st_mode)!r} at {local_path}",
            path=local_path,
        )


class TreeReplicator:
    """Replicates artifacts through a RemoteTransport.

    Parameters
    ----------
    transport:
        The remote filesystem and command channel.
    remap:
        Store-root to mirror-root mapping.
    rewriter:
        Reference rewriter built over the whole closure.
    """

    def __init__(
        self,
        transport: RemoteTransport,
        remap: RemapFunction,
        rewriter: ReferenceRewriter,
    ) -> None:
        self._transport = transport
        self._remap = remap
        self._rewriter = rewriter

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def replicate(self, relative: str) -> list[DeferredPermission]:
        """Copy the artifact named *relative* and return its deferred modes.

        The caller applies the returned modes with :meth:`apply_permissions`.
        """
        top = self._remap.remote_path(relative)
        self.remove_stale(top)

        deferred: list[DeferredPermission] = []
        for entry in walk_artifact(self._remap.store_root, relative):
            remote = self._remap.remote_path(entry.relative_path)
            logger.debug("processing %s", remote)
            if entry.kind is EntryKind.DIRECTORY:
                self._replicate_directory(remote)
                deferred.append(DeferredPermission(remote_path=remote, mode=entry.mode))
            elif entry.kind is EntryKind.REGULAR_FILE:
                self._replicate_file(entry, remote)
                deferred.append(DeferredPermission(remote_path=remote, mode=entry.mode))
            else:
                self._replicate_symlink(entry, remote)
        return deferred

    def apply_permissions(self, deferred: list[DeferredPermission]) -> None:
        """Re-apply every deferred mode in recorded order."""
        for perm in deferred:
            self._chmod(perm)

    def remove_stale(self, remote: str) -> None:
        """Remove a leftover remote object at an artifact's top-level path."""
        if not self._transport.exists(remote):
            return
        logger.warning("%s exists, that is unexpected, removing", remote)
        if self._transport.is_dir(remote):
            # Finalized directories are read-only; rm needs write access.
            if self._transport.run(["chmod", "-R", "--", "u+w", remote]) != 0:
                logger.warning("could not make %s writable before removal", remote)
        if self._transport.run(["rm", "-rf", "--", remote]) != 0:
            raise RemoveFailed(f"rm failed for {remote}", path=remote)

    # ------------------------------------------------------------------
    # Per-entry protocol
    # ------------------------------------------------------------------

    def _replicate_directory(self, remote: str) -> None:
        try:
            self._transport.mkdir(remote)
        except FileExistsError as exc:
            if not self._transport.is_dir(remote):
                raise MkdirFailed(f"mkdir failed at {remote}: {exc}", path=remote) from exc
            logger.debug("directory %s already exists", remote)
        except OSError as exc:
            raise MkdirFailed(f"mkdir failed at {remote}: {exc}", path=remote) from exc

    def _replicate_file(self, entry: FileEntry, remote: str) -> None:
        with contextlib.ExitStack() as stack:
            # Local source is mapped before anything is created remotely.
            try:
                source = stack.enter_context(map_source(entry.local_path))
            except OSError as exc:
                raise SourceReadFailed(
                    f"cannot read {entry.local_path}: {exc}", path=entry.local_path
                ) from exc

            try:
                handle = self._transport.open_exclusive(remote)
            except OSError as exc:
                raise CreateConflict(f"create failed at {remote}: {exc}", path=remote) from exc

            try:
                try:
                    self._rewriter.rewrite_into(source, handle)
                finally:
                    handle.close()
            except OSError as exc:
                raise WriteFailed(f"write failed at {remote}: {exc}", path=remote) from exc

        self._chmod(DeferredPermission(remote_path=remote, mode=entry.mode))

    def _replicate_symlink(self, entry: FileEntry, remote: str) -> None:
        target = entry.link_target or ""
        if os.path.isabs(target):
            if self._remap.is_store_path(target):
                target = self._remap(target)
            else:
                logger.warning("%s points outside the store (%s), kept as-is", remote, target)
        target = ensure_text(target)
        if self._transport.run(["ln", "-s", "--", target, remote]) != 0:
            raise SymlinkFailed(f"ln failed for {remote} -> {target}", path=remote)

    def _chmod(self, perm: DeferredPermission) -> None:
        if self._transport.run(["chmod", "--", perm.octal, perm.remote_path]) != 0:
            raise ChmodFailed(
                f"chmod {perm.octal} failed for {perm.remote_path}",
                path=perm.remote_path,
            )
