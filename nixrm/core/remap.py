"""Store-root to mirror-root path remapping.

``RemapFunction`` is the single place that knows how a store path maps to
its mirrored location. The same mapping is used for remote path
construction, for symlink targets and, in byte form, for rewriting
references embedded in file content.
"""

from __future__ import annotations

import logging

from nixrm.core.errors import NonUtf8Path

logger = logging.getLogger(__name__)


def ensure_text(path: str) -> str:
    """Return *path* unchanged if it round-trips through UTF-8.

    Local paths decoded with ``surrogateescape`` carry lone surrogates for
    undecodable bytes; those are rejected rather than mis-encoded.
    """
    try:
        path.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise NonUtf8Path(
            f"no support for non-utf8 paths: {path.encode('utf-8', 'surrogateescape')!r}"
        ) from exc
    return path


class RemapFunction:
    """Maps ``<store_root><rel>`` to ``<mirror_root><rel>``.

    Parameters
    ----------
    store_root:
        The original store prefix, e.g. ``/nix/store/``.
    mirror_root:
        The unprivileged remote prefix, e.g. ``/tmp/nixrm/``.
    """

    def __init__(self, store_root: str, mirror_root: str) -> None:
        if not store_root.endswith("/") or not mirror_root.endswith("/"):
            raise ValueError("store_root and mirror_root must end with '/'")
        self._store_root = store_root
        self._mirror_root = mirror_root
        self._store_root_bytes = store_root.encode("utf-8")
        self._mirror_root_bytes = mirror_root.encode("utf-8")
        if len(store_root) != len(mirror_root):
            logger.warning(
                "Mirror root %r differs in length from store root %r; "
                "rewritten files will change size.",
                mirror_root,
                store_root,
            )

    @property
    def store_root(self) -> str:
        return self._store_root

    @property
    def mirror_root(self) -> str:
        return self._mirror_root

    def is_store_path(self, path: str) -> bool:
        """Whether *path* lies under the store root."""
        return path.startswith(self._store_root) and len(path) > len(self._store_root)

    def relative(self, path: str) -> str:
        """Strip the store root from *path*."""
        if not self.is_store_path(path):
            raise ValueError(f"{path!r} is not under {self._store_root!r}")
        return path[len(self._store_root):]

    def remote_path(self, relative: str) -> str:
        """Mirror location for a path relative to the store root."""
        return ensure_text(self._mirror_root + relative)

    def __call__(self, path: str) -> str:
        return self.remote_path(self.relative(path))

    def remap_bytes(self, path: bytes) -> bytes:
        """Byte-level remap for references found inside file content."""
        if not path.startswith(self._store_root_bytes):
            raise ValueError(f"{path!r} is not under {self._store_root!r}")
        return self._mirror_root_bytes + path[len(self._store_root_bytes):]

    def __repr__(self) -> str:
        return f"RemapFunction({self._store_root!r} -> {self._mirror_root!r})"
