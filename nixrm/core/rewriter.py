"""Streaming store-reference rewriter.

Every closure member's full store path is compiled once into a single
bytes regex alternation. File content is scanned left to right; unmatched
spans are copied verbatim, each match is replaced by its remapped path.

Matching is plain byte-substring matching: no attempt is made to detect
reference boundaries. The alternation only contains closure members, so a
false positive is always another valid closure path.
"""

from __future__ import annotations

import contextlib
import io
import logging
import mmap
import os
import re
from collections.abc import Iterable, Iterator
from typing import Any, Protocol

from nixrm.core.remap import RemapFunction, ensure_text

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def map_source(local_path: str | os.PathLike[str]) -> Iterator[bytes | mmap.mmap]:
    """Open *local_path* as a read-only mmap view.

    Zero-length files are not mapped (mmap rejects them); they yield ``b""``.
    """
    with open(local_path, "rb") as fh:
        if os.fstat(fh.fileno()).st_size == 0:
            yield b""
            return
        with mmap.mmap(fh.fileno(), 0, access=mmap.ACCESS_READ) as view:
            yield view


class ByteSink(Protocol):
    """Anything with a ``write(bytes)`` method (remote file, BytesIO, ...)."""

    def write(self, data: bytes) -> Any:
        ...


class ReferenceRewriter:
    """Replaces embedded store paths with their mirrored equivalents.

    Parameters
    ----------
    store_paths:
        Full store paths of every closure member.
    remap:
        The run's RemapFunction.
    chunk_size:
        Upper bound on a single unmatched span handed to the sink.
    """

    def __init__(
        self,
        store_paths: Iterable[str],
        remap: RemapFunction,
        *,
        chunk_size: int = 1 << 20,
    ) -> None:
        self._remap = remap
        self._chunk_size = chunk_size
        # Longest first so the leftmost match is also the longest one.
        encoded = sorted(
            {ensure_text(p).encode("utf-8") for p in store_paths},
            key=lambda b: (-len(b), b),
        )
        self._pattern: re.Pattern[bytes] | None = (
            re.compile(b"|".join(re.escape(p) for p in encoded)) if encoded else None
        )
        logger.debug("Compiled reference matcher over %d store paths.", len(encoded))

    @property
    def pattern(self) -> re.Pattern[bytes] | None:
        return self._pattern

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def find_references(self, buffer: bytes | mmap.mmap) -> list[bytes]:
        """Return every store path occurrence in *buffer*, in order."""
        if self._pattern is None:
            return []
        return [m.group() for m in self._pattern.finditer(buffer)]

    def rewrite_into(self, buffer: bytes | mmap.mmap, sink: ByteSink) -> int:
        """Stream the rewritten form of *buffer* into *sink*.

        Returns the number of bytes written.
        """
        end = len(buffer)
        if end == 0:
            return 0
        if self._pattern is None:
            return self._emit(buffer, 0, end, sink)

        written = 0
        pos = 0
        for match in self._pattern.finditer(buffer):
            start, stop = match.span()
            written += self._emit(buffer, pos, start, sink)
            replacement = self._remap.remap_bytes(match.group())
            sink.write(replacement)
            written += len(replacement)
            pos = stop
        written += self._emit(buffer, pos, end, sink)
        return written

    def rewrite(self, data: bytes) -> bytes:
        """In-memory convenience wrapper around :meth:`rewrite_into`."""
        out = io.BytesIO()
        self.rewrite_into(data, out)
        return out.getvalue()

    def rewrite_file(self, local_path: str | os.PathLike[str], sink: ByteSink) -> int:
        """Rewrite a local file into *sink* through a read-only mmap view."""
        with map_source(local_path) as view:
            return self.rewrite_into(view, sink)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _emit(
        self, buffer: bytes | mmap.mmap, start: int, end: int, sink: ByteSink
    ) -> int:
        """Copy ``buffer[start:end]`` to *sink* in bounded chunks."""
        pos = start
        while pos < end:
            stop = min(pos + self._chunk_size, end)
            sink.write(buffer[pos:stop])
            pos = stop
        return end - start
