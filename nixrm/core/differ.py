"""Closure diff — which store paths still need to be mirrored."""

from __future__ import annotations

from collections.abc import Iterable


def diff_paths(closure: Iterable[str], installed: Iterable[str]) -> list[str]:
    """Return ``closure - installed`` sorted ascending.

    Both arguments are relative components (store path names without the
    root). The fixed order makes installation order reproducible across
    runs, independent of remote directory listing order.
    """
    return sorted(set(closure).difference(installed))
