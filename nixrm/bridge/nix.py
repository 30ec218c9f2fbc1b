"""Nix closure resolver — builds an installable and enumerates its closure.

Runs, in order:

- ``nix build --no-link <installable>`` (output streamed to the terminal)
- ``nix path-info --json -r <installable>`` for the full closure
- ``nix path-info --json <installable>`` for the primary output

Requires ``nix`` in PATH with the ``nix-command`` feature enabled.
"""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any

from nixrm.core.errors import BuildFailure, ClosureQueryFailure
from nixrm.models.closure import Closure

logger = logging.getLogger(__name__)


def parse_path_info(raw: str) -> list[str]:
    """Extract store paths from ``nix path-info --json`` output.

    Older nix releases print a list of ``{"path": ...}`` objects; newer
    ones print an object keyed by store path.
    """
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ClosureQueryFailure(f"cannot parse nix path-info output: {exc}") from exc

    if isinstance(data, dict):
        return sorted(data)
    if isinstance(data, list):
        paths = []
        for item in data:
            if not isinstance(item, dict) or not isinstance(item.get("path"), str):
                raise ClosureQueryFailure(f"unexpected path-info entry: {item!r}")
            paths.append(item["path"])
        return paths
    raise ClosureQueryFailure(f"unexpected path-info output type: {type(data).__name__}")


class NixClosureResolver:
    """Resolves an installable to a :class:`Closure`.

    Parameters
    ----------
    installable:
        Anything ``nix build`` accepts (flake reference, store path, ...).
    nix_binary:
        Name or path of the nix executable.
    store_root:
        Store prefix every returned path must live under.
    """

    def __init__(
        self,
        installable: str,
        *,
        nix_binary: str = "nix",
        store_root: str = "/nix/store/",
    ) -> None:
        self.installable = installable
        self.nix_binary = nix_binary
        self.store_root = store_root

    def resolve(self) -> Closure:
        self.build()
        logger.info("loading closure")
        paths = self._path_info(recursive=True)
        primary = self._path_info(recursive=False)
        if len(primary) != 1:
            raise ClosureQueryFailure(
                f"{self.installable} resolves to {len(primary)} outputs, expected exactly one"
            )
        try:
            return Closure(
                store_root=self.store_root,
                paths=frozenset(paths),
                primary=primary[0],
            )
        except ValueError as exc:
            raise ClosureQueryFailure(f"invalid closure for {self.installable}: {exc}") from exc

    def build(self) -> None:
        logger.info("building %s", self.installable)
        result = subprocess.run(
            [self.nix_binary, "build", "--no-link", self.installable],
            check=False,
        )
        if result.returncode != 0:
            raise BuildFailure(
                f"nix build failed for {self.installable} (exit {result.returncode})"
            )

    def _path_info(self, *, recursive: bool) -> list[str]:
        cmd = [self.nix_binary, "path-info", "--json"]
        if recursive:
            cmd.append("-r")
        cmd.append(self.installable)
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            raise ClosureQueryFailure(
                f"{'closure' if recursive else 'path'} query failed for "
                f"{self.installable}: {result.stderr[-2000:].strip()}"
            )
        return parse_path_info(result.stdout)
