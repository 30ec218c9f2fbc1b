"""Closure models — the set of store paths a build target depends on."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator


class Closure(BaseModel):
    """The transitive closure of one installable.

    ``paths`` holds full store paths (``/nix/store/<hash>-<name>``);
    ``primary`` is the direct build output and must be one of them.
    Immutable once resolved.
    """

    model_config = ConfigDict(frozen=True)

    store_root: str = "/nix/store/"
    paths: frozenset[str]
    primary: str

    @model_validator(mode="after")
    def _check_paths(self) -> Closure:
        root = self.store_root
        for path in self.paths:
            rel = path[len(root):] if path.startswith(root) else ""
            if not rel or "/" in rel:
                raise ValueError(f"{path!r} is not a top-level path under {root!r}")
        if self.primary not in self.paths:
            raise ValueError(f"primary {self.primary!r} is not part of the closure")
        return self

    @property
    def relative_components(self) -> list[str]:
        """Store path names with the root stripped, sorted ascending."""
        return sorted(p[len(self.store_root):] for p in self.paths)

    @property
    def primary_relative(self) -> str:
        return self.primary[len(self.store_root):]

    def __len__(self) -> int:
        return len(self.paths)
