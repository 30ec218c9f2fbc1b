"""Runtime configuration — env-driven, injected into every component.

Centralized config using pydantic-settings. Reads from a .env file and
NIXRM_* environment variables. The store and mirror roots are plain
settings rather than module constants, so tests can point them at
isolated directories.
"""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MirrorSettings(BaseSettings):
    """Settings for a mirroring run.

    Examples
    --------
    Override via environment::

        export NIXRM_MIRROR_ROOT=/tmp/alice-nix/
        export NIXRM_LOG_LEVEL=DEBUG

    Keeping ``mirror_root`` the same length as ``store_root`` keeps
    rewritten binaries byte-for-byte the same size.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="NIXRM_",
        env_file_encoding="utf-8",
    )

    # Roots
    store_root: str = "/nix/store/"
    mirror_root: str = "/tmp/nixrm/"

    # Logging
    log_level: str = "INFO"

    # External tools
    nix_binary: str = "nix"
    ssh_binary: str = "ssh"

    # SSH session
    strict_host_keys: bool = True
    connect_timeout_seconds: float = 30.0

    # Largest single write issued to the remote file
    write_chunk_size: int = 1 << 20

    @field_validator("store_root", "mirror_root")
    @classmethod
    def _trailing_slash(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"root must be absolute: {value!r}")
        return value if value.endswith("/") else value + "/"

    @field_validator("write_chunk_size")
    @classmethod
    def _positive_chunk(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("write_chunk_size must be positive")
        return value

