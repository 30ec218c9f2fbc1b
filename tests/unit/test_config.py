"""Tests for MirrorSettings — env-driven configuration."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from nixrm.config import MirrorSettings


class TestMirrorSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("NIXRM_MIRROR_ROOT", raising=False)
        s = MirrorSettings()
        assert s.store_root == "/nix/store/"
        assert s.mirror_root == "/tmp/nixrm/"
        assert s.strict_host_keys is True
        assert s.write_chunk_size == 1 << 20

    def test_trailing_slash_added(self):
        s = MirrorSettings(mirror_root="/tmp/alice-nix")
        assert s.mirror_root == "/tmp/alice-nix/"

    def test_relative_root_rejected(self):
        with pytest.raises(ValidationError):
            MirrorSettings(mirror_root="relative/path/")

    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            MirrorSettings(write_chunk_size=0)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("NIXRM_MIRROR_ROOT", "/home/u/.nixrm")
        monkeypatch.setenv("NIXRM_STRICT_HOST_KEYS", "false")
        s = MirrorSettings()
        assert s.mirror_root == "/home/u/.nixrm/"
        assert s.strict_host_keys is False
