"""Unit tests for the MirrorOrchestrator.

Covers the run state machine, plan, failure handling and the run report.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from nixrm.config import MirrorSettings
from nixrm.core.errors import ChmodFailed
from nixrm.core.installation_ledger import InstallationLedger
from nixrm.core.orchestrator import InvalidTransitionError, MirrorOrchestrator
from nixrm.models.closure import Closure
from nixrm.models.states import MirrorState


def _states(orch: MirrorOrchestrator) -> list[tuple[str, str | None]]:
    return [(t.to_state.value, t.artifact) for t in orch.transitions]


# ---------------------------------------------------------------------------
# Test: Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_starts_idle(self, transport, settings: MirrorSettings):
        orch = MirrorOrchestrator(transport, settings)
        assert orch.state == MirrorState.IDLE
        assert orch.current_artifact is None
        assert orch.transitions == []

    def test_default_settings(self, transport):
        orch = MirrorOrchestrator(transport)
        assert orch.remap.store_root == "/nix/store/"
        assert orch.ledger.container == orch.settings.mirror_root + "installed"

    def test_remote_primary(self, transport, settings, make_artifact, make_closure):
        make_artifact("aaa-foo")
        orch = MirrorOrchestrator(transport, settings)
        assert orch.remote_primary(make_closure("aaa-foo")) == settings.mirror_root + "aaa-foo"


# ---------------------------------------------------------------------------
# Test: Run
# ---------------------------------------------------------------------------


class TestRun:
    def test_state_sequence(self, transport, settings, make_artifact, make_closure):
        make_artifact("aaa-foo", {"f": b"x"})
        make_artifact("bbb-bar", {"g": b"y"})
        orch = MirrorOrchestrator(transport, settings)
        orch.run(make_closure("aaa-foo", "bbb-bar"))

        assert _states(orch) == [
            ("diffing", None),
            ("installing", "aaa-foo"),
            ("finalizing", "aaa-foo"),
            ("marking", "aaa-foo"),
            ("installing", "bbb-bar"),
            ("finalizing", "bbb-bar"),
            ("marking", "bbb-bar"),
            ("done", None),
        ]
        assert orch.state == MirrorState.DONE

    def test_nothing_missing_goes_straight_to_done(
        self, transport, settings, make_artifact, make_closure
    ):
        make_artifact("aaa-foo")
        orch = MirrorOrchestrator(transport, settings)
        closure = make_closure("aaa-foo")
        orch.run(closure)
        orch.run(closure)
        assert _states(orch) == [("diffing", None), ("done", None)]

    def test_report(self, transport, settings, make_artifact, make_closure, mirror_root):
        make_artifact("aaa-foo")
        make_artifact("bbb-bar")
        led = InstallationLedger(transport, mirror_root)
        led.ensure()
        led.mark("bbb-bar")

        report = MirrorOrchestrator(transport, settings).run(make_closure("aaa-foo", "bbb-bar"))

        assert report.closure_size == 2
        assert report.installed == ["aaa-foo"]
        assert report.already_installed == ["bbb-bar"]
        assert report.transitions[-1].to_state == MirrorState.DONE

    def test_creates_ledger_container(self, transport, settings, make_artifact, make_closure):
        make_artifact("aaa-foo")
        MirrorOrchestrator(transport, settings).run(make_closure("aaa-foo"))
        assert Path(settings.mirror_root, "installed", "aaa-foo").is_file()

    def test_installs_in_lexicographic_order(
        self, recording_transport, settings, make_artifact, make_closure
    ):
        for name in ("ccc-baz", "aaa-foo", "bbb-bar"):
            make_artifact(name)
        report = MirrorOrchestrator(recording_transport, settings).run(
            make_closure("ccc-baz", "aaa-foo", "bbb-bar")
        )
        assert report.installed == ["aaa-foo", "bbb-bar", "ccc-baz"]

    def test_store_root_mismatch_rejected(self, transport, settings):
        closure = Closure(
            store_root="/other/store/",
            paths=frozenset({"/other/store/aaa-foo"}),
            primary="/other/store/aaa-foo",
        )
        orch = MirrorOrchestrator(transport, settings)
        with pytest.raises(ValueError, match="store root"):
            orch.run(closure)
        assert orch.state == MirrorState.IDLE


# ---------------------------------------------------------------------------
# Test: Failure
# ---------------------------------------------------------------------------


class TestFailure:
    def test_failure_stops_run_and_leaves_artifact_unmarked(
        self, failing_transport, settings, make_artifact, make_closure, mirror_root
    ):
        make_artifact("aaa-foo", {"f": b"x"})
        make_artifact("bbb-bar", {"g": b"y"})
        transport = failing_transport(lambda argv: argv[0] == "chmod")
        orch = MirrorOrchestrator(transport, settings)

        with pytest.raises(ChmodFailed):
            orch.run(make_closure("aaa-foo", "bbb-bar"))

        assert orch.state == MirrorState.FAILED
        assert orch.current_artifact == "aaa-foo"
        assert _states(orch)[-1] == ("failed", "aaa-foo")
        assert not Path(mirror_root, "bbb-bar").exists()
        assert InstallationLedger(transport, mirror_root).query() == set()

    def test_rerun_after_failure_recovers(
        self, transport, failing_transport, settings, make_artifact, make_closure, mirror_root
    ):
        make_artifact("aaa-foo", {"f": b"x"}, modes={"": 0o555})
        closure = make_closure("aaa-foo")
        broken = failing_transport(lambda argv: argv[0] == "chmod" and argv[-1].endswith("/f"))
        with pytest.raises(ChmodFailed):
            MirrorOrchestrator(broken, settings).run(closure)

        report = MirrorOrchestrator(transport, settings).run(closure)

        assert report.installed == ["aaa-foo"]
        assert Path(mirror_root, "aaa-foo", "f").read_bytes() == b"x"

    def test_failed_is_terminal(self, transport, settings):
        orch = MirrorOrchestrator(transport, settings)
        orch.state = MirrorState.FAILED
        with pytest.raises(InvalidTransitionError):
            orch._transition(MirrorState.INSTALLING)


# ---------------------------------------------------------------------------
# Test: Plan
# ---------------------------------------------------------------------------


class TestPlan:
    def test_plan_on_fresh_mirror_is_read_only(
        self, recording_transport, settings, make_artifact, make_closure, mirror_root
    ):
        make_artifact("aaa-foo")
        make_artifact("bbb-bar")
        orch = MirrorOrchestrator(recording_transport, settings)

        assert orch.plan(make_closure("aaa-foo", "bbb-bar")) == ["aaa-foo", "bbb-bar"]
        assert recording_transport.calls == []
        assert not Path(mirror_root).exists()
        assert orch.state == MirrorState.IDLE

    def test_plan_skips_marked(self, transport, settings, make_artifact, make_closure, ledger):
        make_artifact("aaa-foo")
        make_artifact("bbb-bar")
        ledger.mark("aaa-foo")
        orch = MirrorOrchestrator(transport, settings)
        assert orch.plan(make_closure("aaa-foo", "bbb-bar")) == ["bbb-bar"]
