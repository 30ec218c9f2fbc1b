"""Mirror orchestrator — the central coordinator for a mirroring run.

The MirrorOrchestrator wires together the InstallationLedger, the closure
diff, the ReferenceRewriter and the TreeReplicator, and drives them
through the run state machine:

    diffing -> installing(i) -> finalizing(i) -> marking(i) -> ... -> done

Any failure moves the run to ``failed`` and is re-raised; the artifact
being worked on stays unmarked and is redone from scratch next run.

Sequencing invariant: every remote operation is issued on the single
transport and completes before the next one starts. There is no overlap
between artifacts or between entries of one artifact. Parallelising across
artifacts would first need a per-artifact lock on the mirror root, which
does not exist; concurrent runs against one mirror root are unsupported.
"""

from __future__ import annotations

import logging

from nixrm.bridge.transport import RemoteTransport
from nixrm.config import MirrorSettings
from nixrm.core.differ import diff_paths
from nixrm.core.installation_ledger import InstallationLedger
from nixrm.core.remap import RemapFunction
from nixrm.core.replicator import TreeReplicator
from nixrm.core.rewriter import ReferenceRewriter
from nixrm.models.closure import Closure
from nixrm.models.states import (
    VALID_TRANSITIONS,
    MirrorReport,
    MirrorState,
    MirrorTransition,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class MirrorOrchestrator:
    """Mirrors a closure onto a remote host.

    Parameters
    ----------
    transport:
        The remote filesystem and command channel.
    settings:
        Store and mirror roots plus tuning. Uses defaults if not provided.
    """

    def __init__(
        self,
        transport: RemoteTransport,
        settings: MirrorSettings | None = None,
    ) -> None:
        self.settings = settings or MirrorSettings()
        self.transport = transport
        self.remap = RemapFunction(self.settings.store_root, self.settings.mirror_root)
        self.ledger = InstallationLedger(transport, self.settings.mirror_root)

        self.state = MirrorState.IDLE
        self.current_artifact: str | None = None
        self._transitions: list[MirrorTransition] = []

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def plan(self, closure: Closure) -> list[str]:
        """Return the closure members that a run would install, in order.

        Read-only: a mirror without a marker container counts as empty.
        """
        self._check_closure(closure)
        return diff_paths(closure.relative_components, self._installed())

    def run(self, closure: Closure) -> MirrorReport:
        """Mirror every missing closure member, then mark it installed.

        Raises the first error encountered; nothing after it is attempted.
        """
        self._check_closure(closure)
        self.state = MirrorState.IDLE
        self.current_artifact = None
        self._transitions = []

        installed: list[str] = []
        self._transition(MirrorState.DIFFING)
        try:
            if not self.transport.is_dir(self.ledger.container):
                self.ledger.ensure()
            already = self.ledger.query()
            missing = diff_paths(closure.relative_components, already)
            logger.info(
                "closure contains %d paths, %d already installed, %d to install",
                len(closure),
                len(already & set(closure.relative_components)),
                len(missing),
            )

            # Built once per run; the closure does not change.
            rewriter = ReferenceRewriter(
                closure.paths,
                self.remap,
                chunk_size=self.settings.write_chunk_size,
            )
            replicator = TreeReplicator(self.transport, self.remap, rewriter)

            for relative in missing:
                self._install(replicator, relative)
                installed.append(relative)
        except Exception as exc:
            logger.error(
                "mirroring failed%s: %s",
                f" at {self.current_artifact}" if self.current_artifact else "",
                exc,
            )
            self._transition(MirrorState.FAILED)
            raise

        self.current_artifact = None
        self._transition(MirrorState.DONE)
        logger.info("done")

        return MirrorReport(
            closure_size=len(closure),
            already_installed=sorted(set(closure.relative_components) - set(installed)),
            installed=installed,
            transitions=list(self._transitions),
        )

    def remote_primary(self, closure: Closure) -> str:
        """Mirrored location of the closure's primary output."""
        return self.remap(closure.primary)

    @property
    def transitions(self) -> list[MirrorTransition]:
        return list(self._transitions)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _install(self, replicator: TreeReplicator, relative: str) -> None:
        self.current_artifact = relative
        self._transition(MirrorState.INSTALLING)
        logger.info("installing %s", relative)
        deferred = replicator.replicate(relative)

        self._transition(MirrorState.FINALIZING)
        replicator.apply_permissions(deferred)

        self._transition(MirrorState.MARKING)
        self.ledger.mark(relative)

    def _installed(self) -> set[str]:
        if not self.transport.is_dir(self.ledger.container):
            return set()
        return self.ledger.query()

    def _check_closure(self, closure: Closure) -> None:
        if closure.store_root != self.remap.store_root:
            raise ValueError(
                f"closure store root {closure.store_root!r} does not match "
                f"configured {self.remap.store_root!r}"
            )

    def _transition(self, target: MirrorState) -> None:
        allowed = VALID_TRANSITIONS.get(self.state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition from {self.state.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )
        self._transitions.append(
            MirrorTransition(
                from_state=self.state,
                to_state=target,
                artifact=self.current_artifact,
            )
        )
        logger.debug("state %s -> %s", self.state.value, target.value)
        self.state = target
