"""nixrm: run nix packages over ssh on a remote host, without root.

A closure is mirrored under an unprivileged remote directory
(``/tmp/nixrm/`` by default) instead of ``/nix/store/``. Store paths
embedded in files and symlinks are rewritten on the fly, file modes are
restored after transfer, and a marker per artifact makes re-runs skip
what is already there.
"""

__version__ = "0.1.0"
__description__ = "Run nix packages over ssh on a remote host, without root"

from nixrm.core.orchestrator import MirrorOrchestrator
from nixrm.cli.app import app as cli

__all__ = ["MirrorOrchestrator", "cli", "__version__"]
