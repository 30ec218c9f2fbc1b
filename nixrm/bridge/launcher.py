"""Final handoff — runs the user's command on the remote host.

The mirrored primary output's ``bin/`` is prepended to ``PATH`` and the
command is executed through an interactive ``ssh -t`` session that
replaces the current process.
"""

from __future__ import annotations

import logging
import os
import shlex
from typing import NoReturn

from nixrm.core.remap import ensure_text

logger = logging.getLogger(__name__)


def build_launch_argv(
    destination: str,
    primary_remote: str,
    command: str,
    *,
    ssh_binary: str = "ssh",
) -> list[str]:
    """Return the argv that runs *command* remotely with the mirror on PATH."""
    bin_dir = shlex.quote(ensure_text(primary_remote.rstrip("/") + "/bin"))
    remote_command = f'export PATH={bin_dir}:"$PATH"; {command}'
    return [ssh_binary, "-t", destination, remote_command]


def launch(
    destination: str,
    primary_remote: str,
    command: str,
    *,
    ssh_binary: str = "ssh",
) -> NoReturn:
    """Replace this process with the remote command session."""
    argv = build_launch_argv(destination, primary_remote, command, ssh_binary=ssh_binary)
    logger.info("launching on %s: %s", destination, command)
    os.execvp(argv[0], argv)
