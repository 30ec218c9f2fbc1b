"""``nixrm run INSTALLABLE DESTINATION -c COMMAND`` — mirror and launch.

Builds the installable, mirrors its closure under the remote mirror root,
then replaces this process with ``ssh -t DESTINATION`` running COMMAND with
the primary output's ``bin/`` first on PATH.
"""

from __future__ import annotations

from contextlib import closing

import typer
from rich.console import Console
from rich.panel import Panel

from nixrm.bridge.launcher import build_launch_argv, launch
from nixrm.bridge.nix import NixClosureResolver
from nixrm.cli.commands._common import open_transport
from nixrm.config import MirrorSettings
from nixrm.core.errors import NixrmError
from nixrm.core.orchestrator import MirrorOrchestrator

console = Console()


def run_cmd(
    installable: str = typer.Argument(
        ...,
        help="Installable to build, e.g. 'nixpkgs#hello'.",
    ),
    destination: str = typer.Argument(
        ...,
        help="Remote host as [user@]host[:port].",
    ),
    command: str = typer.Option(
        None,
        "--command",
        "-c",
        help="Command to run remotely once the closure is mirrored.",
    ),
    no_launch: bool = typer.Option(
        False,
        "--no-launch",
        help="Stop after mirroring; do not run a command.",
    ),
    local: bool = typer.Option(
        False,
        "--local",
        help="Mirror into the local filesystem instead of over SSH (implies --no-launch).",
    ),
) -> None:
    """Build INSTALLABLE, mirror its closure to DESTINATION and run a command."""
    if command is None and not (no_launch or local):
        console.print("[bold red]--command is required unless --no-launch is given.[/bold red]")
        raise typer.Exit(code=2)

    settings = MirrorSettings()

    try:
        closure = NixClosureResolver(
            installable,
            nix_binary=settings.nix_binary,
            store_root=settings.store_root,
        ).resolve()
        with closing(open_transport(destination, settings, local=local)) as transport:
            orchestrator = MirrorOrchestrator(transport, settings)
            report = orchestrator.run(closure)
            primary_remote = orchestrator.remote_primary(closure)
    except (NixrmError, OSError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            "\n".join([
                f"[bold]Closure:[/bold]    {report.closure_size} paths",
                f"[bold]Installed:[/bold]  {len(report.installed)}",
                f"[bold]Skipped:[/bold]    {len(report.already_installed)}",
                f"[bold]Primary:[/bold]    {primary_remote}",
            ]),
            title="[bold]nixrm[/bold]",
            border_style="green",
            padding=(0, 1),
        )
    )

    if no_launch or local:
        if command is not None:
            argv = build_launch_argv(
                destination, primary_remote, command, ssh_binary=settings.ssh_binary
            )
            console.print(f"[dim]Not launching: {argv[-1]}[/dim]")
        return

    launch(destination, primary_remote, command, ssh_binary=settings.ssh_binary)
