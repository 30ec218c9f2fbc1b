"""``nixrm plan INSTALLABLE DESTINATION`` — show what a run would install."""

from __future__ import annotations

from contextlib import closing

import typer
from rich.console import Console
from rich.table import Table

from nixrm.bridge.nix import NixClosureResolver
from nixrm.cli.commands._common import open_transport
from nixrm.config import MirrorSettings
from nixrm.core.errors import NixrmError
from nixrm.core.orchestrator import MirrorOrchestrator

console = Console()


def plan_cmd(
    installable: str = typer.Argument(..., help="Installable to build."),
    destination: str = typer.Argument(..., help="Remote host as [user@]host[:port]."),
    local: bool = typer.Option(
        False, "--local", help="Inspect a local mirror instead of connecting over SSH."
    ),
) -> None:
    """List the closure members missing from the remote mirror, in install order."""
    settings = MirrorSettings()
    try:
        closure = NixClosureResolver(
            installable,
            nix_binary=settings.nix_binary,
            store_root=settings.store_root,
        ).resolve()
        with closing(open_transport(destination, settings, local=local)) as transport:
            missing = MirrorOrchestrator(transport, settings).plan(closure)
    except (NixrmError, OSError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    if not missing:
        console.print(f"[green]All {len(closure)} paths already mirrored.[/green]")
        return

    table = Table(title=f"To install ({len(missing)} of {len(closure)})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Store path", style="cyan")
    table.add_column("Primary", justify="center")
    for index, relative in enumerate(missing, start=1):
        primary = "[green]Yes[/green]" if relative == closure.primary_relative else ""
        table.add_row(str(index), relative, primary)
    console.print(table)
