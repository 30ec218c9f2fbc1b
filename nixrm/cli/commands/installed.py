"""``nixrm installed DESTINATION`` — list artifacts marked on the mirror."""

from __future__ import annotations

from contextlib import closing

import typer
from rich.console import Console
from rich.table import Table

from nixrm.cli.commands._common import open_transport
from nixrm.config import MirrorSettings
from nixrm.core.errors import NixrmError
from nixrm.core.installation_ledger import InstallationLedger

console = Console()


def installed_cmd(
    destination: str = typer.Argument(..., help="Remote host as [user@]host[:port]."),
    local: bool = typer.Option(
        False, "--local", help="Inspect a local mirror instead of connecting over SSH."
    ),
) -> None:
    """List the store paths fully mirrored on DESTINATION."""
    settings = MirrorSettings()
    try:
        with closing(open_transport(destination, settings, local=local)) as transport:
            ledger = InstallationLedger(transport, settings.mirror_root)
            names = sorted(ledger.query()) if transport.is_dir(ledger.container) else []
    except (NixrmError, OSError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    if not names:
        console.print(f"[dim]Nothing mirrored under {settings.mirror_root}.[/dim]")
        return

    table = Table(title=f"Mirrored under {settings.mirror_root}")
    table.add_column("Store path", style="cyan")
    for name in names:
        table.add_row(name)
    console.print(table)
