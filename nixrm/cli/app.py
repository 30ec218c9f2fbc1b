"""Main Typer application — imports and registers all CLI commands.

Entry point: ``nixrm`` (configured via pyproject.toml project.scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from nixrm.cli.commands.installed import installed_cmd
from nixrm.cli.commands.plan import plan_cmd
from nixrm.cli.commands.run import run_cmd
from nixrm.config import MirrorSettings

app = typer.Typer(
    name="nixrm",
    help="Run nix packages over ssh on a remote host, without root.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="run", help="Build, mirror the closure and run a command remotely.")(run_cmd)
app.command(name="plan", help="Show which closure paths a run would install.")(plan_cmd)
app.command(name="installed", help="List store paths mirrored on a host.")(installed_cmd)


def configure_logging(level: str) -> None:
    """Route all log records through a Rich handler on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[
            RichHandler(
                console=Console(stderr=True),
                show_time=False,
                show_path=False,
            )
        ],
        force=True,
    )


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log every remote operation."
    ),
) -> None:
    """Configure logging before any command runs."""
    configure_logging("DEBUG" if verbose else MirrorSettings().log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
