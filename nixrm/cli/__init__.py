"""nixrm CLI — Typer-based command-line interface.

Provides the ``nixrm`` command with subcommands for mirroring a closure
and launching a command, previewing a run, and listing what a host
already has.

All output uses Rich for formatted terminal display.
"""
