"""Status command implementation."""

from pathlib import Path
from typing import Optional

import typer

from ticketflow.commands.common import CONFIG_OPTION, VERBOSE_OPTION, console, load_orchestrator
from ticketflow.engine.errors import CollaboratorError
from ticketflow.utils.report import status_table


def command(
    config_file: Optional[Path] = CONFIG_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Show every unblocked ticket with its status, branch and merge request.

    Reads the tracker, the worktrees and the forge; changes nothing.
    """
    orchestrator, _ = load_orchestrator(config_file, verbose)
    try:
        tickets = orchestrator.status()
    except CollaboratorError as e:
        console.print(f"[red]ERROR:[/red] {e}")
        raise typer.Exit(code=1) from e

    if not tickets:
        console.print("[dim]No unblocked tickets[/dim]")
        return
    console.print(status_table(tickets))
