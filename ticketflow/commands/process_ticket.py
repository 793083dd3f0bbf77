"""Process-ticket command implementation."""

from pathlib import Path
from typing import Optional

import typer

from ticketflow.commands.common import (
    CONFIG_OPTION,
    DRY_RUN_OPTION,
    VERBOSE_OPTION,
    console,
    load_orchestrator,
    run_pass,
)


def command(
    ticket_id: str = typer.Argument(..., help="Ticket id, e.g. PROJ-1"),
    retry_failed: bool = typer.Option(
        False, "--retry-failed", help="Reset a failed ticket to Ready before processing"
    ),
    config_file: Optional[Path] = CONFIG_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Run one pass restricted to a single ticket."""
    orchestrator, _ = load_orchestrator(config_file, verbose)
    console.print(f"\n[bold]Processing ticket:[/bold] {ticket_id}")
    if retry_failed:
        console.print("[yellow]Retrying failed ticket from Ready[/yellow]")
    run_pass(
        lambda: orchestrator.process_ticket(
            ticket_id, dry_run=dry_run, retry_failed=retry_failed
        )
    )
