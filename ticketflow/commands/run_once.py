"""Run-once command implementation."""

from pathlib import Path
from typing import Optional

from ticketflow.commands.common import (
    CONFIG_OPTION,
    DRY_RUN_OPTION,
    VERBOSE_OPTION,
    console,
    load_orchestrator,
    run_pass,
)


def command(
    config_file: Optional[Path] = CONFIG_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Run a single orchestration pass over every unblocked ticket.

    Discovers tickets, runs agents, syncs reviews, reprocesses feedback and
    merges approved tickets, then prints the pass report.
    """
    orchestrator, _ = load_orchestrator(config_file, verbose)
    if dry_run:
        console.print("[yellow]Dry run: no changes will be made[/yellow]")
    run_pass(lambda: orchestrator.run_once(dry_run=dry_run))
