"""Sync-reviews command implementation."""

from pathlib import Path
from typing import Optional

from ticketflow.commands.common import (
    CONFIG_OPTION,
    DRY_RUN_OPTION,
    VERBOSE_OPTION,
    load_orchestrator,
    run_pass,
)


def command(
    config_file: Optional[Path] = CONFIG_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Fetch review comments and apply reprocess/approval signals.

    Runs no agents and merges nothing.
    """
    orchestrator, _ = load_orchestrator(config_file, verbose)
    run_pass(lambda: orchestrator.sync_reviews(dry_run=dry_run))
