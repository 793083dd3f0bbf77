"""Merge-ready command implementation."""

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
    """Rebase and merge every approved ticket, one at a time in id order."""
    orchestrator, _ = load_orchestrator(config_file, verbose)
    run_pass(lambda: orchestrator.merge_ready(dry_run=dry_run))
