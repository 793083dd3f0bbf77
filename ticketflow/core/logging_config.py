"""Logging setup for the ticketflow CLI."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(verbose: bool = False, console: Optional[Console] = None) -> None:
    """Route log records through rich on stderr.

    Args:
        verbose: Log debug detail (subprocess commands, phase boundaries)
        console: Console to write to (defaults to a stderr console)
    """
    level = logging.DEBUG if verbose else logging.INFO
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=True,
        markup=False,
    )
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )
