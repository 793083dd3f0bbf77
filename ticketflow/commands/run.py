"""Run command implementation (continuous mode)."""

import signal
import threading
from pathlib import Path
from typing import Optional

import typer

from ticketflow.commands.common import (
    CONFIG_OPTION,
    DRY_RUN_OPTION,
    VERBOSE_OPTION,
    console,
    load_orchestrator,
    print_abort,
)
from ticketflow.engine.errors import PassAborted
from ticketflow.engine.models import PassReport
from ticketflow.utils.report import print_report


def command(
    interval: Optional[float] = typer.Option(
        None, "--interval", "-i", help="Seconds between passes (default: from config)"
    ),
    max_passes: Optional[int] = typer.Option(
        None, "--max-passes", min=1, help="Stop after this many passes"
    ),
    config_file: Optional[Path] = CONFIG_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Run orchestration passes until interrupted.

    Ctrl-C (or SIGTERM) stops the loop after the current pass completes.
    """
    orchestrator, providers = load_orchestrator(config_file, verbose)
    wait = providers.interval if interval is None else interval

    stop_event = threading.Event()

    def request_stop(signum, frame):
        if not stop_event.is_set():
            console.print("\n[yellow]Stopping after the current pass...[/yellow]")
        stop_event.set()

    previous = {
        sig: signal.signal(sig, request_stop) for sig in (signal.SIGINT, signal.SIGTERM)
    }

    def show(report: PassReport) -> None:
        print_report(console, report)

    console.print(f"[bold cyan]Running continuously every {wait:g}s[/bold cyan]")
    try:
        passes = orchestrator.run_continuous(
            wait,
            stop_event=stop_event,
            max_passes=max_passes,
            dry_run=dry_run,
            on_report=show,
        )
    except PassAborted as e:
        print_abort(e)
        raise typer.Exit(code=1) from e
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    console.print(f"\n[dim]Stopped after {passes} passes[/dim]")
