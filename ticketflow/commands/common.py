"""Helpers shared by the orchestration commands."""

from pathlib import Path
from typing import Callable, Optional

import typer
from rich.console import Console

from ticketflow.core.config import Config, ConfigError, ProviderSettings
from ticketflow.core.factory import build_orchestrator
from ticketflow.core.logging_config import configure_logging
from ticketflow.engine.errors import CollaboratorError, PassAborted
from ticketflow.engine.models import PassReport
from ticketflow.engine.orchestrator import Orchestrator
from ticketflow.utils.report import print_report

console = Console()

CONFIG_OPTION = typer.Option(
    None, "--config", "-c", help="Config file (default: ~/.config/ticketflow/config.toml)"
)
DRY_RUN_OPTION = typer.Option(
    False, "--dry-run", help="Show what would happen without side effects"
)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Enable debug logging")


def load_orchestrator(
    config_file: Optional[Path], verbose: bool
) -> "tuple[Orchestrator, ProviderSettings]":
    """Configure logging, load config and build the orchestrator.

    Raises:
        typer.Exit: If the configuration is invalid
    """
    configure_logging(verbose)
    try:
        config = Config(config_file)
        if config_file is not None and not config.exists():
            raise ConfigError(f"Config file not found: {config_file}")
        settings, providers = config.settings()
        return build_orchestrator(config, settings, providers), providers
    except ConfigError as e:
        console.print(f"[red]ERROR:[/red] {e}")
        console.print("[yellow]Hint:[/yellow] Run 'ticketflow init' to create a default config")
        raise typer.Exit(code=1) from e


def print_abort(e: PassAborted) -> None:
    console.print(f"\n[red]Pass aborted during {e.phase}:[/red] {e.cause}")
    if e.report is not None and e.report.outcomes:
        print_report(console, e.report)
    console.print(
        "[yellow]Hint:[/yellow] Completed actions were kept; fix the cause and run again"
    )


def run_pass(run: Callable[[], PassReport]) -> PassReport:
    """Run one pass entry point, print its report and set the exit code.

    Raises:
        typer.Exit: With code 1 on a fatal abort or when any ticket failed
    """
    try:
        report = run()
    except PassAborted as e:
        print_abort(e)
        raise typer.Exit(code=1) from e
    except CollaboratorError as e:
        console.print(f"[red]ERROR:[/red] {e}")
        raise typer.Exit(code=1) from e

    print_report(console, report)
    if report.failed:
        raise typer.Exit(code=1)
    return report
