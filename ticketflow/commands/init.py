"""Init command implementation."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

from ticketflow.core.config import Config

console = Console()


def command(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite existing configuration"
    ),
    show_config: bool = typer.Option(
        False, "--show", help="Show default configuration without creating"
    ),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Write the config here instead of the XDG location"
    ),
):
    """Initialize ticketflow configuration (XDG-compliant).

    Creates ~/.config/ticketflow/config.toml with default settings.
    """
    # Existing content is replaced, never parsed, so an invalid file can be overwritten
    config_path = config_file or Config.default_path()

    # Show config and exit
    if show_config:
        console.print("\n[bold]Default configuration:[/bold]\n")
        syntax = Syntax(
            Config.get_default_config(), "toml", theme="monokai", line_numbers=True
        )
        console.print(syntax)
        console.print(f"\n[dim]Would be created at: {config_path}[/dim]")
        return

    # Check if config exists
    if config_path.exists() and not force:
        console.print(
            Panel(
                f"[yellow]Configuration already exists:[/yellow]\n"
                f"{config_path}\n\n"
                f"Use [bold]--force[/bold] to overwrite or [bold]--show[/bold] to view default config",
                title="⚠️  Config Exists",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=1)

    try:
        # Remove existing if force
        if force and config_path.exists():
            config_path.unlink()
            console.print("[yellow]Removed existing config[/yellow]")

        created = Config(config_path).create_default()

        console.print(
            Panel(
                f"[green]✓[/green] Configuration created: [bold]{created}[/bold]\n\n"
                f"[dim]Point tracker.tickets_file at your tickets YAML and\n"
                f"git.repo_path at the repository to work in.[/dim]",
                title="✅ Ticketflow Initialized",
                border_style="green",
            )
        )
    except OSError as e:
        console.print(f"[red]ERROR:[/red] Failed to create configuration: {e}")
        raise typer.Exit(code=1) from e
