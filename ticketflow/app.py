"""Main Typer application instance."""

import typer

from ticketflow.commands import (
    init,
    merge_ready,
    process_ticket,
    run,
    run_once,
    status,
    sync_reviews,
)

app = typer.Typer(
    name="ticketflow",
    help="Drive tickets from the tracker through AI agents, review and merge",
    add_completion=False,
)

# Register commands
app.command(name="init")(init.command)
app.command(name="run-once")(run_once.command)
app.command(name="run")(run.command)
app.command(name="process-ticket")(process_ticket.command)
app.command(name="sync-reviews")(sync_reviews.command)
app.command(name="merge-ready")(merge_ready.command)
app.command(name="status")(status.command)


def main():
    """Entry point for pip-installed command."""
    app()


if __name__ == "__main__":
    main()
