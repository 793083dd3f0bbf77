"""Rich rendering of pass reports and ticket status."""

from typing import Iterable

from rich.console import Console
from rich.table import Table

from ticketflow.engine.models import PassReport, Ticket, TicketStatus

STATUS_STYLES = {
    TicketStatus.READY: "white",
    TicketStatus.IN_PROGRESS: "cyan",
    TicketStatus.IN_REVIEW: "blue",
    TicketStatus.CHANGES_NEEDED: "yellow",
    TicketStatus.APPROVED: "magenta",
    TicketStatus.MERGED: "green",
    TicketStatus.FAILED: "red",
}


def _styled(status: TicketStatus) -> str:
    style = STATUS_STYLES[status]
    return f"[{style}]{status.value}[/{style}]"


def report_table(report: PassReport) -> Table:
    """Build a table with one row per ticket seen in the pass."""
    title = "Pass Report (dry run)" if report.dry_run else "Pass Report"
    table = Table(title=title, border_style="cyan")
    table.add_column("Ticket", style="bold")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Retries", justify="right")
    table.add_column("Details")

    for ticket_id in sorted(report.outcomes):
        outcome = report.outcomes[ticket_id]
        if outcome.failure_reason:
            details = outcome.failure_reason
        elif outcome.planned_actions:
            details = "would " + ", ".join(
                a.value.replace("_", " ") for a in outcome.planned_actions
            )
        else:
            details = ""
        table.add_row(
            ticket_id,
            _styled(outcome.initial_status),
            _styled(outcome.final_status),
            str(outcome.retries),
            details,
        )
    return table


def status_table(tickets: Iterable[Ticket]) -> Table:
    """Build a table describing the current tickets."""
    table = Table(title="Tickets", border_style="cyan")
    table.add_column("Ticket", style="bold")
    table.add_column("Status")
    table.add_column("Branch", style="dim")
    table.add_column("MR", justify="right")
    table.add_column("Round", justify="right")
    table.add_column("Title")

    for ticket in tickets:
        title = ticket.title
        if ticket.failure_reason:
            title += f"\n[red]{ticket.failure_reason}[/red]"
        table.add_row(
            ticket.id,
            _styled(ticket.status),
            ticket.branch,
            ticket.merge_request_id or "-",
            str(ticket.review_round),
            title,
        )
    return table


def print_report(console: Console, report: PassReport) -> None:
    """Print a pass report with a one-line summary."""
    if report.outcomes:
        console.print(report_table(report))
    else:
        console.print("[dim]No tickets to process[/dim]")

    summary = f"{len(report.changed)} changed, {len(report.failed)} failed"
    if report.failed:
        console.print(f"[red]✗[/red] {summary}")
    else:
        console.print(f"[green]✓[/green] {summary}")
