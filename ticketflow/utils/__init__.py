"""Utility modules for the ticketflow CLI."""

from ticketflow.utils.report import print_report, report_table, status_table

__all__ = ["print_report", "report_table", "status_table"]
