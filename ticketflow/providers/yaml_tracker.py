"""Issue tracker backed by a YAML tickets file.

The file lists tickets with their dependencies; the tracker records each
ticket's status and closes tickets once merged:

    tickets:
      - id: PROJ-1
        title: Add login endpoint
        description: |
          ...
        depends_on: []
        status: Ready
        closed: false

A ticket is unblocked when it is open and every ticket it depends on is
closed. Writes are atomic (temp file + rename).
"""

from __future__ import annotations

import logging
import tempfile
import threading
from pathlib import Path
from typing import Any

import yaml

from ticketflow.engine.errors import FatalError, TicketScopedError
from ticketflow.engine.models import Ticket, TicketStatus

logger = logging.getLogger(__name__)


class YamlIssueTracker:
    """Tickets file tracker."""

    def __init__(self, tickets_file: Path, branch_prefix: str = "ticket"):
        """Initialize the tracker.

        Args:
            tickets_file: Path to the YAML tickets file
            branch_prefix: Prefix used to compute ticket branches
        """
        self.tickets_file = Path(tickets_file)
        self.branch_prefix = branch_prefix
        self._lock = threading.Lock()

    def _load(self) -> dict[str, Any]:
        """Load the tickets file.

        Raises:
            FatalError: If the file is missing or is not valid YAML
        """
        try:
            with open(self.tickets_file, "r") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise FatalError(f"Tickets file not found: {self.tickets_file}") from e
        except yaml.YAMLError as e:
            raise FatalError(f"Invalid tickets file {self.tickets_file}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("tickets", []), list):
            raise FatalError(f"Tickets file {self.tickets_file} must contain a 'tickets' list")
        data.setdefault("tickets", [])
        return data

    def _save(self, data: dict[str, Any]) -> None:
        """Save the tickets file atomically via temp file + rename."""
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=self.tickets_file.parent,
            delete=False,
            suffix=".yaml.tmp",
        ) as f:
            yaml.safe_dump(data, f, sort_keys=False)
            temp_path = f.name

        # Rename to final location (atomic on POSIX)
        Path(temp_path).replace(self.tickets_file)
        logger.debug(f"Tickets saved to {self.tickets_file}")

    def _to_ticket(self, entry: dict[str, Any]) -> Ticket:
        try:
            ticket_id = str(entry["id"])
        except KeyError as e:
            raise TicketScopedError(f"Ticket entry without id: {entry}") from e
        try:
            status = TicketStatus.parse(str(entry.get("status", TicketStatus.READY.value)))
        except ValueError as e:
            raise TicketScopedError(f"Ticket {ticket_id}: {e}") from e
        return Ticket.create(
            ticket_id,
            title=str(entry.get("title") or ticket_id),
            branch_prefix=self.branch_prefix,
            description=str(entry.get("description") or ""),
            status=status,
            merge_request_id=(
                str(entry["merge_request"]) if entry.get("merge_request") is not None else None
            ),
            depends_on=tuple(str(d) for d in entry.get("depends_on") or ()),
        )

    def _find(self, data: dict[str, Any], ticket_id: str) -> dict[str, Any]:
        for entry in data["tickets"]:
            if str(entry.get("id")) == ticket_id:
                return entry
        raise TicketScopedError(f"Ticket {ticket_id} not found in {self.tickets_file}")

    def list_unblocked(self) -> list[Ticket]:
        """Open tickets whose dependencies are all closed.

        Malformed entries are skipped with a warning so one bad ticket does
        not hide the others.
        """
        data = self._load()
        closed = {str(e.get("id")) for e in data["tickets"] if e.get("closed")}
        tickets = []
        for entry in data["tickets"]:
            if entry.get("closed"):
                continue
            unmet = [d for d in entry.get("depends_on") or () if str(d) not in closed]
            if unmet:
                logger.debug(f"Ticket {entry.get('id')} blocked by {', '.join(map(str, unmet))}")
                continue
            try:
                tickets.append(self._to_ticket(entry))
            except TicketScopedError as e:
                logger.warning(f"Skipping malformed ticket: {e}")
        return tickets

    def get_ticket(self, ticket_id: str) -> Ticket:
        return self._to_ticket(self._find(self._load(), ticket_id))

    def update_status(self, ticket_id: str, status: TicketStatus) -> None:
        with self._lock:
            data = self._load()
            self._find(data, ticket_id)["status"] = status.value
            self._save(data)

    def close_ticket(self, ticket_id: str) -> None:
        with self._lock:
            data = self._load()
            entry = self._find(data, ticket_id)
            entry["status"] = TicketStatus.MERGED.value
            entry["closed"] = True
            self._save(data)
        logger.info(f"Closed ticket {ticket_id}")
