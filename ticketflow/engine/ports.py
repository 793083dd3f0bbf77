"""Capability protocols for the orchestrator's external collaborators.

The orchestrator depends only on these protocols. Concrete providers live in
``ticketflow.providers`` and are wired together in a single place,
``ticketflow.core.factory.build_orchestrator``; tests inject in-memory fakes.

How to implement a new provider:
--------------------------------
1. Create a class with the methods of the matching protocol
2. Raise TransientError for failures worth retrying (timeouts, lock contention)
3. Raise TicketScopedError for failures confined to one ticket
4. Raise FatalError when the collaborator cannot be reached at all
5. Pass an instance to Orchestrator(...) at startup

Example:
--------
    class InMemoryTracker:
        def list_unblocked(self) -> list[Ticket]:
            return list(self._tickets.values())
        ...

Untagged exceptions are treated according to the call site (ticket-scoped for
calls about one ticket, fatal for listing tickets).
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol

from ticketflow.engine.models import (
    AgentResult,
    AgentTask,
    MergeRequest,
    NewMergeRequest,
    RebaseResult,
    ReviewComment,
    Ticket,
    TicketStatus,
    WorktreeHandle,
)


class IssueTracker(Protocol):
    """Source of tickets and sink for their status."""

    def list_unblocked(self) -> list[Ticket]:
        """Return open tickets whose dependencies are all closed.

        Returned tickets carry the status last recorded with update_status.
        """
        ...

    def get_ticket(self, ticket_id: str) -> Ticket:
        ...

    def update_status(self, ticket_id: str, status: TicketStatus) -> None:
        ...

    def close_ticket(self, ticket_id: str) -> None:
        ...


class CodeAgent(Protocol):
    """Automated code-writing capability invoked once per ticket per pass."""

    def execute(self, task: AgentTask) -> AgentResult:
        """Run the agent on a task.

        Returns:
            AgentResult with success=False when the agent ran and reported
            failure.

        Raises:
            TransientError or FatalError when the agent could not be invoked.
        """
        ...


class GitForge(Protocol):
    """Remote platform hosting merge requests and review comments."""

    def create_merge_request(self, request: NewMergeRequest) -> str:
        ...

    def find_merge_request(self, branch: str) -> Optional[str]:
        """Return the id of the open merge request for a branch, if any."""
        ...

    def get_merge_request(self, merge_request_id: str) -> MergeRequest:
        ...

    def list_comments(self, merge_request_id: str) -> list[ReviewComment]:
        ...

    def merge(self, merge_request_id: str, strategy: str = "squash") -> None:
        ...

    def close_merge_request(self, merge_request_id: str) -> None:
        ...


class WorktreeManager(Protocol):
    """Isolated per-branch working directories of the repository."""

    def create(self, branch: str, path: Path) -> WorktreeHandle:
        """Create the worktree and branch. Idempotent for an existing pair."""
        ...

    def remove(self, handle: WorktreeHandle) -> None:
        ...

    def list(self) -> list[WorktreeHandle]:
        ...

    def commit_and_push(self, handle: WorktreeHandle, message: str) -> None:
        ...

    def rebase_on_main(self, handle: WorktreeHandle) -> RebaseResult:
        ...
