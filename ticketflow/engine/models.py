"""Type-safe data models and status enums for the ticket orchestration engine.

This module provides the foundational type system for the orchestrator,
including the ticket lifecycle, the records exchanged with collaborators, and
the report produced by each pass. Every record is immutable; state changes
produce new values via ``dataclasses.replace``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""

    READY = "Ready"
    IN_PROGRESS = "InProgress"
    IN_REVIEW = "InReview"
    CHANGES_NEEDED = "ChangesNeeded"
    APPROVED = "Approved"
    MERGED = "Merged"
    FAILED = "Failed"

    @classmethod
    def parse(cls, value: str) -> "TicketStatus":
        """Parse a status from its value or name, ignoring case and separators."""
        normalized = re.sub(r"[\s_-]", "", value).lower()
        for status in cls:
            if status.value.lower() == normalized:
                return status
        raise ValueError(f"Unknown ticket status: {value!r}")


class Action(str, Enum):
    """Side-effecting actions the state machine can require."""

    CREATE_WORKTREE = "create_worktree"
    INVOKE_AGENT = "invoke_agent"
    PUSH_BRANCH = "push_branch"
    OPEN_MERGE_REQUEST = "open_merge_request"
    CAPTURE_COMMENTS = "capture_comments"
    REBASE = "rebase"
    MERGE = "merge"
    REMOVE_WORKTREE = "remove_worktree"
    CLOSE_TICKET = "close_ticket"


class MergeRequestState(str, Enum):
    """Merge request states reported by the forge."""

    OPEN = "open"
    MERGED = "merged"
    CLOSED = "closed"


def branch_name_for(ticket_id: str, prefix: str) -> str:
    """Return the deterministic branch name for a ticket."""
    return f"{prefix.rstrip('/')}/{ticket_id}"


@dataclass(frozen=True)
class ReviewComment:
    """Review comment fetched from the forge."""

    author: str
    body: str
    created_at: datetime
    path: Optional[str] = None
    line: Optional[int] = None
    verdict: Optional[str] = None


@dataclass(frozen=True)
class Ticket:
    """Ticket with full lifecycle tracking.

    ``branch`` is computed once by :meth:`create` and never changes.
    ``merge_request_id`` is set exactly once through :meth:`with_merge_request`.
    """

    id: str
    title: str
    branch: str
    description: str = ""
    status: TicketStatus = TicketStatus.READY
    merge_request_id: Optional[str] = None
    review_round: int = 0
    pending_comments: tuple[ReviewComment, ...] = ()
    last_pushed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    depends_on: tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        ticket_id: str,
        title: str,
        branch_prefix: str,
        description: str = "",
        status: TicketStatus = TicketStatus.READY,
        merge_request_id: Optional[str] = None,
        depends_on: tuple[str, ...] = (),
    ) -> "Ticket":
        if not ticket_id:
            raise ValueError("Ticket id must not be empty")
        return cls(
            id=ticket_id,
            title=title,
            branch=branch_name_for(ticket_id, branch_prefix),
            description=description,
            status=status,
            merge_request_id=merge_request_id,
            depends_on=tuple(depends_on),
        )

    def with_merge_request(self, merge_request_id: str) -> "Ticket":
        """Attach the merge request id; re-attaching a different id is an error."""
        if self.merge_request_id is not None and self.merge_request_id != merge_request_id:
            raise ValueError(
                f"Ticket {self.id} already has merge request {self.merge_request_id}"
            )
        return replace(self, merge_request_id=merge_request_id)


@dataclass(frozen=True)
class WorktreeHandle:
    """Isolated working directory bound to one branch."""

    branch: str
    path: Path


@dataclass(frozen=True)
class AgentTask:
    """Everything one agent invocation needs. Built fresh per invocation."""

    ticket: Ticket
    worktree: Path
    comments: tuple[ReviewComment, ...] = ()
    instructions: str = ""


@dataclass(frozen=True)
class AgentResult:
    """Result of a single agent invocation."""

    success: bool
    summary: str = ""
    changed_paths: tuple[str, ...] = ()


@dataclass(frozen=True)
class RebaseResult:
    """Outcome of replaying a branch onto main: clean, or conflicting files."""

    conflict_files: Optional[tuple[str, ...]] = None

    @classmethod
    def clean(cls) -> "RebaseResult":
        return cls()

    @classmethod
    def conflict(cls, files: list[str] | tuple[str, ...]) -> "RebaseResult":
        return cls(conflict_files=tuple(files))

    @property
    def is_clean(self) -> bool:
        return self.conflict_files is None


@dataclass(frozen=True)
class NewMergeRequest:
    """Parameters for opening a merge request."""

    title: str
    description: str
    source_branch: str
    target_branch: str


@dataclass(frozen=True)
class MergeRequest:
    """Merge request as reported by the forge."""

    id: str
    state: MergeRequestState
    source_branch: str
    url: Optional[str] = None
    head_committed_at: Optional[datetime] = None


@dataclass(frozen=True)
class Signals:
    """External signals available to the state machine for one ticket.

    Attributes:
        worktree_exists: Whether the ticket's worktree is already present
        agent_result: Result of the agent invocation made this phase, if any
        comments: Fresh review comments fetched this phase
        rebase_result: Result of the rebase attempted this phase, if any
        error: Description of an unrecoverable collaborator error, if any
    """

    worktree_exists: bool = False
    agent_result: Optional[AgentResult] = None
    comments: tuple[ReviewComment, ...] = ()
    rebase_result: Optional[RebaseResult] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class Transition:
    """Result of the state machine: the next ticket plus required actions."""

    ticket: Ticket
    actions: tuple[Action, ...] = ()
    reason: Optional[str] = None


@dataclass(frozen=True)
class TicketOutcome:
    """Per-ticket entry in a pass report."""

    ticket_id: str
    initial_status: TicketStatus
    final_status: TicketStatus
    failure_reason: Optional[str] = None
    retries: int = 0
    planned_actions: tuple[Action, ...] = ()

    @property
    def changed(self) -> bool:
        return self.initial_status != self.final_status


@dataclass
class PassReport:
    """Aggregated result of one pass (or one partial entry point)."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    dry_run: bool = False
    outcomes: dict[str, TicketOutcome] = field(default_factory=dict)
    phases_completed: list[str] = field(default_factory=list)

    @property
    def failed(self) -> list[TicketOutcome]:
        return [
            outcome
            for outcome in self.outcomes.values()
            if outcome.final_status == TicketStatus.FAILED
        ]

    @property
    def changed(self) -> list[TicketOutcome]:
        return [outcome for outcome in self.outcomes.values() if outcome.changed]

    def to_dict(self) -> dict[str, Any]:
        """Serialize the report to a JSON-compatible dict."""
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "dry_run": self.dry_run,
            "phases_completed": list(self.phases_completed),
            "tickets": {
                ticket_id: {
                    "initial_status": outcome.initial_status.value,
                    "final_status": outcome.final_status.value,
                    "failure_reason": outcome.failure_reason,
                    "retries": outcome.retries,
                    "planned_actions": [a.value for a in outcome.planned_actions],
                }
                for ticket_id, outcome in self.outcomes.items()
            },
        }
