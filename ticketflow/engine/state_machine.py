"""Pure per-ticket state machine.

The state machine decides, for one ticket plus the signals gathered this
phase, how the ticket's status advances and which side-effecting actions the
orchestrator must perform. It never performs I/O and never reads a clock:
``transition`` is a pure function of its arguments.

Edge table:

    Ready          -> InProgress     (create worktree unless it already exists)
    InProgress     -> InReview       (push branch, open MR if none yet)
    InProgress     -> Failed         (agent reported failure)
    InReview       -> ChangesNeeded  (reprocess signal; capture comments)
    InReview       -> Approved       (approval signal)
    ChangesNeeded  -> InProgress     (review_round + 1)
    Approved       -> Merged         (clean rebase; merge, remove worktree, close)
    Approved       -> Failed         (rebase conflict)
    any            -> Failed         (unrecoverable collaborator error)
    Failed         -> Ready          (manual re-trigger only, see reset_failed)
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from ticketflow.engine.errors import InvalidTransitionError
from ticketflow.engine.models import (
    Action,
    ReviewComment,
    Signals,
    Ticket,
    TicketStatus,
    Transition,
)
from ticketflow.engine.signals import DEFAULT_MATCHERS, SignalMatchers

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.READY: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.FAILED}),
    TicketStatus.IN_PROGRESS: frozenset({TicketStatus.IN_REVIEW, TicketStatus.FAILED}),
    TicketStatus.IN_REVIEW: frozenset(
        {TicketStatus.CHANGES_NEEDED, TicketStatus.APPROVED, TicketStatus.FAILED}
    ),
    TicketStatus.CHANGES_NEEDED: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.FAILED}),
    TicketStatus.APPROVED: frozenset({TicketStatus.MERGED, TicketStatus.FAILED}),
    TicketStatus.MERGED: frozenset(),
    TicketStatus.FAILED: frozenset({TicketStatus.READY}),
}


def is_allowed(old: TicketStatus, new: TicketStatus) -> bool:
    """Check whether a status change is in the edge table."""
    return new in ALLOWED_TRANSITIONS[old]


def _move(ticket: Ticket, new_status: TicketStatus, **changes) -> Ticket:
    if not is_allowed(ticket.status, new_status):
        raise InvalidTransitionError(
            f"Ticket {ticket.id}: {ticket.status.value} -> {new_status.value} is not allowed"
        )
    return replace(ticket, status=new_status, **changes)


def merge_comments(
    existing: Iterable[ReviewComment], new: Iterable[ReviewComment]
) -> tuple[ReviewComment, ...]:
    """Combine captured comments, keeping order and dropping duplicates."""
    return tuple(dict.fromkeys([*existing, *new]))


def fresh_comments(ticket: Ticket, comments: Iterable[ReviewComment]) -> tuple[ReviewComment, ...]:
    """Comments posted after the ticket's last successful push."""
    if ticket.last_pushed_at is None:
        return tuple(comments)
    return tuple(c for c in comments if c.created_at > ticket.last_pushed_at)


def transition(
    ticket: Ticket, signals: Signals, matchers: SignalMatchers = DEFAULT_MATCHERS
) -> Transition:
    """Compute the next ticket and the actions required to get there.

    Args:
        ticket: Current ticket
        signals: External signals gathered this phase
        matchers: Configured reprocess/approval matchers

    Returns:
        Transition with the next ticket value and required actions. A
        transition that keeps the status and requires no action is a no-op.

    Raises:
        InvalidTransitionError: If the computed change is outside the edge table
    """
    status = ticket.status

    if status == TicketStatus.MERGED:
        return Transition(ticket)

    if signals.error is not None:
        if status == TicketStatus.FAILED:
            return Transition(replace(ticket, failure_reason=signals.error), reason=signals.error)
        return Transition(
            _move(ticket, TicketStatus.FAILED, failure_reason=signals.error),
            reason=signals.error,
        )

    if status == TicketStatus.READY:
        if signals.worktree_exists:
            return Transition(
                _move(ticket, TicketStatus.IN_PROGRESS),
                reason="worktree already present",
            )
        return Transition(
            _move(ticket, TicketStatus.IN_PROGRESS), actions=(Action.CREATE_WORKTREE,)
        )

    if status == TicketStatus.IN_PROGRESS:
        result = signals.agent_result
        if result is None:
            return Transition(ticket, actions=(Action.INVOKE_AGENT,))
        if not result.success:
            reason = f"Agent reported failure: {result.summary or 'no summary'}"
            return Transition(
                _move(ticket, TicketStatus.FAILED, failure_reason=reason), reason=reason
            )
        actions: tuple[Action, ...] = (Action.PUSH_BRANCH,)
        if ticket.merge_request_id is None:
            actions += (Action.OPEN_MERGE_REQUEST,)
        return Transition(
            _move(ticket, TicketStatus.IN_REVIEW, pending_comments=()), actions=actions
        )

    if status == TicketStatus.IN_REVIEW:
        # An open change request overrides an approval in the same batch
        if matchers.has_reprocess(signals.comments):
            return Transition(
                _move(
                    ticket,
                    TicketStatus.CHANGES_NEEDED,
                    pending_comments=merge_comments(ticket.pending_comments, signals.comments),
                ),
                actions=(Action.CAPTURE_COMMENTS,),
                reason="reprocess requested",
            )
        if matchers.has_approval(signals.comments):
            return Transition(_move(ticket, TicketStatus.APPROVED), reason="approved")
        return Transition(ticket)

    if status == TicketStatus.CHANGES_NEEDED:
        return Transition(
            _move(ticket, TicketStatus.IN_PROGRESS, review_round=ticket.review_round + 1)
        )

    if status == TicketStatus.APPROVED:
        rebase = signals.rebase_result
        if rebase is None:
            return Transition(ticket, actions=(Action.REBASE,))
        if rebase.is_clean:
            return Transition(
                _move(ticket, TicketStatus.MERGED),
                actions=(Action.MERGE, Action.REMOVE_WORKTREE, Action.CLOSE_TICKET),
            )
        reason = "Rebase conflict in: " + ", ".join(rebase.conflict_files or ())
        return Transition(
            _move(ticket, TicketStatus.FAILED, failure_reason=reason), reason=reason
        )

    # FAILED stays put until a human re-triggers it
    return Transition(ticket)


def reset_failed(ticket: Ticket) -> Ticket:
    """Manual re-trigger of a Failed ticket back to Ready.

    Raises:
        InvalidTransitionError: If the ticket is not Failed
    """
    return _move(ticket, TicketStatus.READY, failure_reason=None)
