"""Unit tests for the pure ticket state machine."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from ticketflow.engine.errors import InvalidTransitionError
from ticketflow.engine.models import (
    Action,
    AgentResult,
    RebaseResult,
    ReviewComment,
    Signals,
    Ticket,
    TicketStatus,
)
from ticketflow.engine.signals import SignalMatchers
from ticketflow.engine.state_machine import (
    ALLOWED_TRANSITIONS,
    fresh_comments,
    is_allowed,
    merge_comments,
    reset_failed,
    transition,
)

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def ticket(status=TicketStatus.READY, **changes) -> Ticket:
    base = Ticket.create("PROJ-1", "Add login", branch_prefix="ticket", status=status)
    return replace(base, **changes)


def comment(body, minutes=0, verdict=None) -> ReviewComment:
    return ReviewComment(
        author="reviewer", body=body, created_at=T0 + timedelta(minutes=minutes), verdict=verdict
    )


class TestEdgeTable:
    """Test conformance with the edge table, one row per case."""

    @pytest.mark.parametrize(
        "status, signals, expected_status, expected_actions",
        [
            (
                TicketStatus.READY,
                Signals(),
                TicketStatus.IN_PROGRESS,
                (Action.CREATE_WORKTREE,),
            ),
            (TicketStatus.READY, Signals(worktree_exists=True), TicketStatus.IN_PROGRESS, ()),
            (
                TicketStatus.IN_PROGRESS,
                Signals(agent_result=AgentResult(success=True)),
                TicketStatus.IN_REVIEW,
                (Action.PUSH_BRANCH, Action.OPEN_MERGE_REQUEST),
            ),
            (
                TicketStatus.IN_PROGRESS,
                Signals(agent_result=AgentResult(success=False, summary="tests fail")),
                TicketStatus.FAILED,
                (),
            ),
            (
                TicketStatus.IN_REVIEW,
                Signals(comments=(comment("please /reprocess"),)),
                TicketStatus.CHANGES_NEEDED,
                (Action.CAPTURE_COMMENTS,),
            ),
            (
                TicketStatus.IN_REVIEW,
                Signals(comments=(comment("/approve"),)),
                TicketStatus.APPROVED,
                (),
            ),
            (
                TicketStatus.IN_REVIEW,
                Signals(comments=(comment("nice work"),)),
                TicketStatus.IN_REVIEW,
                (),
            ),
            (TicketStatus.CHANGES_NEEDED, Signals(), TicketStatus.IN_PROGRESS, ()),
            (
                TicketStatus.APPROVED,
                Signals(rebase_result=RebaseResult.clean()),
                TicketStatus.MERGED,
                (Action.MERGE, Action.REMOVE_WORKTREE, Action.CLOSE_TICKET),
            ),
            (
                TicketStatus.APPROVED,
                Signals(rebase_result=RebaseResult.conflict(["a.py"])),
                TicketStatus.FAILED,
                (),
            ),
        ],
    )
    def test_edge(self, status, signals, expected_status, expected_actions):
        """Each trigger produces the tabled status and side effects."""
        result = transition(ticket(status), signals)

        assert result.ticket.status == expected_status
        assert result.actions == expected_actions
        assert is_allowed(status, expected_status) or status == expected_status

    def test_agent_success_with_existing_merge_request_only_pushes(self):
        """Should not open a second merge request."""
        current = ticket(TicketStatus.IN_PROGRESS, merge_request_id="7")

        result = transition(current, Signals(agent_result=AgentResult(success=True)))

        assert result.ticket.status == TicketStatus.IN_REVIEW
        assert result.actions == (Action.PUSH_BRANCH,)
        assert result.ticket.merge_request_id == "7"

    @pytest.mark.parametrize(
        "status",
        [
            TicketStatus.READY,
            TicketStatus.IN_PROGRESS,
            TicketStatus.IN_REVIEW,
            TicketStatus.CHANGES_NEEDED,
            TicketStatus.APPROVED,
        ],
    )
    def test_unrecoverable_error_fails_any_active_ticket(self, status):
        """Any active status moves to Failed on an error signal."""
        result = transition(ticket(status), Signals(error="tracker exploded"))

        assert result.ticket.status == TicketStatus.FAILED
        assert result.ticket.failure_reason == "tracker exploded"
        assert result.actions == ()

    def test_error_never_touches_merged_ticket(self):
        """Merged is terminal."""
        merged = ticket(TicketStatus.MERGED)

        result = transition(merged, Signals(error="late failure"))

        assert result.ticket == merged
        assert result.actions == ()

    def test_error_on_failed_ticket_updates_reason_only(self):
        """A failed ticket keeps its status and records the newest reason."""
        failed = ticket(TicketStatus.FAILED, failure_reason="old")

        result = transition(failed, Signals(error="new"))

        assert result.ticket.status == TicketStatus.FAILED
        assert result.ticket.failure_reason == "new"

    def test_failed_ignores_signals(self):
        """Failed tickets wait for a manual re-trigger."""
        failed = ticket(TicketStatus.FAILED, failure_reason="boom")

        result = transition(failed, Signals(agent_result=AgentResult(success=True)))

        assert result.ticket == failed

    def test_allowed_transitions_cover_every_status(self):
        """The edge set is defined for each status."""
        assert set(ALLOWED_TRANSITIONS) == set(TicketStatus)
        assert ALLOWED_TRANSITIONS[TicketStatus.MERGED] == frozenset()


class TestRequestActions:
    """Test transitions that only request work."""

    def test_in_progress_without_result_requests_agent(self):
        current = ticket(TicketStatus.IN_PROGRESS)

        result = transition(current, Signals())

        assert result.ticket == current
        assert result.actions == (Action.INVOKE_AGENT,)

    def test_approved_without_rebase_requests_rebase(self):
        current = ticket(TicketStatus.APPROVED, merge_request_id="3")

        result = transition(current, Signals())

        assert result.ticket == current
        assert result.actions == (Action.REBASE,)


class TestReviewSignals:
    """Test InReview signal handling."""

    def test_reprocess_wins_over_approval_in_same_batch(self):
        """Should prefer the change request when both signals are present."""
        comments = (comment("/approve", 1), comment("/reprocess: fix the tests", 2))

        result = transition(ticket(TicketStatus.IN_REVIEW), Signals(comments=comments))

        assert result.ticket.status == TicketStatus.CHANGES_NEEDED

    def test_reprocess_keeps_review_round(self):
        """review_round only grows when work restarts."""
        current = ticket(TicketStatus.IN_REVIEW, review_round=2)

        result = transition(current, Signals(comments=(comment("/reprocess"),)))

        assert result.ticket.review_round == 2

    def test_captured_comments_accumulate(self):
        """Comments not yet addressed are carried forward with the new batch."""
        earlier = comment("/reprocess rename the handler", 1)
        newer = comment("/reprocess and add a test", 5)
        current = ticket(TicketStatus.IN_REVIEW, pending_comments=(earlier,))

        result = transition(current, Signals(comments=(earlier, newer)))

        assert result.ticket.pending_comments == (earlier, newer)

    def test_changes_needed_increments_review_round(self):
        current = ticket(TicketStatus.CHANGES_NEEDED, review_round=1)

        result = transition(current, Signals())

        assert result.ticket.status == TicketStatus.IN_PROGRESS
        assert result.ticket.review_round == 2

    def test_successful_agent_run_clears_pending_comments(self):
        current = ticket(
            TicketStatus.IN_PROGRESS, merge_request_id="9", pending_comments=(comment("x"),)
        )

        result = transition(current, Signals(agent_result=AgentResult(success=True)))

        assert result.ticket.pending_comments == ()

    def test_verdict_matchers(self):
        """Review verdicts drive transitions with the default matchers."""
        result = transition(
            ticket(TicketStatus.IN_REVIEW),
            Signals(comments=(comment("", verdict="APPROVED"),)),
        )

        assert result.ticket.status == TicketStatus.APPROVED

    def test_custom_matchers(self):
        matchers = SignalMatchers.from_config(reprocess=["re:^redo\\b"], approval=["ship it"])

        approved = transition(
            ticket(TicketStatus.IN_REVIEW), Signals(comments=(comment("Ship it!"),)), matchers
        )
        ignored = transition(
            ticket(TicketStatus.IN_REVIEW), Signals(comments=(comment("/approve"),)), matchers
        )

        assert approved.ticket.status == TicketStatus.APPROVED
        assert ignored.ticket.status == TicketStatus.IN_REVIEW


class TestRebaseConflict:
    def test_conflict_reason_lists_files(self):
        result = transition(
            ticket(TicketStatus.APPROVED, merge_request_id="1"),
            Signals(rebase_result=RebaseResult.conflict(["src/a.py", "src/b.py"])),
        )

        assert result.ticket.failure_reason == "Rebase conflict in: src/a.py, src/b.py"


class TestHelpers:
    def test_reset_failed(self):
        failed = ticket(TicketStatus.FAILED, failure_reason="boom")

        reset = reset_failed(failed)

        assert reset.status == TicketStatus.READY
        assert reset.failure_reason is None

    def test_reset_requires_failed(self):
        with pytest.raises(InvalidTransitionError):
            reset_failed(ticket(TicketStatus.IN_REVIEW))

    def test_fresh_comments_after_last_push(self):
        old = comment("old", 0)
        new = comment("new", 10)
        current = ticket(TicketStatus.IN_REVIEW, last_pushed_at=T0 + timedelta(minutes=5))

        assert fresh_comments(current, [old, new]) == (new,)

    def test_fresh_comments_without_push_keeps_all(self):
        comments = [comment("a", 0), comment("b", 1)]

        assert fresh_comments(ticket(TicketStatus.IN_REVIEW), comments) == tuple(comments)

    def test_merge_comments_drops_duplicates(self):
        a, b = comment("a", 0), comment("b", 1)

        assert merge_comments([a], [a, b]) == (a, b)
