"""Unit tests for Orchestrator phases and entry points using in-memory fakes."""

import threading
from pathlib import Path

import pytest

from tests.fakes import Harness, make_ticket
from ticketflow.engine.errors import FatalError, TicketScopedError, TransientError
from ticketflow.engine.models import Action, AgentResult, TicketStatus
from ticketflow.engine.settings import OrchestratorSettings


class TestDiscover:
    """Test Phase 1."""

    def test_ready_ticket_gets_worktree(self):
        h = Harness([make_ticket("PROJ-1")])
        orch = h.orchestrator

        ctx = orch.discover(orch.begin())

        assert ctx.registry["PROJ-1"].status == TicketStatus.IN_PROGRESS
        assert h.worktrees.created == ["ticket/PROJ-1"]
        assert ctx.worktrees["ticket/PROJ-1"].path == Path("/worktrees/PROJ-1")
        assert h.tracker.status_updates == [("PROJ-1", TicketStatus.IN_PROGRESS)]

    def test_existing_worktree_is_reused(self):
        h = Harness([make_ticket("PROJ-1")])
        h.worktrees.add("ticket/PROJ-1")
        orch = h.orchestrator

        ctx = orch.discover(orch.begin())

        assert ctx.registry["PROJ-1"].status == TicketStatus.IN_PROGRESS
        assert h.worktrees.created == []

    def test_worktree_failure_fails_ticket(self):
        h = Harness([make_ticket("PROJ-1"), make_ticket("PROJ-2")])
        h.worktrees.fail("create", "ticket/PROJ-1", TicketScopedError("path in use"))
        orch = h.orchestrator

        ctx = orch.discover(orch.begin())

        assert ctx.registry["PROJ-1"].status == TicketStatus.FAILED
        assert "path in use" in ctx.registry["PROJ-1"].failure_reason
        assert ctx.registry["PROJ-2"].status == TicketStatus.IN_PROGRESS

    def test_blocked_tickets_are_not_adopted(self):
        h = Harness([make_ticket("PROJ-1"), make_ticket("PROJ-2")])
        h.tracker.blocked.add("PROJ-2")
        orch = h.orchestrator

        ctx = orch.discover(orch.begin())

        assert set(ctx.registry) == {"PROJ-1"}

    def test_published_ticket_without_merge_request_fails(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.IN_REVIEW)])
        orch = h.orchestrator

        ctx = orch.discover(orch.begin())

        assert ctx.registry["PROJ-1"].status == TicketStatus.FAILED
        assert "No merge request found" in ctx.registry["PROJ-1"].failure_reason

    def test_tracker_unreachable_is_fatal(self):
        h = Harness([make_ticket("PROJ-1")])
        h.tracker.fail("list_unblocked", "", ConnectionError("tracker down"))
        orch = h.orchestrator

        with pytest.raises(FatalError, match="tracker down"):
            orch.discover(orch.begin())


class TestExecute:
    """Test Phase 2."""

    def test_agent_success_pushes_and_opens_merge_request(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.IN_PROGRESS)])
        h.worktrees.add("ticket/PROJ-1")
        orch = h.orchestrator

        ctx = orch.execute(orch.observe(orch.begin()))

        ticket = ctx.registry["PROJ-1"]
        assert ticket.status == TicketStatus.IN_REVIEW
        assert ticket.merge_request_id is not None
        assert ticket.last_pushed_at is not None
        assert h.worktrees.pushes == [("ticket/PROJ-1", "PROJ-1: Title of PROJ-1")]
        [request] = h.forge.created
        assert request.source_branch == "ticket/PROJ-1"
        assert request.target_branch == "main"

    def test_existing_open_merge_request_is_reused(self):
        """A request left open by an interrupted pass is not duplicated."""
        h = Harness([make_ticket("PROJ-1", TicketStatus.IN_PROGRESS)])
        h.worktrees.add("ticket/PROJ-1")
        mr_id = h.forge.open("ticket/PROJ-1")
        orch = h.orchestrator

        ctx = orch.execute(orch.observe(orch.begin()))

        assert ctx.registry["PROJ-1"].merge_request_id == mr_id
        assert h.forge.created == []

    def test_missing_worktree_is_recreated(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.IN_PROGRESS)])
        orch = h.orchestrator

        orch.execute(orch.observe(orch.begin()))

        assert h.worktrees.created == ["ticket/PROJ-1"]
        assert len(h.agent.tasks) == 1

    def test_task_carries_instructions_and_worktree(self):
        settings = OrchestratorSettings(worktree_root=Path("/wt"), instructions="Be brief.")
        h = Harness([make_ticket("PROJ-1", TicketStatus.IN_PROGRESS)], settings=settings)
        h.worktrees.add("ticket/PROJ-1", Path("/wt/PROJ-1"))
        orch = h.orchestrator

        orch.execute(orch.observe(orch.begin()))

        [task] = h.agent.tasks
        assert task.instructions == "Be brief."
        assert task.worktree == Path("/wt/PROJ-1")
        assert task.comments == ()

    def test_agent_reported_failure(self):
        h = Harness(
            [make_ticket("PROJ-1", TicketStatus.IN_PROGRESS)],
            results={"PROJ-1": AgentResult(success=False, summary="cannot build")},
        )
        orch = h.orchestrator

        ctx = orch.execute(orch.observe(orch.begin()))

        ticket = ctx.registry["PROJ-1"]
        assert ticket.status == TicketStatus.FAILED
        assert ticket.failure_reason == "Agent reported failure: cannot build"
        assert h.worktrees.pushes == []

    def test_transient_agent_error_retried_with_backoff(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.IN_PROGRESS)])
        h.agent.fail("execute", "PROJ-1", TransientError("rate limited"), None)
        orch = h.orchestrator

        ctx = orch.execute(orch.observe(orch.begin()))

        assert ctx.registry["PROJ-1"].status == TicketStatus.IN_REVIEW
        assert ctx.retries["PROJ-1"] == 1
        assert h.sleeps == [1.0]

    def test_exhausted_retries_fail_ticket(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.IN_PROGRESS)])
        h.agent.fail("execute", "PROJ-1", TransientError("rate limited"))
        orch = h.orchestrator

        ctx = orch.execute(orch.observe(orch.begin()))

        assert ctx.registry["PROJ-1"].status == TicketStatus.FAILED
        assert ctx.retries["PROJ-1"] == 3
        assert h.sleeps == [1.0, 2.0, 4.0]

    def test_push_failure_fails_ticket(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.IN_PROGRESS)])
        h.worktrees.fail("commit_and_push", "ticket/PROJ-1", TicketScopedError("rejected"))
        orch = h.orchestrator

        ctx = orch.execute(orch.observe(orch.begin()))

        assert ctx.registry["PROJ-1"].status == TicketStatus.FAILED
        assert "push_branch failed" in ctx.registry["PROJ-1"].failure_reason
        assert h.forge.created == []

    def test_concurrency_is_bounded(self):
        settings = OrchestratorSettings(worktree_root=Path("/wt"), max_concurrent_agents=2)
        tickets = [make_ticket(f"PROJ-{i}", TicketStatus.IN_PROGRESS) for i in range(1, 7)]
        h = Harness(tickets, settings=settings, delay=0.05)
        orch = h.orchestrator

        ctx = orch.execute(orch.observe(orch.begin()))

        assert len(h.agent.tasks) == 6
        assert 1 <= h.agent.max_active <= 2
        assert all(t.status == TicketStatus.IN_REVIEW for t in ctx.registry.values())

    def test_fatal_agent_error_raises(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.IN_PROGRESS)])
        h.agent.fail("execute", "PROJ-1", FatalError("claude not installed"))
        orch = h.orchestrator

        with pytest.raises(FatalError, match="claude not installed"):
            orch.execute(orch.observe(orch.begin()))


class TestSyncAndReprocess:
    """Test Phases 3 and 4."""

    def _in_review(self, h, ticket_id="PROJ-1"):
        h.tracker.tickets[ticket_id] = make_ticket(ticket_id, TicketStatus.IN_REVIEW)
        return h.forge.open(f"ticket/{ticket_id}")

    def test_approval(self):
        h = Harness()
        mr_id = self._in_review(h)
        h.forge.comment(mr_id, "/approve")
        orch = h.orchestrator

        ctx = orch.sync(orch.observe(orch.begin()))

        assert ctx.registry["PROJ-1"].status == TicketStatus.APPROVED
        assert h.tracker.status_of("PROJ-1") == TicketStatus.APPROVED

    def test_no_signal_is_noop(self):
        h = Harness()
        mr_id = self._in_review(h)
        h.forge.comment(mr_id, "Looks reasonable so far")
        orch = h.orchestrator

        ctx = orch.sync(orch.observe(orch.begin()))

        assert ctx.registry["PROJ-1"].status == TicketStatus.IN_REVIEW
        assert h.tracker.status_updates == []

    def test_comments_before_head_commit_are_stale(self):
        """After a restart, feedback older than the pushed head is already addressed."""
        h = Harness()
        h.tracker.tickets["PROJ-1"] = make_ticket("PROJ-1", TicketStatus.IN_REVIEW)
        stale = h.forge.comment("101", "/reprocess")
        h.forge.open("ticket/PROJ-1", head_committed_at=h.clock())
        orch = h.orchestrator

        ctx = orch.sync(orch.observe(orch.begin()))

        assert ctx.registry["PROJ-1"].last_pushed_at > stale.created_at
        assert ctx.registry["PROJ-1"].status == TicketStatus.IN_REVIEW

    def test_reprocess_then_back_to_in_progress(self):
        h = Harness()
        mr_id = self._in_review(h)
        feedback = h.forge.comment(mr_id, "/reprocess: handle empty input")
        orch = h.orchestrator

        ctx = orch.sync(orch.observe(orch.begin()))
        assert ctx.registry["PROJ-1"].status == TicketStatus.CHANGES_NEEDED
        assert ctx.registry["PROJ-1"].pending_comments == (feedback,)

        ctx = orch.reprocess(ctx)
        assert ctx.registry["PROJ-1"].status == TicketStatus.IN_PROGRESS
        assert ctx.registry["PROJ-1"].review_round == 1

    def test_comment_fetch_failure_fails_ticket(self):
        h = Harness()
        mr_id = self._in_review(h)
        h.forge.fail("list_comments", mr_id, TicketScopedError("not found"))
        orch = h.orchestrator

        ctx = orch.sync(orch.observe(orch.begin()))

        assert ctx.registry["PROJ-1"].status == TicketStatus.FAILED


class TestStatusMirroring:
    def test_tracker_update_failure_fails_ticket(self):
        h = Harness([make_ticket("PROJ-1")])
        h.tracker.fail("update_status", "PROJ-1", TicketScopedError("read-only"))
        orch = h.orchestrator

        ctx = orch.discover(orch.begin())

        ticket = ctx.registry["PROJ-1"]
        assert ticket.status == TicketStatus.FAILED
        assert "Could not record status InProgress" in ticket.failure_reason

    def test_failure_is_recorded_when_status_mirror_fails(self):
        h = Harness([make_ticket("PROJ-1")])
        h.tracker.fail("update_status", "PROJ-1", TicketScopedError("read-only"), None)

        h.orchestrator.run_once()
        h.orchestrator.run_once()

        assert h.tracker.status_updates == [("PROJ-1", TicketStatus.FAILED)]
        assert h.orchestrator.registry["PROJ-1"].status == TicketStatus.FAILED
        assert h.agent.tasks == []


class TestTrackerAuthority:
    def test_ticket_closed_in_tracker_is_not_processed_again(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.IN_REVIEW)])
        h.worktrees.add("ticket/PROJ-1")
        mr_id = h.forge.open("ticket/PROJ-1")
        h.forge.comment(mr_id, "/reprocess: cover the empty cart")
        h.orchestrator.run_once()
        assert h.orchestrator.registry["PROJ-1"].status == TicketStatus.IN_PROGRESS

        h.tracker.closed.append("PROJ-1")
        report = h.orchestrator.run_once()

        assert h.agent.tasks == []
        assert h.worktrees.pushes == []
        assert "PROJ-1" not in h.orchestrator.registry
        assert report.outcomes["PROJ-1"].final_status == TicketStatus.IN_PROGRESS

    def test_failed_ticket_stays_visible_when_no_longer_listed(self):
        h = Harness(
            [make_ticket("PROJ-1")],
            results={"PROJ-1": AgentResult(success=False, summary="could not compile")},
        )
        h.orchestrator.run_once()

        h.tracker.blocked.add("PROJ-1")
        h.orchestrator.run_once()

        assert h.orchestrator.registry["PROJ-1"].status == TicketStatus.FAILED
        assert [t.id for t in h.orchestrator.status()] == ["PROJ-1"]

    def test_failed_ticket_reset_in_tracker_is_picked_up(self):
        h = Harness(
            [make_ticket("PROJ-1")],
            results={"PROJ-1": AgentResult(success=False, summary="could not compile")},
        )
        h.orchestrator.run_once()
        assert h.orchestrator.registry["PROJ-1"].status == TicketStatus.FAILED

        h.agent.results.clear()
        h.tracker.tickets["PROJ-1"] = make_ticket("PROJ-1")
        report = h.orchestrator.run_once()

        outcome = report.outcomes["PROJ-1"]
        assert outcome.initial_status == TicketStatus.FAILED
        assert outcome.final_status == TicketStatus.IN_REVIEW
        assert len(h.agent.calls_for("PROJ-1")) == 2

    def test_dry_run_retry_keeps_reset_within_the_pass(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.FAILED)])

        report = h.orchestrator.process_ticket("PROJ-1", dry_run=True, retry_failed=True)

        outcome = report.outcomes["PROJ-1"]
        assert outcome.final_status == TicketStatus.IN_PROGRESS
        assert Action.CREATE_WORKTREE in outcome.planned_actions
        assert h.tracker.status_of("PROJ-1") == TicketStatus.FAILED


class TestEntryPoints:
    def test_process_ticket_is_scoped(self):
        h = Harness([make_ticket("PROJ-1"), make_ticket("PROJ-2")])

        report = h.orchestrator.process_ticket("PROJ-2")

        assert set(report.outcomes) == {"PROJ-2"}
        assert report.outcomes["PROJ-2"].final_status == TicketStatus.IN_REVIEW
        assert h.tracker.status_of("PROJ-1") == TicketStatus.READY
        assert [t.ticket.id for t in h.agent.tasks] == ["PROJ-2"]

    def test_process_ticket_unknown_id(self):
        h = Harness([make_ticket("PROJ-1")])

        with pytest.raises(TicketScopedError, match="PROJ-9"):
            h.orchestrator.process_ticket("PROJ-9")

    def test_failed_ticket_needs_explicit_retry(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.FAILED)])

        report = h.orchestrator.process_ticket("PROJ-1")

        assert report.outcomes["PROJ-1"].final_status == TicketStatus.FAILED
        assert h.agent.tasks == []

    def test_retry_failed_restarts_from_ready(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.FAILED)])

        report = h.orchestrator.process_ticket("PROJ-1", retry_failed=True)

        outcome = report.outcomes["PROJ-1"]
        assert outcome.initial_status == TicketStatus.FAILED
        assert outcome.final_status == TicketStatus.IN_REVIEW
        assert h.tracker.status_updates[0] == ("PROJ-1", TicketStatus.READY)

    def test_sync_reviews_does_not_run_agents_or_merge(self):
        h = Harness([make_ticket("PROJ-1"), make_ticket("PROJ-2", TicketStatus.IN_REVIEW)])
        mr_id = h.forge.open("ticket/PROJ-2")
        h.forge.comment(mr_id, "/approve")

        report = h.orchestrator.sync_reviews()

        assert report.outcomes["PROJ-2"].final_status == TicketStatus.APPROVED
        assert report.outcomes["PROJ-1"].final_status == TicketStatus.READY
        assert h.agent.tasks == []
        assert h.forge.merged == []

    def test_merge_ready(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.APPROVED)])
        h.forge.open("ticket/PROJ-1")

        report = h.orchestrator.merge_ready()

        assert report.outcomes["PROJ-1"].final_status == TicketStatus.MERGED
        assert h.tracker.closed == ["PROJ-1"]
        assert "PROJ-1" not in h.orchestrator.registry

    def test_status_has_no_side_effects(self):
        h = Harness(
            [make_ticket("PROJ-10"), make_ticket("PROJ-2", TicketStatus.IN_REVIEW)]
        )
        mr_id = h.forge.open("ticket/PROJ-2")

        tickets = h.orchestrator.status()

        assert [t.id for t in tickets] == ["PROJ-2", "PROJ-10"]
        assert tickets[0].merge_request_id == mr_id
        assert h.tracker.status_updates == []
        assert h.worktrees.created == []
        assert h.orchestrator.registry == {}

    def test_run_continuous_max_passes(self):
        h = Harness([make_ticket("PROJ-1")])
        reports = []

        passes = h.orchestrator.run_continuous(0, max_passes=3, on_report=reports.append)

        assert passes == 3
        assert len(reports) == 3
        assert len(h.agent.tasks) == 1

    def test_run_continuous_stops_between_passes(self):
        h = Harness([make_ticket("PROJ-1")])
        stop = threading.Event()

        passes = h.orchestrator.run_continuous(
            60, stop_event=stop, on_report=lambda report: stop.set()
        )

        assert passes == 1

    def test_run_continuous_not_started_when_stopped(self):
        h = Harness([make_ticket("PROJ-1")])
        stop = threading.Event()
        stop.set()

        assert h.orchestrator.run_continuous(0, stop_event=stop) == 0
        assert h.tracker.status_updates == []


class TestDryRun:
    def test_plans_without_side_effects(self):
        h = Harness([make_ticket("PROJ-1")])

        report = h.orchestrator.run_once(dry_run=True)

        outcome = report.outcomes["PROJ-1"]
        assert report.dry_run
        assert outcome.final_status == TicketStatus.IN_PROGRESS
        assert outcome.planned_actions == (Action.CREATE_WORKTREE, Action.INVOKE_AGENT)
        assert h.worktrees.created == []
        assert h.agent.tasks == []
        assert h.tracker.status_updates == []
        assert h.orchestrator.registry == {}

    def test_dry_run_merge_plans_actions(self):
        h = Harness([make_ticket("PROJ-1", TicketStatus.APPROVED)])
        h.forge.open("ticket/PROJ-1")

        report = h.orchestrator.merge_ready(dry_run=True)

        assert Action.MERGE in report.outcomes["PROJ-1"].planned_actions
        assert report.outcomes["PROJ-1"].final_status == TicketStatus.APPROVED
        assert h.worktrees.rebased == []
        assert h.forge.merged == []
