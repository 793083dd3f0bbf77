"""Five-phase orchestration loop driving tickets from Ready to Merged.

Each pass runs these phases strictly in order:

1. Discover: adopt unblocked tickets and start Ready ones (create worktree)
2. Execute: invoke the agent for every InProgress ticket, with bounded
   concurrency, then push and open merge requests
3. Sync: read review comments of InReview tickets and detect signals
4. Reprocess: move ChangesNeeded tickets back to InProgress for the next pass
5. Merge: hand Approved tickets to the MergeCoordinator

The ticket registry is carried explicitly through the phases in a
PassContext and only becomes the orchestrator's registry once the pass ends.
Ticket-scoped failures fail one ticket; fatal failures abort the pass with
PassAborted. Every committed status change is mirrored to the issue tracker,
so a restarted process re-derives the same state from external systems.
The tracker wins over the registry: a ticket it stops listing is no longer
processed, and a status changed there (e.g. Failed reset to Ready by an
operator) is adopted afresh.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Optional

from ticketflow.engine.errors import (
    CallOutcome,
    Caller,
    ErrorKind,
    FatalError,
    PassAborted,
    TicketScopedError,
    as_fatal,
    call_with_retry,
)
from ticketflow.engine.merge_coordinator import MergeCoordinator, MergeStep, ticket_sort_key
from ticketflow.engine.models import (
    Action,
    AgentTask,
    NewMergeRequest,
    PassReport,
    Signals,
    Ticket,
    TicketOutcome,
    TicketStatus,
    Transition,
    WorktreeHandle,
    branch_name_for,
)
from ticketflow.engine.ports import CodeAgent, GitForge, IssueTracker, WorktreeManager
from ticketflow.engine.settings import OrchestratorSettings
from ticketflow.engine.state_machine import fresh_comments, reset_failed, transition

logger = logging.getLogger(__name__)

# Statuses for which a merge request is expected to exist already
_PUBLISHED = {
    TicketStatus.IN_REVIEW,
    TicketStatus.CHANGES_NEEDED,
    TicketStatus.APPROVED,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PassContext:
    """Explicit state of one pass, handed from phase to phase.

    Attributes:
        registry: Active tickets keyed by id
        report: Report being assembled for this pass
        dry_run: If True, no side-effecting collaborator call is made
        scope: If set, only these ticket ids are processed
        worktrees: Worktree handles observed or created, keyed by branch
        initial: Status of each ticket when the pass first saw it
        retired: Tickets that left the registry during the pass (merged, or
            no longer listed by the tracker)
        retries: Retries consumed per ticket
        planned: Actions skipped in dry-run mode per ticket
        seen: Ids the tracker returned during the pass
    """

    registry: dict[str, Ticket]
    report: PassReport
    dry_run: bool = False
    scope: Optional[frozenset[str]] = None
    worktrees: dict[str, WorktreeHandle] = field(default_factory=dict)
    initial: dict[str, TicketStatus] = field(default_factory=dict)
    retired: dict[str, Ticket] = field(default_factory=dict)
    retries: dict[str, int] = field(default_factory=dict)
    planned: dict[str, list[Action]] = field(default_factory=dict)
    seen: set[str] = field(default_factory=set)

    def in_scope(self, ticket_id: str) -> bool:
        return self.scope is None or ticket_id in self.scope

    def with_status(self, status: TicketStatus) -> list[Ticket]:
        """Tickets in scope with the given status, in id order."""
        tickets = [
            t for t in self.registry.values() if t.status == status and self.in_scope(t.id)
        ]
        return sorted(tickets, key=lambda t: ticket_sort_key(t.id))

    def add_retries(self, ticket_id: str, count: int) -> None:
        if count:
            self.retries[ticket_id] = self.retries.get(ticket_id, 0) + count


Phase = Callable[[PassContext], PassContext]


class Orchestrator:
    """Drives tickets through the delivery cycle.

    The orchestrator is constructed with the four collaborators and resolved
    settings; it never chooses a provider itself. Public entry points are
    run_once, run_continuous, process_ticket, sync_reviews, merge_ready and
    status. The phase methods are public so that a single phase can be
    exercised on a PassContext.
    """

    def __init__(
        self,
        tracker: IssueTracker,
        agent: CodeAgent,
        forge: GitForge,
        worktrees: WorktreeManager,
        settings: Optional[OrchestratorSettings] = None,
        registry: Optional[dict[str, Ticket]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.tracker = tracker
        self.agent = agent
        self.forge = forge
        self.worktrees = worktrees
        self.settings = settings or OrchestratorSettings()
        self.registry: dict[str, Ticket] = dict(registry or {})
        self._sleep = sleep
        self._clock = clock
        self.call = Caller(self.settings.retry, sleep=sleep)
        self.merger = MergeCoordinator(forge, worktrees, tracker, self.settings, self.call)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run_once(self, dry_run: bool = False) -> PassReport:
        """Run all five phases once.

        Raises:
            PassAborted: If a fatal collaborator error occurs
        """
        ctx = self.begin(dry_run=dry_run)
        return self._run(
            ctx,
            [
                ("discover", self.discover),
                ("execute", self.execute),
                ("sync", self.sync),
                ("reprocess", self.reprocess),
                ("merge", self.merge),
            ],
        )

    def run_continuous(
        self,
        interval: float,
        stop_event: Optional[threading.Event] = None,
        max_passes: Optional[int] = None,
        dry_run: bool = False,
        on_report: Optional[Callable[[PassReport], None]] = None,
    ) -> int:
        """Run passes repeatedly until stopped.

        The stop event is only checked between passes, so a pass always runs
        to completion (or aborts fatally) before the loop returns.

        Args:
            interval: Seconds to wait between passes
            stop_event: Event that ends the loop once set
            max_passes: Optional upper bound on the number of passes
            dry_run: Run every pass in dry-run mode
            on_report: Called with each pass report

        Returns:
            Number of passes run

        Raises:
            PassAborted: If a pass aborts fatally
        """
        stop_event = stop_event or threading.Event()
        passes = 0
        while not stop_event.is_set():
            report = self.run_once(dry_run=dry_run)
            passes += 1
            if on_report is not None:
                on_report(report)
            if max_passes is not None and passes >= max_passes:
                break
            if stop_event.wait(interval):
                break
        logger.info(f"Continuous run stopped after {passes} passes")
        return passes

    def process_ticket(
        self, ticket_id: str, dry_run: bool = False, retry_failed: bool = False
    ) -> PassReport:
        """Run one pass restricted to a single ticket.

        Args:
            ticket_id: Ticket to process
            dry_run: If True, only plan side effects
            retry_failed: Reset a Failed ticket to Ready first (manual re-trigger)

        Raises:
            PassAborted: If a fatal collaborator error occurs
            TicketScopedError: If the tracker cannot return the ticket
        """
        ctx = self.begin(dry_run=dry_run, scope=frozenset({ticket_id}))
        outcome = self.call(
            lambda: self.tracker.get_ticket(ticket_id), f"get ticket {ticket_id}"
        )
        if not outcome.ok:
            raise TicketScopedError(f"Cannot load ticket {ticket_id}: {outcome.error}")
        ticket = self._adopt(ctx, outcome.value)
        if retry_failed and ticket.status == TicketStatus.FAILED:
            self._commit(ctx, ticket, reset_failed(ticket))
        return self._run(
            ctx,
            [
                ("discover", self.discover),
                ("execute", self.execute),
                ("sync", self.sync),
                ("reprocess", self.reprocess),
                ("merge", self.merge),
            ],
        )

    def sync_reviews(self, dry_run: bool = False) -> PassReport:
        """Fetch review comments and apply signals without running agents or merges."""
        ctx = self.begin(dry_run=dry_run)
        return self._run(
            ctx,
            [("observe", self.observe), ("sync", self.sync), ("reprocess", self.reprocess)],
        )

    def merge_ready(self, dry_run: bool = False) -> PassReport:
        """Merge every Approved ticket without running the other phases."""
        ctx = self.begin(dry_run=dry_run)
        return self._run(ctx, [("observe", self.observe), ("merge", self.merge)])

    def status(self) -> list[Ticket]:
        """Current tickets re-derived from external state, without side effects.

        Raises:
            FatalError: If the tracker or repository cannot be reached
        """
        ctx = self.observe(self.begin(dry_run=True))
        tickets = list(ctx.registry.values())
        return sorted(tickets, key=lambda t: ticket_sort_key(t.id))

    # ------------------------------------------------------------------
    # Pass plumbing
    # ------------------------------------------------------------------

    def begin(self, dry_run: bool = False, scope: Optional[frozenset[str]] = None) -> PassContext:
        """Start a pass context from the current registry."""
        ctx = PassContext(
            registry=dict(self.registry),
            report=PassReport(started_at=self._clock(), dry_run=dry_run),
            dry_run=dry_run,
            scope=scope,
        )
        for ticket in ctx.registry.values():
            if ctx.in_scope(ticket.id):
                ctx.initial[ticket.id] = ticket.status
        return ctx

    def _run(self, ctx: PassContext, phases: list[tuple[str, Phase]]) -> PassReport:
        mode = " (dry run)" if ctx.dry_run else ""
        logger.info(f"Pass started{mode}: {len(ctx.registry)} tracked tickets")
        for name, phase in phases:
            logger.debug(f"Phase {name} starting")
            try:
                ctx = phase(ctx)
            except FatalError as e:
                report = self.finish(ctx)
                logger.error(f"Pass aborted during {name}: {e}")
                raise PassAborted(name, e, report) from e
            ctx.report.phases_completed.append(name)
        report = self.finish(ctx)
        logger.info(
            f"Pass finished{mode}: {len(report.changed)} changed, {len(report.failed)} failed"
        )
        return report

    def finish(self, ctx: PassContext) -> PassReport:
        """Close the report and, outside dry-run mode, keep the registry."""
        report = ctx.report
        for ticket_id, initial in ctx.initial.items():
            ticket = ctx.registry.get(ticket_id) or ctx.retired.get(ticket_id)
            if ticket is None:
                continue
            report.outcomes[ticket_id] = TicketOutcome(
                ticket_id=ticket_id,
                initial_status=initial,
                final_status=ticket.status,
                failure_reason=ticket.failure_reason
                if ticket.status == TicketStatus.FAILED
                else None,
                retries=ctx.retries.get(ticket_id, 0),
                planned_actions=tuple(ctx.planned.get(ticket_id, ())),
            )
        report.finished_at = self._clock()
        if not ctx.dry_run:
            self.registry = ctx.registry
        return report

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def observe(self, ctx: PassContext) -> PassContext:
        """Adopt unblocked tickets and record existing worktrees.

        Tracked tickets the tracker no longer lists (closed or blocked again)
        leave the registry. Failed ones stay so that they remain visible.
        """
        listed = self._require(self.tracker.list_unblocked, "list unblocked tickets")
        handles = self._require(self.worktrees.list, "list worktrees")
        ctx.worktrees.update({h.branch: h for h in handles})
        for ticket in sorted(listed, key=lambda t: ticket_sort_key(t.id)):
            if ctx.in_scope(ticket.id):
                self._adopt(ctx, ticket)

        for ticket in list(ctx.registry.values()):
            if ticket.id in ctx.seen or not ctx.in_scope(ticket.id):
                continue
            if ticket.status == TicketStatus.FAILED:
                continue
            logger.info(
                f"Ticket {ticket.id} ({ticket.status.value}) no longer listed by the tracker"
            )
            ctx.registry.pop(ticket.id)
            ctx.retired[ticket.id] = ticket
        return ctx

    def discover(self, ctx: PassContext) -> PassContext:
        """Phase 1: adopt tickets and start every Ready one."""
        ctx = self.observe(ctx)
        for ticket in ctx.with_status(TicketStatus.READY):
            exists = ticket.branch in ctx.worktrees
            self._apply(ctx, ticket, transition(ticket, Signals(worktree_exists=exists)))
        return ctx

    def execute(self, ctx: PassContext) -> PassContext:
        """Phase 2: invoke the agent for every InProgress ticket.

        Agent invocations run on a pool of at most max_concurrent_agents
        workers; the phase returns only after every invocation finished.
        Results are applied afterwards on this thread in ticket id order.
        """
        candidates = ctx.with_status(TicketStatus.IN_PROGRESS)
        if not candidates:
            return ctx

        if ctx.dry_run:
            for ticket in candidates:
                self._plan(ctx, ticket, (Action.INVOKE_AGENT,))
            return ctx

        tasks: dict[str, AgentTask] = {}
        for ticket in candidates:
            handle = self._ensure_worktree(ctx, ticket)
            if handle is not None:
                tasks[ticket.id] = self._build_task(ticket, handle)

        results = self._run_agents(tasks)

        for ticket_id in sorted(results, key=ticket_sort_key):
            ticket = ctx.registry[ticket_id]
            outcome = results[ticket_id]
            ctx.add_retries(ticket_id, outcome.retries)
            if outcome.ok:
                signals = Signals(agent_result=outcome.value)
            else:
                signals = Signals(error=f"Agent could not run: {outcome.error}")
            self._apply(ctx, ticket, transition(ticket, signals))
        return ctx

    def sync(self, ctx: PassContext) -> PassContext:
        """Phase 3: read review comments of InReview tickets and apply signals."""
        for ticket in ctx.with_status(TicketStatus.IN_REVIEW):
            if ticket.merge_request_id is None:
                self._fail(ctx, ticket, "In review without a merge request")
                continue
            outcome = self.call(
                partial(self.forge.list_comments, ticket.merge_request_id),
                f"list comments of {ticket.merge_request_id}",
            )
            ctx.add_retries(ticket.id, outcome.retries)
            if not outcome.ok:
                self._fail(ctx, ticket, f"Could not fetch review comments: {outcome.error}")
                continue
            comments = fresh_comments(ticket, outcome.value)
            result = transition(ticket, Signals(comments=comments), self.settings.matchers)
            self._apply(ctx, ticket, result)
        return ctx

    def reprocess(self, ctx: PassContext) -> PassContext:
        """Phase 4: ChangesNeeded tickets go back to InProgress for the next pass."""
        for ticket in ctx.with_status(TicketStatus.CHANGES_NEEDED):
            self._apply(ctx, ticket, transition(ticket, Signals()))
        return ctx

    def merge(self, ctx: PassContext) -> PassContext:
        """Phase 5: merge Approved tickets one at a time."""
        approved = ctx.with_status(TicketStatus.APPROVED)
        if not approved:
            return ctx

        def record(step: MergeStep) -> None:
            ctx.add_retries(step.before.id, step.retries)
            if step.planned_actions:
                self._plan(ctx, step.before, step.planned_actions)
            self._commit(ctx, step.before, step.transition.ticket)

        self.merger.merge_all(approved, ctx.worktrees, dry_run=ctx.dry_run, on_step=record)
        return ctx

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _adopt(self, ctx: PassContext, ticket: Ticket) -> Ticket:
        """Add a tracker ticket to the registry, re-deriving what it cannot carry.

        The first time a pass sees a tracked ticket whose tracker status
        differs from the registry, the tracker status is adopted afresh.
        """
        existing = ctx.registry.get(ticket.id)
        first_sighting = ticket.id not in ctx.seen
        ctx.seen.add(ticket.id)
        if existing is not None and first_sighting and existing.status != ticket.status:
            logger.info(
                f"Ticket {ticket.id}: tracker reports {ticket.status.value}, "
                f"was {existing.status.value}; adopting tracker status"
            )
            ctx.initial.setdefault(existing.id, existing.status)
            existing = None
        if existing is not None:
            if (existing.title, existing.description) != (ticket.title, ticket.description):
                existing = replace(existing, title=ticket.title, description=ticket.description)
                ctx.registry[existing.id] = existing
            ctx.initial.setdefault(existing.id, existing.status)
            return existing

        branch = branch_name_for(ticket.id, self.settings.branch_prefix)
        ticket = replace(ticket, branch=branch)
        ctx.initial.setdefault(ticket.id, ticket.status)
        ctx.registry[ticket.id] = ticket
        logger.debug(f"Adopted ticket {ticket.id} ({ticket.status.value})")

        if ticket.status not in _PUBLISHED:
            return ticket

        if ticket.merge_request_id is None:
            outcome = self.call(
                partial(self.forge.find_merge_request, branch),
                f"find merge request for {branch}",
            )
            ctx.add_retries(ticket.id, outcome.retries)
            if not outcome.ok:
                return self._fail(ctx, ticket, f"Could not look up merge request: {outcome.error}")
            if outcome.value is None:
                return self._fail(ctx, ticket, f"No merge request found for {branch}")
            ticket = ticket.with_merge_request(outcome.value)

        if ticket.status == TicketStatus.IN_REVIEW and ticket.last_pushed_at is None:
            outcome = self.call(
                partial(self.forge.get_merge_request, ticket.merge_request_id),
                f"get merge request {ticket.merge_request_id}",
            )
            ctx.add_retries(ticket.id, outcome.retries)
            if not outcome.ok:
                return self._fail(ctx, ticket, f"Could not read merge request: {outcome.error}")
            ticket = replace(ticket, last_pushed_at=outcome.value.head_committed_at)

        ctx.registry[ticket.id] = ticket
        return ticket

    def _apply(self, ctx: PassContext, before: Ticket, result: Transition) -> Ticket:
        """Perform a transition's side effects, then commit the new ticket.

        If any side effect fails the ticket is failed from its prior status
        instead, and the remaining side effects are skipped.
        """
        after = result.ticket
        actions = tuple(a for a in result.actions if a != Action.CAPTURE_COMMENTS)

        if ctx.dry_run:
            self._plan(ctx, before, actions)
            return self._commit(ctx, before, after)

        for action in actions:
            outcome, after = self._perform(ctx, action, after)
            ctx.add_retries(before.id, outcome.retries)
            if not outcome.ok:
                return self._fail(ctx, before, f"{action.value} failed: {outcome.error}")

        if Action.CAPTURE_COMMENTS in result.actions:
            logger.info(
                f"Ticket {after.id}: captured {len(after.pending_comments)} review comments"
            )
        return self._commit(ctx, before, after)

    def _perform(
        self, ctx: PassContext, action: Action, ticket: Ticket
    ) -> tuple[CallOutcome, Ticket]:
        if action == Action.CREATE_WORKTREE:
            path = self.settings.worktree_path(ticket.id)
            outcome = self.call(
                partial(self.worktrees.create, ticket.branch, path),
                f"create worktree {path}",
            )
            if outcome.ok:
                ctx.worktrees[ticket.branch] = outcome.value
            return outcome, ticket

        if action == Action.PUSH_BRANCH:
            handle = self._handle_for(ctx, ticket)
            message = f"{ticket.id}: {ticket.title}"
            if ticket.review_round:
                message += f" (review round {ticket.review_round})"
            outcome = self.call(
                partial(self.worktrees.commit_and_push, handle, message),
                f"push {ticket.branch}",
            )
            if outcome.ok:
                ticket = replace(ticket, last_pushed_at=self._clock())
            return outcome, ticket

        if action == Action.OPEN_MERGE_REQUEST:
            outcome = self.call(
                partial(self._open_merge_request, ticket), f"open merge request for {ticket.id}"
            )
            if outcome.ok:
                ticket = ticket.with_merge_request(outcome.value)
                logger.info(f"Ticket {ticket.id}: merge request {outcome.value} open")
            return outcome, ticket

        raise ValueError(f"Unexpected action for phase execution: {action}")

    def _open_merge_request(self, ticket: Ticket) -> str:
        # An open request for the branch (e.g. from an interrupted pass) is reused
        existing = self.forge.find_merge_request(ticket.branch)
        if existing is not None:
            return existing
        return self.forge.create_merge_request(
            NewMergeRequest(
                title=f"{ticket.id}: {ticket.title}",
                description=ticket.description,
                source_branch=ticket.branch,
                target_branch=self.settings.main_branch,
            )
        )

    def _commit(self, ctx: PassContext, before: Ticket, after: Ticket) -> Ticket:
        """Store the new ticket value and mirror a status change to the tracker."""
        ctx.initial.setdefault(before.id, before.status)
        if after.status != before.status:
            logger.info(f"Ticket {after.id}: {before.status.value} -> {after.status.value}")
            if not ctx.dry_run and after.status != TicketStatus.MERGED:
                outcome = self._record_status(ctx, after)
                if not outcome.ok and after.status != TicketStatus.FAILED:
                    reason = f"Could not record status {after.status.value}: {outcome.error}"
                    logger.warning(f"Ticket {after.id} failed: {reason}")
                    unrecorded = replace(after, status=before.status)
                    after = transition(unrecorded, Signals(error=reason)).ticket
                    outcome = self._record_status(ctx, after)
                if not outcome.ok:
                    logger.error(f"Could not record failure of {after.id}: {outcome.error}")

        if after.status == TicketStatus.MERGED:
            ctx.registry.pop(after.id, None)
            ctx.retired[after.id] = after
        else:
            ctx.registry[after.id] = after
        return after

    def _record_status(self, ctx: PassContext, ticket: Ticket) -> CallOutcome:
        outcome = self.call(
            partial(self.tracker.update_status, ticket.id, ticket.status),
            f"update status of {ticket.id}",
        )
        ctx.add_retries(ticket.id, outcome.retries)
        return outcome

    def _require(self, fn: Callable[[], object], description: str):
        """Run a call the whole pass depends on; any failure is fatal."""
        outcome = self.call(fn, description, ErrorKind.FATAL)
        if not outcome.ok:
            raise as_fatal(outcome.error, description)
        return outcome.value

    def _fail(self, ctx: PassContext, ticket: Ticket, reason: str) -> Ticket:
        logger.warning(f"Ticket {ticket.id} failed: {reason}")
        return self._commit(ctx, ticket, transition(ticket, Signals(error=reason)).ticket)

    def _plan(self, ctx: PassContext, ticket: Ticket, actions: tuple[Action, ...]) -> None:
        if not actions:
            return
        logger.info(
            f"[dry-run] {ticket.id}: would "
            + ", ".join(a.value.replace("_", " ") for a in actions)
        )
        ctx.planned.setdefault(ticket.id, []).extend(actions)

    def _handle_for(self, ctx: PassContext, ticket: Ticket) -> WorktreeHandle:
        return ctx.worktrees.get(ticket.branch) or WorktreeHandle(
            branch=ticket.branch, path=self.settings.worktree_path(ticket.id)
        )

    def _ensure_worktree(self, ctx: PassContext, ticket: Ticket) -> Optional[WorktreeHandle]:
        """Worktree of an InProgress ticket, recreated if it went missing."""
        handle = ctx.worktrees.get(ticket.branch)
        if handle is not None:
            return handle
        outcome, _ = self._perform(ctx, Action.CREATE_WORKTREE, ticket)
        ctx.add_retries(ticket.id, outcome.retries)
        if not outcome.ok:
            self._fail(ctx, ticket, f"Worktree unavailable: {outcome.error}")
            return None
        return outcome.value

    def _build_task(self, ticket: Ticket, handle: WorktreeHandle) -> AgentTask:
        return AgentTask(
            ticket=ticket,
            worktree=handle.path,
            comments=ticket.pending_comments,
            instructions=self.settings.instructions,
        )

    def _run_agents(self, tasks: dict[str, AgentTask]) -> dict[str, CallOutcome]:
        """Invoke the agent for every task on a bounded worker pool.

        Raises:
            FatalError: If any invocation fails fatally. Queued invocations are
                cancelled and running ones are awaited before raising.
        """
        results: dict[str, CallOutcome] = {}
        if not tasks:
            return results

        workers = min(self.settings.max_concurrent_agents, len(tasks))
        logger.info(f"Running {len(tasks)} agent tasks on {workers} workers")
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="agent") as pool:
            futures = {
                pool.submit(
                    call_with_retry,
                    partial(self.agent.execute, task),
                    self.settings.retry,
                    f"agent for {ticket_id}",
                    ErrorKind.TICKET_SCOPED,
                    self._sleep,
                ): ticket_id
                for ticket_id, task in tasks.items()
            }
            for future in as_completed(futures):
                ticket_id = futures[future]
                outcome = future.result()
                if outcome.kind == ErrorKind.FATAL:
                    pool.shutdown(wait=True, cancel_futures=True)
                    raise as_fatal(outcome.error, f"agent for {ticket_id}")
                results[ticket_id] = outcome
        return results
