"""Sequential merge of approved tickets in a deterministic order.

Approved tickets are processed in ascending ticket id order, one at a time:
rebase onto main, then merge, release the worktree and close the ticket. A
conflict fails only that ticket; the coordinator moves on to the next one.
Merges are never concurrent because every rebase is taken against the shared
main branch. A merge request the forge already reports as merged is not
merged again; only the remaining cleanup runs.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from ticketflow.engine.errors import Caller, FatalError
from ticketflow.engine.models import (
    Action,
    MergeRequestState,
    RebaseResult,
    Signals,
    Ticket,
    TicketStatus,
    Transition,
    WorktreeHandle,
)
from ticketflow.engine.ports import GitForge, IssueTracker, WorktreeManager
from ticketflow.engine.settings import OrchestratorSettings
from ticketflow.engine.state_machine import transition

logger = logging.getLogger(__name__)


def ticket_sort_key(ticket_id: str) -> tuple:
    """Natural ordering key: digit runs compare numerically ("PROJ-2" < "PROJ-10")."""
    parts = re.split(r"(\d+)", ticket_id)
    return tuple((0, int(p), p) if p.isdigit() else (1, 0, p) for p in parts if p)


@dataclass(frozen=True)
class MergeStep:
    """Outcome of merging one approved ticket.

    ``error`` is set when a fatal error interrupted the cleanup after the
    merge request was merged; the ticket is then left Approved.
    """

    before: Ticket
    transition: Transition
    retries: int = 0
    planned_actions: tuple[Action, ...] = ()
    error: Optional[FatalError] = None


class MergeCoordinator:
    """Rebases and merges approved tickets one at a time."""

    def __init__(
        self,
        forge: GitForge,
        worktrees: WorktreeManager,
        tracker: IssueTracker,
        settings: OrchestratorSettings,
        caller: Caller,
    ):
        self.forge = forge
        self.worktrees = worktrees
        self.tracker = tracker
        self.settings = settings
        self.call = caller

    def order(self, tickets: Iterable[Ticket]) -> list[Ticket]:
        """Approved tickets in merge order."""
        approved = [t for t in tickets if t.status == TicketStatus.APPROVED]
        return sorted(approved, key=lambda t: ticket_sort_key(t.id))

    def merge_all(
        self,
        tickets: Iterable[Ticket],
        handles: dict[str, WorktreeHandle],
        dry_run: bool = False,
        on_step: Optional[Callable[[MergeStep], None]] = None,
    ) -> list[MergeStep]:
        """Merge every approved ticket in order.

        Args:
            tickets: Candidate tickets; only Approved ones are considered
            handles: Known worktree handles keyed by branch name
            dry_run: If True, only plan the actions
            on_step: Called after each ticket, before the next one starts

        Returns:
            One MergeStep per approved ticket, in processing order

        Raises:
            FatalError: If a collaborator is unreachable; earlier merges stand.
                A step interrupted after its merge request was merged is
                still passed to on_step before the error propagates.
        """
        steps = []
        for ticket in self.order(tickets):
            step = self._merge_one(ticket, handles, dry_run)
            steps.append(step)
            if on_step is not None:
                on_step(step)
            if step.error is not None:
                raise step.error
        return steps

    def _merge_one(
        self, ticket: Ticket, handles: dict[str, WorktreeHandle], dry_run: bool
    ) -> MergeStep:
        handle = handles.get(ticket.branch) or WorktreeHandle(
            branch=ticket.branch, path=self.settings.worktree_path(ticket.id)
        )
        requested = transition(ticket, Signals(), self.settings.matchers)

        if dry_run:
            logger.info(f"[dry-run] Would rebase and merge {ticket.id}")
            return MergeStep(
                before=ticket,
                transition=Transition(ticket),
                planned_actions=requested.actions
                + (Action.MERGE, Action.REMOVE_WORKTREE, Action.CLOSE_TICKET),
            )

        if ticket.merge_request_id is None:
            return self._fail(ticket, "Approved but no merge request is open", 0)

        outcome = self.call(
            lambda: self.forge.get_merge_request(ticket.merge_request_id),
            f"get merge request {ticket.merge_request_id}",
        )
        retries = outcome.retries
        if not outcome.ok:
            return self._fail(ticket, f"Could not read merge request: {outcome.error}", retries)

        if outcome.value.state == MergeRequestState.MERGED:
            # Merged by an earlier, interrupted pass: only the cleanup is left
            logger.info(f"Merge request {ticket.merge_request_id} already merged")
            result = transition(
                ticket, Signals(rebase_result=RebaseResult.clean()), self.settings.matchers
            )
            actions = tuple(a for a in result.actions if a != Action.MERGE)
            return self._finish(ticket, handle, result, actions, retries, merged=True)

        logger.info(f"Rebasing {ticket.id} onto {self.settings.main_branch}")
        outcome = self.call(
            lambda: self.worktrees.rebase_on_main(handle), f"rebase {ticket.branch}"
        )
        retries += outcome.retries
        if not outcome.ok:
            return self._fail(ticket, f"Rebase failed: {outcome.error}", retries)

        result = transition(ticket, Signals(rebase_result=outcome.value), self.settings.matchers)
        if result.ticket.status == TicketStatus.FAILED:
            logger.warning(f"Ticket {ticket.id}: {result.reason}")
            return MergeStep(before=ticket, transition=result, retries=retries)

        return self._finish(ticket, handle, result, result.actions, retries, merged=False)

    def _finish(
        self,
        ticket: Ticket,
        handle: WorktreeHandle,
        result: Transition,
        actions: tuple[Action, ...],
        retries: int,
        merged: bool,
    ) -> MergeStep:
        """Run the merge actions in order; once merged, a fatal error is kept on the step."""
        for action in actions:
            try:
                outcome = self._perform(action, ticket, handle)
            except FatalError as e:
                if not merged:
                    raise
                logger.error(f"Ticket {ticket.id} merged, but {action.value} failed: {e}")
                return MergeStep(
                    before=ticket, transition=Transition(ticket), retries=retries, error=e
                )
            retries += outcome.retries
            if not outcome.ok:
                reason = f"{action.value} failed: {outcome.error}"
                if merged:
                    reason = f"Merge request {ticket.merge_request_id} merged, but {reason}"
                return self._fail(ticket, reason, retries)
            merged = merged or action == Action.MERGE

        logger.info(f"Ticket {ticket.id} merged")
        return MergeStep(before=ticket, transition=result, retries=retries)

    def _perform(self, action: Action, ticket: Ticket, handle: WorktreeHandle):
        if action == Action.MERGE:
            return self.call(
                lambda: self.forge.merge(
                    ticket.merge_request_id, strategy=self.settings.merge_strategy
                ),
                f"merge request {ticket.merge_request_id}",
            )
        if action == Action.REMOVE_WORKTREE:
            return self.call(
                lambda: self.worktrees.remove(handle), f"remove worktree {handle.path}"
            )
        if action == Action.CLOSE_TICKET:
            return self.call(
                lambda: self.tracker.close_ticket(ticket.id), f"close ticket {ticket.id}"
            )
        raise ValueError(f"Unexpected merge action: {action}")

    def _fail(self, ticket: Ticket, reason: str, retries: int) -> MergeStep:
        logger.warning(f"Ticket {ticket.id}: {reason}")
        failed = transition(ticket, Signals(error=reason), self.settings.matchers)
        return MergeStep(before=ticket, transition=failed, retries=retries)
