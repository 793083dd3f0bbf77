"""Resolved configuration consumed by the orchestration engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ticketflow.engine.errors import RetryPolicy
from ticketflow.engine.signals import DEFAULT_MATCHERS, SignalMatchers

MERGE_STRATEGIES = ("squash", "merge", "rebase")

DEFAULT_INSTRUCTIONS = """Implement the ticket below in this worktree.
Keep changes focused on the ticket, add or update tests, and make sure the
test suite passes. Do not push; the orchestrator commits and pushes for you."""


@dataclass(frozen=True)
class OrchestratorSettings:
    """Engine settings, already parsed and validated.

    Attributes:
        max_concurrent_agents: Size of the Phase 2 worker pool
        branch_prefix: Prefix of ticket branches ("ticket" -> "ticket/PROJ-1")
        main_branch: Branch merge requests target and rebases replay onto
        worktree_root: Directory holding one worktree per ticket
        merge_strategy: One of "squash", "merge", "rebase"
        matchers: Reprocess and approval signal matchers
        retry: Retry policy for transient collaborator failures
        instructions: Standing instructions included in every agent task
    """

    max_concurrent_agents: int = 4
    branch_prefix: str = "ticket"
    main_branch: str = "main"
    worktree_root: Path = Path(".worktrees")
    merge_strategy: str = "squash"
    matchers: SignalMatchers = DEFAULT_MATCHERS
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    instructions: str = DEFAULT_INSTRUCTIONS

    def __post_init__(self) -> None:
        if self.max_concurrent_agents < 1:
            raise ValueError(
                f"max_concurrent_agents must be at least 1, got {self.max_concurrent_agents}"
            )
        if self.merge_strategy not in MERGE_STRATEGIES:
            raise ValueError(
                f"Invalid merge strategy: {self.merge_strategy}. "
                f"Use one of {', '.join(MERGE_STRATEGIES)}"
            )
        if not self.branch_prefix.strip("/"):
            raise ValueError("branch_prefix must not be empty")
        if self.retry.max_retries < 0:
            raise ValueError("retry.max_retries must not be negative")

    def worktree_path(self, ticket_id: str) -> Path:
        return self.worktree_root / ticket_id
