"""Git worktree manager using subprocess.

This module provides GitWorktreeManager, which wraps the git commands the
orchestrator needs: one worktree per ticket branch, commit and push of the
agent's changes, and rebasing a branch onto the main branch. Operations are
idempotent where git allows it so that interrupted passes can be resumed.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from ticketflow.engine.errors import (
    CollaboratorError,
    ErrorKind,
    FatalError,
    TicketScopedError,
    TransientError,
)
from ticketflow.engine.models import RebaseResult, WorktreeHandle

logger = logging.getLogger(__name__)

# stderr fragments git emits when another process holds a repository lock
_LOCK_MARKERS = ("index.lock", "Unable to create", "cannot lock ref")


class GitError(CollaboratorError):
    """Exception raised when git operations fail."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.TICKET_SCOPED):
        super().__init__(message)
        self.kind = kind


class GitWorktreeManager:
    """Worktree manager backed by the git CLI."""

    def __init__(
        self,
        repo_path: Optional[Path] = None,
        main_branch: str = "main",
        remote: str = "origin",
    ):
        """Initialize GitWorktreeManager.

        Args:
            repo_path: Path to the main repository. If None, uses current directory.
            main_branch: Branch that rebases replay onto
            remote: Remote that branches are pushed to
        """
        self.repo_path = repo_path
        self.main_branch = main_branch
        self.remote = remote

    def _run_git_command(
        self, args: List[str], cwd: Optional[Path] = None, check: bool = True
    ) -> subprocess.CompletedProcess:
        """Run a git command with proper error handling.

        Args:
            args: Git command arguments (e.g., ["git", "status"])
            cwd: Directory to run in; defaults to the repository path
            check: Whether to raise exception on non-zero exit code

        Returns:
            CompletedProcess object with command results

        Raises:
            GitError: If command fails and check=True. Lock contention is
                tagged transient; a missing repository or git binary is fatal.
        """
        try:
            result = subprocess.run(
                args,
                cwd=cwd or self.repo_path,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            raise FatalError(f"Git executable or repository not found: {e}") from e
        except OSError as e:
            raise GitError(f"Unexpected error running git command: {e}") from e

        if check and result.returncode != 0:
            message = (
                f"Git command failed: {' '.join(args)}\n"
                f"Exit code: {result.returncode}\n"
                f"stdout: {result.stdout}\n"
                f"stderr: {result.stderr}"
            )
            if any(marker in result.stderr for marker in _LOCK_MARKERS):
                raise TransientError(message)
            if "not a git repository" in result.stderr:
                raise FatalError(message)
            raise GitError(message)
        return result

    def create(self, branch: str, path: Path) -> WorktreeHandle:
        """Create a worktree at ``path`` on ``branch``.

        This operation is idempotent - an existing worktree for the same
        branch at the same path is returned as-is. The branch is created from
        the main branch when it does not exist yet.

        Raises:
            GitError: If the path holds a worktree for a different branch
        """
        path = Path(path)
        for handle in self.list():
            if handle.branch == branch:
                if handle.path.resolve() != self._absolute(path).resolve():
                    raise GitError(
                        f"Branch '{branch}' is already checked out at {handle.path}"
                    )
                return handle

        exists = self._run_git_command(
            ["git", "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"], check=False
        )
        if exists.returncode == 0:
            self._run_git_command(["git", "worktree", "add", str(path), branch])
        else:
            self._run_git_command(
                ["git", "worktree", "add", "-b", branch, str(path), self.main_branch]
            )
        logger.info(f"Created worktree {path} on {branch}")
        return WorktreeHandle(branch=branch, path=path)

    def remove(self, handle: WorktreeHandle) -> None:
        """Remove a worktree and its local branch.

        This operation is idempotent - a worktree that is already gone is
        only pruned.
        """
        result = self._run_git_command(
            ["git", "worktree", "remove", "--force", str(handle.path)], check=False
        )
        if result.returncode != 0 and "is not a working tree" not in result.stderr:
            raise GitError(f"Failed to remove worktree '{handle.path}': {result.stderr}")
        self._run_git_command(["git", "worktree", "prune"])

        result = self._run_git_command(["git", "branch", "-D", handle.branch], check=False)
        # Ignore error if branch doesn't exist locally
        if result.returncode != 0 and "not found" not in result.stderr:
            raise GitError(f"Failed to delete local branch '{handle.branch}': {result.stderr}")

    def list(self) -> List[WorktreeHandle]:
        """List worktrees that have a branch checked out, excluding the main one."""
        result = self._run_git_command(["git", "worktree", "list", "--porcelain"])
        handles = []
        path: Optional[Path] = None
        for line in result.stdout.splitlines() + [""]:
            if line.startswith("worktree "):
                path = Path(line[len("worktree "):])
            elif line.startswith("branch ") and path is not None:
                branch = line[len("branch "):].removeprefix("refs/heads/")
                if branch != self.main_branch:
                    handles.append(WorktreeHandle(branch=branch, path=path))
            elif not line:
                path = None
        return handles

    def commit_and_push(self, handle: WorktreeHandle, message: str) -> None:
        """Commit every change in the worktree and push the branch.

        Agents may commit on their own, so an empty working tree is not an
        error; the branch is pushed either way.
        """
        self._run_git_command(["git", "add", "-A"], cwd=handle.path)
        status = self._run_git_command(["git", "status", "--porcelain"], cwd=handle.path)
        if status.stdout.strip():
            self._run_git_command(["git", "commit", "-m", message], cwd=handle.path)
        else:
            logger.debug(f"Nothing to commit in {handle.path}")
        try:
            self._run_git_command(
                ["git", "push", "--force-with-lease", "-u", self.remote, handle.branch],
                cwd=handle.path,
            )
        except GitError as e:
            # Pushes fail mostly on network trouble; let the retry policy decide
            raise TransientError(str(e)) from e

    def rebase_on_main(self, handle: WorktreeHandle) -> RebaseResult:
        """Rebase the worktree's branch onto the remote main branch.

        A conflicting rebase is aborted so the worktree is left as it was.

        Returns:
            RebaseResult.clean() or RebaseResult.conflict(files)
        """
        try:
            self._run_git_command(["git", "fetch", self.remote, self.main_branch], cwd=handle.path)
        except GitError as e:
            raise TransientError(str(e)) from e

        upstream = f"{self.remote}/{self.main_branch}"
        result = self._run_git_command(["git", "rebase", upstream], cwd=handle.path, check=False)
        if result.returncode == 0:
            self._run_git_command(
                ["git", "push", "--force-with-lease", self.remote, handle.branch],
                cwd=handle.path,
            )
            return RebaseResult.clean()

        conflicts = self._run_git_command(
            ["git", "diff", "--name-only", "--diff-filter=U"], cwd=handle.path, check=False
        )
        files = [f for f in conflicts.stdout.strip().split("\n") if f]
        self._run_git_command(["git", "rebase", "--abort"], cwd=handle.path, check=False)
        if not files:
            raise TicketScopedError(
                f"Rebase of {handle.branch} onto {upstream} failed: {result.stderr}"
            )
        logger.warning(f"Rebase of {handle.branch} conflicts in {len(files)} files")
        return RebaseResult.conflict(files)

    def _absolute(self, path: Path) -> Path:
        if path.is_absolute() or self.repo_path is None:
            return path
        return Path(self.repo_path) / path
