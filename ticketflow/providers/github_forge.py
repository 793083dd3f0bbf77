"""GitHub forge provider built on the ``gh`` CLI.

Pull requests are the merge requests; their number is the MergeRequestId.
Review comments combine the conversation comments, submitted reviews (which
carry a verdict such as APPROVED) and inline code comments.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from ticketflow.engine.errors import FatalError, TicketScopedError, TransientError
from ticketflow.engine.models import (
    MergeRequest,
    MergeRequestState,
    NewMergeRequest,
    ReviewComment,
)

logger = logging.getLogger(__name__)

_TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "could not resolve host",
    "connection reset",
    "http 502",
    "http 503",
    "http 504",
    "rate limit",
)
_FATAL_MARKERS = ("gh auth login", "authentication", "not a git repository")

_MERGE_FLAGS = {"squash": "--squash", "merge": "--merge", "rebase": "--rebase"}


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class GitHubForge:
    """GitHub pull requests through the gh CLI."""

    def __init__(self, repo_path: Optional[Path] = None, repo: Optional[str] = None):
        """Initialize the forge.

        Args:
            repo_path: Local clone gh runs in (defaults to current directory)
            repo: Optional "owner/name"; inferred from the clone when omitted
        """
        self.repo_path = repo_path
        self.repo = repo

    def _run_gh(self, args: List[str]) -> str:
        """Run a gh command and return stdout.

        Raises:
            FatalError: gh missing or not authenticated
            TransientError: network trouble or rate limiting
            TicketScopedError: any other failure
        """
        cmd = ["gh", *args]
        try:
            result = subprocess.run(
                cmd, cwd=self.repo_path, capture_output=True, text=True, check=False
            )
        except FileNotFoundError as e:
            raise FatalError("GitHub CLI (gh) not found in PATH") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            message = f"gh command failed: {' '.join(cmd)}\nstderr: {stderr}"
            lowered = stderr.lower()
            if any(marker in lowered for marker in _FATAL_MARKERS):
                raise FatalError(message)
            if any(marker in lowered for marker in _TRANSIENT_MARKERS):
                raise TransientError(message)
            raise TicketScopedError(message)
        return result.stdout

    def _repo_args(self) -> List[str]:
        return ["--repo", self.repo] if self.repo else []

    def _json(self, args: List[str]) -> Any:
        output = self._run_gh(args)
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise TicketScopedError(f"Unexpected gh output for {' '.join(args)}: {e}") from e

    def create_merge_request(self, request: NewMergeRequest) -> str:
        output = self._run_gh(
            [
                "pr",
                "create",
                "--title",
                request.title,
                "--body",
                request.description or request.title,
                "--head",
                request.source_branch,
                "--base",
                request.target_branch,
                *self._repo_args(),
            ]
        )
        match = re.search(r"/pull/(\d+)", output)
        if not match:
            raise TicketScopedError(f"Could not find pull request number in: {output.strip()}")
        logger.info(f"Opened pull request #{match.group(1)} for {request.source_branch}")
        return match.group(1)

    def find_merge_request(self, branch: str) -> Optional[str]:
        data = self._json(
            [
                "pr",
                "list",
                "--head",
                branch,
                "--state",
                "open",
                "--json",
                "number",
                "--limit",
                "1",
                *self._repo_args(),
            ]
        )
        if not data:
            return None
        return str(data[0]["number"])

    def get_merge_request(self, merge_request_id: str) -> MergeRequest:
        data = self._json(
            [
                "pr",
                "view",
                merge_request_id,
                "--json",
                "number,state,headRefName,url,commits",
                *self._repo_args(),
            ]
        )
        commit_times = [
            _parse_time(c.get("committedDate")) for c in data.get("commits", [])
        ]
        commit_times = [t for t in commit_times if t is not None]
        return MergeRequest(
            id=str(data["number"]),
            state=MergeRequestState(data["state"].lower()),
            source_branch=data["headRefName"],
            url=data.get("url"),
            head_committed_at=max(commit_times) if commit_times else None,
        )

    def list_comments(self, merge_request_id: str) -> list[ReviewComment]:
        data = self._json(
            ["pr", "view", merge_request_id, "--json", "comments,reviews", *self._repo_args()]
        )
        comments = [
            ReviewComment(
                author=(c.get("author") or {}).get("login", "unknown"),
                body=c.get("body", ""),
                created_at=_parse_time(c["createdAt"]),
            )
            for c in data.get("comments", [])
        ]
        for review in data.get("reviews", []):
            submitted = _parse_time(review.get("submittedAt"))
            if submitted is None:
                continue
            comments.append(
                ReviewComment(
                    author=(review.get("author") or {}).get("login", "unknown"),
                    body=review.get("body", ""),
                    created_at=submitted,
                    verdict=review.get("state"),
                )
            )
        comments.extend(self._inline_comments(merge_request_id))
        return sorted(comments, key=lambda c: c.created_at)

    def _inline_comments(self, merge_request_id: str) -> List[ReviewComment]:
        repo = self.repo or "{owner}/{repo}"
        output = self._run_gh(
            [
                "api",
                f"repos/{repo}/pulls/{merge_request_id}/comments",
                "--paginate",
                "--jq",
                ".[] | {login: .user.login, body, path, line, created_at}",
            ]
        )
        comments = []
        for line in output.splitlines():
            if not line.strip():
                continue
            try:
                item = json.loads(line)
            except json.JSONDecodeError as e:
                raise TicketScopedError(f"Unexpected gh api output: {e}") from e
            comments.append(
                ReviewComment(
                    author=item.get("login") or "unknown",
                    body=item.get("body") or "",
                    created_at=_parse_time(item["created_at"]),
                    path=item.get("path"),
                    line=item.get("line"),
                )
            )
        return comments

    def merge(self, merge_request_id: str, strategy: str = "squash") -> None:
        flag = _MERGE_FLAGS.get(strategy)
        if flag is None:
            raise FatalError(f"Invalid merge strategy: {strategy}")
        self._run_gh(["pr", "merge", merge_request_id, flag, *self._repo_args()])
        logger.info(f"Merged pull request #{merge_request_id} ({strategy})")

    def close_merge_request(self, merge_request_id: str) -> None:
        self._run_gh(["pr", "close", merge_request_id, *self._repo_args()])
