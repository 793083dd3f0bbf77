"""Unit tests for GitHubForge with mocked gh invocations."""

import json
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from ticketflow.engine.errors import FatalError, TicketScopedError, TransientError
from ticketflow.engine.models import MergeRequestState, NewMergeRequest
from ticketflow.providers.github_forge import GitHubForge


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(
        args=["gh"], returncode=returncode, stdout=stdout, stderr=stderr
    )


class TestRunGh:
    @patch("subprocess.run")
    def test_runs_in_repo_path(self, mock_run):
        mock_run.return_value = completed(stdout="ok")

        output = GitHubForge(repo_path=Path("/repo"))._run_gh(["pr", "list"])

        assert output == "ok"
        mock_run.assert_called_once_with(
            ["gh", "pr", "list"],
            cwd=Path("/repo"),
            capture_output=True,
            text=True,
            check=False,
        )

    @pytest.mark.parametrize(
        "stderr, error",
        [
            ("To get started with GitHub CLI, please run:  gh auth login", FatalError),
            ("error connecting to api.github.com: could not resolve host", TransientError),
            ("HTTP 502: Bad Gateway", TransientError),
            ("HTTP 503: Service Unavailable (https://api.github.com/graphql)", TransientError),
            ("GraphQL: Pull request #502 is not mergeable", TicketScopedError),
            ("API rate limit exceeded", TransientError),
            ("GraphQL: Head sha can't be blank", TicketScopedError),
        ],
    )
    @patch("subprocess.run")
    def test_stderr_classification(self, mock_run, stderr, error):
        mock_run.return_value = completed(returncode=1, stderr=stderr)

        with pytest.raises(error):
            GitHubForge()._run_gh(["pr", "view", "1"])

    @patch("subprocess.run", side_effect=FileNotFoundError("gh"))
    def test_missing_gh_is_fatal(self, mock_run):
        with pytest.raises(FatalError, match="not found"):
            GitHubForge()._run_gh(["pr", "list"])


class TestMergeRequests:
    @patch("subprocess.run")
    def test_create_returns_pull_number(self, mock_run):
        mock_run.return_value = completed(stdout="https://github.com/acme/app/pull/42\n")
        request = NewMergeRequest(
            title="PROJ-1: Add login",
            description="",
            source_branch="ticket/PROJ-1",
            target_branch="main",
        )

        mr_id = GitHubForge(repo="acme/app").create_merge_request(request)

        assert mr_id == "42"
        args = mock_run.call_args[0][0]
        assert args[:3] == ["gh", "pr", "create"]
        assert args[args.index("--body") + 1] == "PROJ-1: Add login"
        assert args[args.index("--head") + 1] == "ticket/PROJ-1"
        assert args[-2:] == ["--repo", "acme/app"]

    @patch("subprocess.run")
    def test_create_without_url_fails_ticket(self, mock_run):
        mock_run.return_value = completed(stdout="something unexpected")
        request = NewMergeRequest("t", "d", "ticket/PROJ-1", "main")

        with pytest.raises(TicketScopedError):
            GitHubForge().create_merge_request(request)

    @patch("subprocess.run")
    def test_find_open_request(self, mock_run):
        mock_run.return_value = completed(stdout='[{"number": 7}]')

        assert GitHubForge().find_merge_request("ticket/PROJ-1") == "7"

    @patch("subprocess.run")
    def test_find_none(self, mock_run):
        mock_run.return_value = completed(stdout="[]")

        assert GitHubForge().find_merge_request("ticket/PROJ-1") is None

    @patch("subprocess.run")
    def test_get_uses_latest_commit_time(self, mock_run):
        mock_run.return_value = completed(
            stdout=json.dumps(
                {
                    "number": 7,
                    "state": "OPEN",
                    "headRefName": "ticket/PROJ-1",
                    "url": "https://github.com/acme/app/pull/7",
                    "commits": [
                        {"committedDate": "2026-01-02T10:00:00Z"},
                        {"committedDate": "2026-01-03T09:30:00Z"},
                    ],
                }
            )
        )

        mr = GitHubForge().get_merge_request("7")

        assert mr.id == "7"
        assert mr.state == MergeRequestState.OPEN
        assert mr.source_branch == "ticket/PROJ-1"
        assert mr.head_committed_at == datetime(2026, 1, 3, 9, 30, tzinfo=timezone.utc)

    @patch("subprocess.run")
    def test_invalid_json_fails_ticket(self, mock_run):
        mock_run.return_value = completed(stdout="not json")

        with pytest.raises(TicketScopedError, match="Unexpected gh output"):
            GitHubForge().get_merge_request("7")


class TestListComments:
    @patch("subprocess.run")
    def test_combines_comments_reviews_and_inline(self, mock_run):
        view = {
            "comments": [
                {
                    "author": {"login": "alice"},
                    "body": "/reprocess handle empty input",
                    "createdAt": "2026-01-02T10:00:00Z",
                }
            ],
            "reviews": [
                {
                    "author": {"login": "bob"},
                    "body": "",
                    "state": "APPROVED",
                    "submittedAt": "2026-01-02T12:00:00Z",
                },
                {"author": {"login": "carol"}, "body": "draft", "state": "PENDING"},
            ],
        }
        inline = json.dumps(
            {
                "login": "dave",
                "body": "rename this",
                "path": "app.py",
                "line": 12,
                "created_at": "2026-01-02T11:00:00Z",
            }
        )
        mock_run.side_effect = [completed(stdout=json.dumps(view)), completed(stdout=inline + "\n")]

        comments = GitHubForge(repo="acme/app").list_comments("7")

        assert [c.author for c in comments] == ["alice", "dave", "bob"]
        assert comments[1].path == "app.py"
        assert comments[1].line == 12
        assert comments[2].verdict == "APPROVED"
        api_args = mock_run.call_args_list[1][0][0]
        assert api_args[:3] == ["gh", "api", "repos/acme/app/pulls/7/comments"]


class TestMerge:
    @pytest.mark.parametrize(
        "strategy, flag", [("squash", "--squash"), ("merge", "--merge"), ("rebase", "--rebase")]
    )
    @patch("subprocess.run")
    def test_strategy_flag(self, mock_run, strategy, flag):
        mock_run.return_value = completed()

        GitHubForge().merge("7", strategy)

        assert mock_run.call_args[0][0] == ["gh", "pr", "merge", "7", flag]

    @patch("subprocess.run")
    def test_unknown_strategy_is_fatal(self, mock_run):
        with pytest.raises(FatalError, match="Invalid merge strategy"):
            GitHubForge().merge("7", "octopus")

        mock_run.assert_not_called()

    @patch("subprocess.run")
    def test_close(self, mock_run):
        mock_run.return_value = completed()

        GitHubForge(repo="acme/app").close_merge_request("7")

        assert mock_run.call_args[0][0] == ["gh", "pr", "close", "7", "--repo", "acme/app"]
