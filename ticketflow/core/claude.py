"""Claude CLI execution wrapper."""

import logging
import subprocess
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


class ClaudeNotFoundError(RuntimeError):
    """Raised when the Claude CLI executable is not on PATH."""

    pass


@dataclass(frozen=True)
class ClaudeRun:
    """Captured result of one Claude CLI invocation."""

    exit_code: int
    stdout: str
    stderr: str
    session_id: str


class ClaudeRunner:
    """Executes Claude CLI in a given working directory.

    Runs Claude Code CLI as subprocess with the prompt on stdin and captures
    its output for parsing.
    """

    def __init__(
        self,
        cli_command: str = "claude",
        cli_flags: Optional[List[str]] = None,
        timeout: Optional[float] = 3600,
    ):
        """Initialize Claude CLI runner.

        Args:
            cli_command: Claude executable name or path
            cli_flags: Extra flags appended to every invocation
            timeout: Seconds before the subprocess is killed (None = no limit)
        """
        self.cli_command = cli_command
        self.cli_flags = list(cli_flags or [])
        self.timeout = timeout

    def execute(self, prompt: str, cwd: Path, session_id: Optional[str] = None) -> ClaudeRun:
        """Execute Claude CLI subprocess with the prompt in ``cwd``.

        Args:
            prompt: Complete prompt string to pass to Claude CLI
            cwd: Working directory (the ticket's worktree)
            session_id: Optional session ID to use (generated if not provided)

        Returns:
            ClaudeRun with exit code, captured output and session id

        Raises:
            ClaudeNotFoundError: If Claude CLI not found in PATH
            subprocess.TimeoutExpired: If the run exceeds the timeout
        """
        if session_id is None:
            session_id = str(uuid.uuid4())

        cmd = [
            self.cli_command,
            "--print",
            "--dangerously-skip-permissions",
            "--session-id",
            session_id,
            *self.cli_flags,
        ]
        logger.debug(f"Running {' '.join(cmd)} in {cwd}")

        try:
            result = subprocess.run(
                cmd,
                input=prompt,
                cwd=cwd,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ClaudeNotFoundError(
                "Claude CLI not found in PATH.\n"
                "Install Claude Code first: https://claude.com/claude-code"
            ) from e

        return ClaudeRun(
            exit_code=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            session_id=session_id,
        )
