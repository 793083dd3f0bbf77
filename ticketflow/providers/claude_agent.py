"""Claude Code agent provider.

This module provides the ClaudeCodeAgent class that runs Claude Code as a
subprocess inside a ticket's worktree. The agent builds the prompt, runs the
CLI with a timeout, and parses the structured JSON summary from the output.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
from typing import Any, Optional

from ticketflow.core.claude import ClaudeNotFoundError, ClaudeRunner
from ticketflow.core.prompts import PromptBuilder
from ticketflow.engine.errors import FatalError, TicketScopedError
from ticketflow.engine.models import AgentResult, AgentTask

logger = logging.getLogger(__name__)


class ClaudeCodeAgent:
    """Runs Claude Code for one agent task.

    Failure mapping:
    - the CLI ran and exited non-zero, or reported success=false:
      AgentResult(success=False)
    - the CLI timed out: TicketScopedError (retrying a hung run costs another
      full timeout)
    - the CLI is not installed: FatalError
    """

    def __init__(
        self,
        runner: Optional[ClaudeRunner] = None,
        prompts: Optional[PromptBuilder] = None,
    ):
        self.runner = runner or ClaudeRunner()
        self.prompts = prompts or PromptBuilder()

    def execute(self, task: AgentTask) -> AgentResult:
        """Run Claude Code on the task and return its result."""
        prompt = self.prompts.build(task)
        logger.info(f"Running Claude for {task.ticket.id} in {task.worktree}")

        try:
            run = self.runner.execute(prompt, cwd=task.worktree)
        except ClaudeNotFoundError as e:
            raise FatalError(str(e)) from e
        except subprocess.TimeoutExpired as e:
            raise TicketScopedError(
                f"Agent timed out after {e.timeout} seconds on {task.ticket.id}"
            ) from e

        if run.exit_code != 0:
            return AgentResult(
                success=False,
                summary=f"Claude exited with code {run.exit_code}: {run.stderr.strip()[-500:]}",
            )

        try:
            data = self._parse_output(run.stdout)
        except ValueError as e:
            return AgentResult(success=False, summary=f"Failed to parse agent output: {e}")

        return AgentResult(
            success=bool(data.get("success", False)),
            summary=str(data.get("summary", "")),
            changed_paths=tuple(str(p) for p in data.get("changed_paths", [])),
        )

    def _parse_output(self, stdout: str) -> dict[str, Any]:
        """Parse the JSON summary from stdout.

        Uses the last JSON object that carries a "success" key, so that JSON
        quoted earlier in the output (e.g. in code) does not win.

        Raises:
            ValueError: If no valid JSON summary is found
        """
        candidates = re.findall(
            r"\{(?:[^{}]|(?:\{(?:[^{}]|(?:\{[^{}]*\}))*\}))*\}", stdout, re.DOTALL
        )
        for candidate in reversed(candidates):
            try:
                data = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict) and "success" in data:
                return data
        raise ValueError("No JSON summary object found in output")
