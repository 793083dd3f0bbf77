"""Prompt construction for agent invocations."""

from ticketflow.engine.models import AgentTask, ReviewComment


class PromptBuilder:
    """Builds the Claude prompt for one agent task.

    The prompt carries the standing instructions, the ticket, every review
    comment still waiting to be addressed and the required output format.
    """

    def build(self, task: AgentTask) -> str:
        """Construct the prompt for an agent task.

        Args:
            task: Agent task with ticket snapshot, worktree and comments

        Returns:
            Complete prompt string for Claude CLI execution
        """
        ticket = task.ticket
        sections = [
            task.instructions.strip(),
            f"""## Ticket {ticket.id}: {ticket.title}

**Branch:** {ticket.branch}
**Worktree:** {task.worktree}
**Review round:** {ticket.review_round}

{ticket.description.strip() or "(no description)"}""",
        ]

        if task.comments:
            sections.append(self._review_section(task.comments))

        sections.append(
            """## Output Requirements

When you are done, you MUST output a JSON object with the following structure:

```json
{
  "success": true,
  "summary": "One paragraph describing what changed",
  "changed_paths": ["src/module.py", "tests/test_module.py"]
}
```

Set "success" to false if you could not complete the ticket, and explain why
in "summary". The JSON MUST be valid and parseable. You can include other text
in your output, but the JSON object must be clearly identifiable."""
        )
        return "\n\n".join(s for s in sections if s)

    def _review_section(self, comments: tuple[ReviewComment, ...]) -> str:
        lines = [
            "## Review Feedback To Address",
            "",
            "Reviewers left the comments below on the merge request. Address every one.",
            "",
        ]
        for comment in comments:
            location = ""
            if comment.path:
                location = f" on `{comment.path}`"
                if comment.line is not None:
                    location += f" line {comment.line}"
            lines.append(f"- **{comment.author}**{location}: {comment.body.strip()}")
        return "\n".join(lines)
