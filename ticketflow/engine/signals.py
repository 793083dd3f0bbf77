"""Reprocess and approval signal matchers for review comments.

Matchers are configured as plain strings:

- ``"/reprocess"``: case-insensitive substring of the comment body
- ``"re:^LGTM\\b"``: regular expression searched in the comment body
- ``"verdict:APPROVED"``: exact (case-insensitive) match on the forge review verdict
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from ticketflow.engine.models import ReviewComment


class MatcherKind(str, Enum):
    TEXT = "text"
    REGEX = "regex"
    VERDICT = "verdict"


@dataclass(frozen=True)
class SignalMatcher:
    """One configured marker applied to review comments."""

    kind: MatcherKind
    pattern: str

    @classmethod
    def parse(cls, marker: str) -> "SignalMatcher":
        """Build a matcher from its configuration string.

        Raises:
            ValueError: If the marker is empty or the regex does not compile
        """
        if not marker or not marker.strip():
            raise ValueError("Signal matcher must not be empty")
        if marker.startswith("re:"):
            pattern = marker[3:]
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid signal regex {pattern!r}: {e}") from e
            return cls(MatcherKind.REGEX, pattern)
        if marker.startswith("verdict:"):
            return cls(MatcherKind.VERDICT, marker[len("verdict:"):].strip())
        return cls(MatcherKind.TEXT, marker)

    def matches(self, comment: ReviewComment) -> bool:
        if self.kind == MatcherKind.VERDICT:
            return (comment.verdict or "").lower() == self.pattern.lower()
        if self.kind == MatcherKind.REGEX:
            return re.search(self.pattern, comment.body, re.IGNORECASE | re.MULTILINE) is not None
        return self.pattern.lower() in comment.body.lower()


@dataclass(frozen=True)
class SignalMatchers:
    """Reprocess and approval matchers configured for the run."""

    reprocess: tuple[SignalMatcher, ...] = field(default_factory=tuple)
    approval: tuple[SignalMatcher, ...] = field(default_factory=tuple)

    @classmethod
    def from_config(
        cls, reprocess: Iterable[str], approval: Iterable[str]
    ) -> "SignalMatchers":
        return cls(
            reprocess=tuple(SignalMatcher.parse(s) for s in reprocess),
            approval=tuple(SignalMatcher.parse(s) for s in approval),
        )

    def has_reprocess(self, comments: Iterable[ReviewComment]) -> bool:
        return any(m.matches(c) for c in comments for m in self.reprocess)

    def has_approval(self, comments: Iterable[ReviewComment]) -> bool:
        return any(m.matches(c) for c in comments for m in self.approval)


DEFAULT_MATCHERS = SignalMatchers.from_config(
    reprocess=["/reprocess", "verdict:CHANGES_REQUESTED"],
    approval=["/approve", "verdict:APPROVED"],
)
