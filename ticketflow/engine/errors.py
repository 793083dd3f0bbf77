"""Error taxonomy and retry policy for collaborator calls.

Every failure raised by a collaborator is assigned exactly one ErrorKind:

- TRANSIENT: retried with exponential backoff, then escalated to TICKET_SCOPED
- TICKET_SCOPED: the owning ticket transitions to Failed; the pass continues
- FATAL: the whole pass aborts with PassAborted

Collaborators tag their failures by raising a CollaboratorError subclass. An
untagged exception is mapped by the call site's declared default kind; the
message text is never inspected.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, TypeVar

if TYPE_CHECKING:
    from ticketflow.engine.models import PassReport

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Classification of collaborator failures."""

    TRANSIENT = "Transient"
    TICKET_SCOPED = "TicketScoped"
    FATAL = "Fatal"


class CollaboratorError(Exception):
    """Base class for tagged collaborator failures."""

    kind: ErrorKind = ErrorKind.TICKET_SCOPED


class TransientError(CollaboratorError):
    """Temporary failure such as a network timeout or lock contention."""

    kind = ErrorKind.TRANSIENT


class TicketScopedError(CollaboratorError):
    """Failure confined to one ticket (bad ticket data, conflict, agent failure)."""

    kind = ErrorKind.TICKET_SCOPED


class FatalError(CollaboratorError):
    """Failure that makes the whole pass meaningless (unreachable tracker, bad config)."""

    kind = ErrorKind.FATAL


class InvalidTransitionError(Exception):
    """Raised when a status change is not in the allowed edge set."""

    pass


class PassAborted(Exception):
    """Raised out of a pass when a fatal collaborator error occurs.

    Attributes:
        phase: Name of the phase that was running
        cause: The fatal error
        report: Partial report of the aborted pass
    """

    def __init__(self, phase: str, cause: BaseException, report: Optional["PassReport"] = None):
        super().__init__(f"Pass aborted during {phase} phase: {cause}")
        self.phase = phase
        self.cause = cause
        self.report = report


def classify(error: BaseException, default: ErrorKind = ErrorKind.TICKET_SCOPED) -> ErrorKind:
    """Return the ErrorKind of a failure.

    Args:
        error: Exception raised by a collaborator call
        default: Kind assigned to exceptions that carry no tag

    Returns:
        The error's own kind if tagged, otherwise ``default``
    """
    if isinstance(error, CollaboratorError):
        return error.kind
    return default


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff policy for transient failures.

    Attributes:
        max_retries: Retries after the first attempt before escalating
        base_delay: Delay before the first retry, in seconds
        factor: Multiplier applied to the delay after each retry
        max_delay: Upper bound for a single delay
    """

    max_retries: int = 3
    base_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 60.0

    def delay(self, retry_number: int) -> float:
        """Delay before the given retry (1-based)."""
        return min(self.base_delay * (self.factor ** (retry_number - 1)), self.max_delay)


@dataclass(frozen=True)
class CallOutcome:
    """Value or classified error of a retried collaborator call."""

    value: object = None
    error: Optional[BaseException] = None
    kind: Optional[ErrorKind] = None
    retries: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    description: str,
    default_kind: ErrorKind = ErrorKind.TICKET_SCOPED,
    sleep: Callable[[float], None] = time.sleep,
) -> CallOutcome:
    """Run a collaborator call, retrying transient failures.

    Transient failures that exhaust the policy are escalated to TICKET_SCOPED.
    Fatal failures are returned immediately without retry.

    Args:
        fn: Zero-argument callable performing the collaborator call
        policy: Retry policy to apply
        description: Human-readable name of the call for logs
        default_kind: Kind assigned to untagged exceptions
        sleep: Sleep function (injected in tests)

    Returns:
        CallOutcome with either the value or the classified error
    """
    retries = 0
    while True:
        try:
            return CallOutcome(value=fn(), retries=retries)
        except Exception as e:
            kind = classify(e, default_kind)
            if kind != ErrorKind.TRANSIENT:
                return CallOutcome(error=e, kind=kind, retries=retries)
            if retries >= policy.max_retries:
                logger.warning(
                    f"{description} still failing after {retries} retries: {e}"
                )
                return CallOutcome(error=e, kind=ErrorKind.TICKET_SCOPED, retries=retries)
            retries += 1
            delay = policy.delay(retries)
            logger.warning(
                f"{description} failed transiently ({e}); retry {retries}/"
                f"{policy.max_retries} in {delay:.1f}s"
            )
            sleep(delay)


class Caller:
    """Runs collaborator calls under a retry policy and raises on fatal errors.

    Non-fatal failures come back as a CallOutcome so the caller can fail the
    owning ticket; fatal ones are raised as FatalError to abort the pass.
    """

    def __init__(self, policy: RetryPolicy, sleep: Callable[[float], None] = time.sleep):
        self.policy = policy
        self.sleep = sleep

    def __call__(
        self,
        fn: Callable[[], T],
        description: str,
        default_kind: ErrorKind = ErrorKind.TICKET_SCOPED,
    ) -> CallOutcome:
        outcome = call_with_retry(fn, self.policy, description, default_kind, self.sleep)
        if outcome.kind == ErrorKind.FATAL:
            raise as_fatal(outcome.error, description)
        return outcome


def as_fatal(error: Optional[BaseException], description: str) -> FatalError:
    """Wrap a fatal failure in FatalError, keeping tagged ones as they are."""
    if isinstance(error, FatalError):
        return error
    fatal = FatalError(f"{description}: {error}")
    fatal.__cause__ = error
    return fatal
