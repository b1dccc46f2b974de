"""Failure classification and retry backoff for workflow steps."""

from dataclasses import dataclass
from enum import StrEnum

from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from github_mirror.config import WorkflowConfig
from github_mirror.github.exceptions import (
    GitHubApiError,
    GitHubAuthenticationError,
    GitHubMalformedResponseError,
    GitHubRateLimitError,
)


class FailureKind(StrEnum):
    """How the engine reacts to a step failure."""

    RATE_LIMIT = "rate_limit"  # wait retry_after_ms, not counted as an attempt
    TRANSIENT = "transient"  # bounded exponential backoff
    MALFORMED = "malformed"  # bounded exponential backoff
    FATAL = "fatal"  # fail the workflow now


def classify_failure(error: BaseException) -> FailureKind:
    """Map an exception raised by a step to a ``FailureKind``.

    Order matters: authentication and malformed-response errors are
    subclasses of ``GitHubApiError``.
    """
    if isinstance(error, GitHubRateLimitError):
        return FailureKind.RATE_LIMIT
    if isinstance(error, GitHubAuthenticationError):
        return FailureKind.FATAL
    if isinstance(error, GitHubMalformedResponseError | ValidationError):
        return FailureKind.MALFORMED
    if isinstance(error, GitHubApiError | TimeoutError | ConnectionError):
        return FailureKind.TRANSIENT
    # Locked or briefly unreachable database
    if isinstance(error, OperationalError):
        return FailureKind.TRANSIENT
    return FailureKind.FATAL


@dataclass(frozen=True)
class RetryPolicy:
    """Retry limits and exponential backoff for one step."""

    max_step_attempts: int = 5
    initial_backoff_ms: int = 1_000
    backoff_base: float = 2.0
    max_backoff_ms: int = 60_000
    max_rate_limit_waits: int = 50

    @classmethod
    def from_config(cls, config: WorkflowConfig) -> "RetryPolicy":
        return cls(
            max_step_attempts=config.max_step_attempts,
            initial_backoff_ms=config.initial_backoff_ms,
            backoff_base=config.backoff_base,
            max_backoff_ms=config.max_backoff_ms,
            max_rate_limit_waits=config.max_rate_limit_waits,
        )

    def backoff_ms(self, attempt: int) -> int:
        """Delay after the ``attempt``-th failed attempt (1-based)."""
        delay = self.initial_backoff_ms * self.backoff_base ** max(attempt - 1, 0)
        return int(min(delay, self.max_backoff_ms))

    def attempts_exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_step_attempts

    def rate_limit_waits_exhausted(self, waits: int) -> bool:
        return waits > self.max_rate_limit_waits
