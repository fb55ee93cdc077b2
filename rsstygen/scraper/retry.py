"""Retry policy for source jobs.

The delay between attempts is a plain function of the attempt number.
Callers do the sleeping themselves with an injected sleep callable.
"""

from dataclasses import dataclass

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 3.0


@dataclass(frozen=True)
class RetryPolicy:
    """How often a source job may attempt an extraction and how long it waits.

    Attributes:
        max_attempts: Attempt ceiling, including the first attempt
        initial_delay: Delay in seconds before the first retry
        backoff_factor: Multiplier applied per additional retry.
                        1.0 gives a fixed delay (the default schedule).
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    initial_delay: float = DEFAULT_BACKOFF_SECONDS
    backoff_factor: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must not be negative")


def backoff_delay(attempt: int, policy: RetryPolicy = RetryPolicy()) -> float:
    """Return how long to wait before the given attempt.

    Args:
        attempt: 1-based attempt number
        policy: Retry policy to apply

    Returns:
        Delay in seconds. The first attempt never waits.

    Backoff calculation (initial_delay=3.0, backoff_factor=1.0):
        Attempt 1: No delay
        Attempt 2: 3 seconds (3.0 * 1^0)
        Attempt 3: 3 seconds (3.0 * 1^1)
    """
    if attempt < 1:
        raise ValueError("attempt numbers start at 1")
    if attempt == 1:
        return 0.0
    return policy.initial_delay * (policy.backoff_factor ** (attempt - 2))


def stagger_delay(index: int, step: float = 2.0) -> float:
    """Start delay for the job at position `index` in the launch order."""
    return step * index
