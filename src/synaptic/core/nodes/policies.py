"""Retry policy for a node's execute phase.

RetryPolicy defines how many times execute is attempted and how long to
wait between attempts:
- max_attempts: total execute attempts (1 = no retries)
- retry_delay_ms / retry_backoff: exponential backoff between attempts
- max_delay_ms: upper bound for a single delay
- timeout_ms: bound for a single attempt; a timeout counts as a failure

Only execute is retried. Prepare and finalize run once per invocation.
Once attempts are exhausted the node's fallback (if any) takes over.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for a node.

    Attributes:
        max_attempts: Total number of execute attempts (>= 1).
        retry_delay_ms: Delay before the second attempt in milliseconds.
        retry_backoff: Multiplier for the delay after each failed attempt.
            E.g., 2.0 means delays are 1s, 2s, 4s, 8s...
        max_delay_ms: Cap for any single delay. None means uncapped.
        timeout_ms: Timeout for each execute attempt in milliseconds.
            None means no timeout.

    Example:
        # Three attempts, 200ms then 400ms apart
        policy = RetryPolicy(max_attempts=3, retry_delay_ms=200, retry_backoff=2.0)

        # Single attempt bounded to 5 seconds
        policy = RetryPolicy(timeout_ms=5000)
    """

    max_attempts: int = 1
    retry_delay_ms: int = 0
    retry_backoff: float = 1.0
    max_delay_ms: int | None = None
    timeout_ms: int | None = None

    def __post_init__(self) -> None:
        """Validate policy configuration."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        if self.retry_delay_ms < 0:
            raise ValueError("retry_delay_ms cannot be negative")

        if self.retry_backoff < 1.0:
            raise ValueError("retry_backoff must be >= 1.0")

        if self.max_delay_ms is not None and self.max_delay_ms < 0:
            raise ValueError("max_delay_ms cannot be negative")

        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")

    @property
    def timeout_seconds(self) -> float | None:
        """Per-attempt timeout in seconds, or None."""
        return self.timeout_ms / 1000.0 if self.timeout_ms is not None else None

    def get_delay_for_attempt(self, attempt: int) -> float:
        """Calculate delay in seconds after a failed attempt.

        Args:
            attempt: The attempt number that just failed (0-indexed).

        Returns:
            Delay in seconds before the next attempt.
        """
        delay_ms = self.retry_delay_ms * (self.retry_backoff**attempt)
        if self.max_delay_ms is not None:
            delay_ms = min(delay_ms, self.max_delay_ms)
        return delay_ms / 1000.0

    def should_retry(self, attempt: int) -> bool:
        """Check if another attempt is allowed after a failure.

        Args:
            attempt: The attempt number that just failed (0-indexed).

        Returns:
            True if more attempts are available.
        """
        return attempt + 1 < self.max_attempts
