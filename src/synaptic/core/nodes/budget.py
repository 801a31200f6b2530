"""Step and time budgets for graph execution.

Transition tables may contain cycles and the graph loop has no implicit
loop prevention. A Budget bounds a run:
- Step count (node invocations, across nested graphs)
- Wall-clock time

ResourceUsage tracks consumption against the budget.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Budget:
    """Resource limits for a graph run.

    All limits are optional - only set limits are enforced.
    A budget with no limits set allows unlimited execution.

    Attributes:
        max_steps: Maximum number of node invocations.
        max_time_seconds: Maximum wall-clock time in seconds.

    Example:
        # Stop a looping graph after 50 node invocations
        budget = Budget(max_steps=50)
    """

    max_steps: int | None = None
    max_time_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_steps is not None and self.max_steps < 1:
            raise ValueError("max_steps must be >= 1")
        if self.max_time_seconds is not None and self.max_time_seconds <= 0:
            raise ValueError("max_time_seconds must be > 0")

    def is_limited(self) -> bool:
        """Check if any limits are set."""
        return self.max_steps is not None or self.max_time_seconds is not None


@dataclass
class ResourceUsage:
    """Tracks consumption during one run.

    Uses monotonic clock for elapsed time. Safe to update from the worker
    threads of a parallel batch flow.

    Attributes:
        steps_executed: Number of node invocations started.
        start_time: When the run started (for display).
    """

    steps_executed: int = 0
    start_time: datetime = field(default_factory=datetime.now)
    _start_monotonic: float = field(default_factory=time.monotonic, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def time_elapsed_seconds(self) -> float:
        """Elapsed time using monotonic clock."""
        return time.monotonic() - self._start_monotonic

    def add_step(self) -> int:
        """Increment step count and return the new value."""
        with self._lock:
            self.steps_executed += 1
            return self.steps_executed

    def exceeds(self, budget: Budget) -> tuple[bool, str | None]:
        """Check whether starting another step would exceed the budget.

        Args:
            budget: The budget limits to check against.

        Returns:
            Tuple of (exceeded, reason).
        """
        if budget.max_steps is not None and self.steps_executed >= budget.max_steps:
            return True, f"Step limit exceeded: {self.steps_executed}/{budget.max_steps}"

        elapsed = self.time_elapsed_seconds
        if budget.max_time_seconds is not None and elapsed >= budget.max_time_seconds:
            return True, f"Time limit exceeded: {elapsed:.1f}s/{budget.max_time_seconds}s"

        return False, None
