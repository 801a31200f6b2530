"""Cooperative cancellation for graph execution.

CancellationToken enables graceful stopping of long-running or cyclic graph
runs. Cancellation is cooperative - the graph loop checks the token at the
top of every iteration and batch loops check it between elements. A node
that is already running finishes its current phase.

Typical usage:
1. Create a CancellationToken before starting the run
2. Pass it to Graph.run(..., cancellation=token)
3. Call token.cancel() from another thread or task
4. The run raises CancelledError at the next check point
"""

from __future__ import annotations

import asyncio
import threading


class CancelledError(Exception):
    """Raised when a run is cancelled.

    Distinct from asyncio.CancelledError: this one is raised by the engine
    at a safe point between steps, not injected into a running task.
    """

    pass


class CancellationToken:
    """Token for cooperative cancellation.

    Thread-safe token that can be used to request and check cancellation
    from any thread, including from async code.

    Example:
        >>> token = CancellationToken()
        >>> worker = threading.Thread(target=graph.run, args=(shared,),
        ...                           kwargs={"cancellation": token})
        >>> worker.start()
        >>> token.cancel()
        >>> # The run raises CancelledError at its next check point
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation.

        This is safe to call multiple times.
        """
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation was requested.

        Returns:
            True if cancel() has been called.
        """
        return self._event.is_set()

    def check(self) -> None:
        """Raise CancelledError if cancelled.

        Raises:
            CancelledError: If cancellation was requested.
        """
        if self._event.is_set():
            raise CancelledError("run cancelled")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or the timeout elapses.

        Returns:
            True if cancellation was requested.
        """
        return self._event.wait(timeout)

    async def wait_async(self, poll_interval: float = 0.05) -> None:
        """Wait until cancelled without blocking the event loop."""
        while not self._event.is_set():
            await asyncio.sleep(poll_interval)

    def reset(self) -> None:
        """Reset the token for reuse.

        Use with caution - typically you should create a new token instead.
        """
        self._event.clear()
