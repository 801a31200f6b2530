"""Execution tracing for graph runs.

Traces provide visibility into what happened during a run:
- Which nodes ran and in what order (including nested graphs)
- Which action each node returned
- Lifecycle states, execute attempts and fallbacks
- Timing and errors

Tracing is opt-in: pass an ExecutionTrace to Graph.run(trace=...).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from synaptic.core.nodes.base import NodeState


@dataclass
class StepTrace:
    """Trace record for a single node invocation.

    Recorded when the invocation starts and completed when it ends, so a
    nested graph appears before the steps it runs.

    Attributes:
        step_id: Slash-joined node path, e.g. "review/draft".
        node_id: Id the node is registered under in its graph.
        node_type: Type of node (node, function, batch, graph, ...).
        start_time: When the invocation started.
        index: Batch-flow element index the step ran under, if any.
        action: Action returned by the node (None until completed or on error).
        states: Lifecycle states the invocation went through.
        attempts: Number of execute attempts.
        fell_back: Whether the fallback produced the result.
        error: Error message if the invocation failed.
        end_time: When the invocation completed.
        duration_ms: Execution time in milliseconds.
    """

    step_id: str
    node_id: str
    node_type: str
    start_time: datetime
    index: int | None = None
    action: str | None = None
    states: list[NodeState] = field(default_factory=list)
    attempts: int = 0
    fell_back: bool = False
    error: str | None = None
    end_time: datetime | None = None
    duration_ms: float | None = None

    def finish(self, action: str | None = None, error: str | None = None) -> None:
        """Mark the invocation as completed."""
        self.end_time = datetime.now()
        self.duration_ms = (self.end_time - self.start_time).total_seconds() * 1000
        self.action = action
        self.error = error

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "step_id": self.step_id,
            "node_id": self.node_id,
            "node_type": self.node_type,
            "index": self.index,
            "action": self.action,
            "states": [state.name for state in self.states],
            "attempts": self.attempts,
            "fell_back": self.fell_back,
            "error": self.error,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
        }


@dataclass
class ExecutionTrace:
    """Trace record for an entire run.

    Attributes:
        graph_id: The top-level graph identifier.
        start_time: When the run started.
        end_time: When the run completed (None if still running).
        status: Run status.
        steps: Step traces in start order.
        exit_action: Last action of the top-level run.
        error: Error message if the run failed.

    Example:
        >>> trace = ExecutionTrace(graph_id="qa")
        >>> graph.run(shared, trace=trace)
        >>> trace.visited
        ['Summarize', 'Output']
        >>> print(trace.explain())
    """

    graph_id: str = ""
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None
    status: Literal["pending", "running", "completed", "failed", "cancelled"] = "pending"
    steps: list[StepTrace] = field(default_factory=list)
    exit_action: str | None = None
    error: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def start(self, graph_id: str) -> None:
        """Mark the run as started."""
        if not self.graph_id:
            self.graph_id = graph_id
        self.start_time = datetime.now()
        self.status = "running"

    def add_step(self, step: StepTrace) -> None:
        """Add a step trace to the run."""
        with self._lock:
            self.steps.append(step)

    def complete(self, exit_action: str | None = None, error: str | None = None) -> None:
        """Mark the run as complete.

        Args:
            exit_action: Last action of the run.
            error: Error message if the run failed.
        """
        self.end_time = datetime.now()
        self.exit_action = exit_action
        if error:
            self.status = "failed"
            self.error = error
        else:
            self.status = "completed"

    def cancel(self) -> None:
        """Mark the run as cancelled."""
        self.end_time = datetime.now()
        self.status = "cancelled"

    @property
    def visited(self) -> list[str]:
        """Node paths in the order their invocations started."""
        with self._lock:
            return [step.step_id for step in self.steps]

    @property
    def actions(self) -> list[str | None]:
        """Actions returned, aligned with visited."""
        with self._lock:
            return [step.action for step in self.steps]

    @property
    def duration_ms(self) -> float | None:
        """Total run duration in milliseconds, None while running."""
        if self.end_time is None:
            return None
        delta = self.end_time - self.start_time
        return delta.total_seconds() * 1000

    def explain(self) -> str:
        """Generate human-readable run summary.

        Returns:
            Multi-line string describing the run.
        """
        lines = [
            f"Graph: {self.graph_id}",
            f"Status: {self.status}",
        ]

        if self.duration_ms is not None:
            lines.append(f"Duration: {self.duration_ms:.0f}ms")

        lines.append(f"Steps: {len(self.steps)}")

        for step in self.steps:
            status_indicator = "x" if step.error else "+"
            duration = f"{step.duration_ms:.0f}ms" if step.duration_ms is not None else "-"
            extra = f" -> {step.action}" if step.action else ""
            if step.attempts > 1:
                extra += f" (attempts={step.attempts})"
            if step.fell_back:
                extra += " (fallback)"
            lines.append(
                f"  [{status_indicator}] {step.step_id} ({step.node_type}): {duration}{extra}"
            )
            if step.error:
                lines.append(f"      Error: {step.error}")

        if self.exit_action:
            lines.append(f"Exit action: {self.exit_action}")
        if self.error:
            lines.append(f"Error: {self.error}")

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "graph_id": self.graph_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "status": self.status,
            "duration_ms": self.duration_ms,
            "exit_action": self.exit_action,
            "steps": [step.to_dict() for step in self.steps],
            "error": self.error,
        }
