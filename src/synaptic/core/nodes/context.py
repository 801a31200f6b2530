"""ExecutionContext - engine-side state carried through one run.

ExecutionContext is distinct from the shared store: the shared store holds
the workflow's data, the execution context holds what the engine needs to
run it:
- Run id and the graph id used as log identifier
- Node path prefix for nested graphs
- Batch-flow element index
- Budget and usage tracking (max-step guard)
- Cancellation token
- Execution trace
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from synaptic.core.nodes.budget import Budget, ResourceUsage
from synaptic.core.nodes.errors import BudgetExceededError
from synaptic.core.nodes.run_logging import generate_run_id
from synaptic.core.nodes.run_logging import logger as run_logger

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from datetime import datetime

    from synaptic.core.nodes.cancellation import CancellationToken
    from synaptic.core.nodes.trace import ExecutionTrace, StepTrace


@dataclass(frozen=True)
class ExecutionContext:
    """Context passed through graph execution.

    Immutable - use the with_* methods to create modified copies. Nested
    graphs and batch elements share the usage, trace and cancellation of
    the top-level run.

    Attributes:
        graph_id: Id of the graph currently executing (log identifier).
        run_id: Unique identifier for the top-level run.
        path: Node ids leading to the current graph.
        index: Batch-flow element index, if inside one.
        budget: Resource limits for the run (optional).
        usage: Resource usage tracking for the run.
        cancellation: Token for cooperative cancellation (optional).
        trace: Execution trace for observability (optional).
        log: Logger for run events.

    Example:
        >>> context = ExecutionContext.for_run("qa", budget=Budget(max_steps=20))
        >>> nested = context.with_path("review").with_graph("review-graph")
        >>> nested.step_path("draft")
        'review/draft'
    """

    graph_id: str = "graph"
    run_id: str = field(default_factory=generate_run_id)
    path: tuple[str, ...] = ()
    index: int | None = None
    budget: Budget | None = None
    usage: ResourceUsage = field(default_factory=ResourceUsage)
    cancellation: CancellationToken | None = None
    trace: ExecutionTrace | None = None
    log: logging.Logger = field(default=run_logger, repr=False)

    @classmethod
    def for_run(
        cls,
        graph_id: str,
        *,
        budget: Budget | None = None,
        cancellation: CancellationToken | None = None,
        trace: ExecutionTrace | None = None,
    ) -> ExecutionContext:
        """Create the context for a new top-level run."""
        return cls(graph_id=graph_id, budget=budget, cancellation=cancellation, trace=trace)

    def with_graph(self, graph_id: str) -> ExecutionContext:
        """Create new context for running a nested graph."""
        return replace(self, graph_id=graph_id)

    def with_path(self, node_id: str) -> ExecutionContext:
        """Create new context one nesting level below node_id."""
        return replace(self, path=(*self.path, node_id))

    def with_index(self, index: int) -> ExecutionContext:
        """Create new context for one batch-flow element."""
        return replace(self, index=index)

    def step_path(self, node_id: str) -> str:
        """Slash-joined path of node_id within this context."""
        return "/".join((*self.path, node_id))

    def check_cancelled(self) -> None:
        """Raise CancelledError if cancellation was requested.

        Called at the top of every graph loop iteration and between batch
        elements.

        Raises:
            CancelledError: If cancellation was requested.
        """
        if self.cancellation:
            if self.cancellation.is_cancelled:
                logger.debug("cancellation_triggered: run_id=%s", self.run_id)
            self.cancellation.check()

    def check_budget(self) -> None:
        """Raise BudgetExceededError if starting another step exceeds the budget.

        Raises:
            BudgetExceededError: If any budget limit is exceeded.
        """
        if self.budget is None:
            return
        exceeded, reason = self.usage.exceeds(self.budget)
        if exceeded:
            logger.debug(
                "budget_exceeded: run_id=%s, reason=%s, steps=%d/%s",
                self.run_id,
                reason,
                self.usage.steps_executed,
                self.budget.max_steps,
            )
            raise BudgetExceededError(reason or "budget exceeded", path=self.path)

    def record_step(
        self,
        node_id: str,
        node_type: str,
        start_time: datetime,
    ) -> StepTrace | None:
        """Start a step record in the trace.

        No-op (returns None) if trace is not set.
        """
        if self.trace is None:
            return None

        from synaptic.core.nodes.trace import StepTrace

        step = StepTrace(
            step_id=self.step_path(node_id),
            node_id=node_id,
            node_type=node_type,
            start_time=start_time,
            index=self.index,
        )
        self.trace.add_step(step)
        return step
