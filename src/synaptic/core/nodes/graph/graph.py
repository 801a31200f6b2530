"""Graph - nodes, a transition table, and the loop that walks them."""

from __future__ import annotations

import time
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar

from synaptic.core.config import EngineConfig
from synaptic.core.nodes.actions import END, normalize_action
from synaptic.core.nodes.base import Node
from synaptic.core.nodes.budget import Budget
from synaptic.core.nodes.cancellation import CancelledError
from synaptic.core.nodes.context import ExecutionContext
from synaptic.core.nodes.errors import DuplicateNodeError, GraphDefinitionError
from synaptic.core.nodes.graph.builder import NodeHandle
from synaptic.core.nodes.graph.registration import Registration
from synaptic.core.nodes.graph.subgraph import SubgraphNode
from synaptic.core.nodes.graph.transitions import TransitionTable
from synaptic.core.nodes.run_logging import (
    log_complete,
    log_debug,
    log_error,
    log_start,
    log_warning,
)
from synaptic.core.nodes.run_logging import logger as run_logger
from synaptic.core.nodes.store import Params, SharedStore
from synaptic.core.validation import validate_identifier

if TYPE_CHECKING:
    from synaptic.core.nodes.cancellation import CancellationToken
    from synaptic.core.nodes.trace import ExecutionTrace, StepTrace


class Graph:
    """Directed graph of nodes connected by named actions.

    A run starts at the start node and repeatedly runs the current node's
    lifecycle, then looks up (current node, action) in the transition table.
    The run stops when a node returns END or a transition targets END. An
    action without a transition fails the run; there is no implicit default
    edge. Cycles are allowed; bound them with max_steps.

    Args:
        id: Identifier of this graph (log identifier, nested path segment).
        strict_transitions: Reject duplicate (source, action) pairs instead
            of letting the last write win. Defaults to the config.
        max_steps: Maximum node invocations per run. Defaults to the config.
        config: Engine defaults. Defaults to EngineConfig.from_env().

    Example:
        >>> graph = Graph("qa")
        >>> summarize = graph.register(Summarize(), "Summarize", start=True)
        >>> keywords = graph.register(ExtractKeywords(), "ExtractKeywords")
        >>> output = graph.register(Output(), "Output")
        >>>
        >>> summarize - "long" >> keywords
        >>> summarize - "short" >> output
        >>> keywords - "done" >> output
        >>> output - "done" >> END
        >>>
        >>> shared = graph.run({"text": "short text"})
        >>> shared["final_output"]
    """

    graph_type: ClassVar[str] = "graph"

    def __init__(
        self,
        id: str = "graph",
        *,
        strict_transitions: bool | None = None,
        max_steps: int | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        validate_identifier(id, "graph")
        config = config or EngineConfig.from_env()
        if max_steps is not None and max_steps < 1:
            raise ValueError(f"max_steps must be >= 1, got {max_steps}")

        self._id = id
        self._nodes: dict[str, Registration] = {}
        self._start: str | None = None
        self._transitions = TransitionTable(
            strict=config.strict_transitions if strict_transitions is None else strict_transitions
        )
        self.max_steps = max_steps if max_steps is not None else config.max_steps

    @property
    def id(self) -> str:
        """Unique identifier for this graph."""
        return self._id

    @property
    def start(self) -> str | None:
        """Id of the start node."""
        return self._start

    @property
    def transitions(self) -> TransitionTable:
        return self._transitions

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def register(
        self,
        node: Node | Graph,
        id: str | None = None,
        start: bool = False,
        params: Mapping[str, Any] | None = None,
    ) -> NodeHandle:
        """Register a node under an id unique within this graph.

        A Graph passed as node is adapted with as_node(), so whole graphs
        compose like any other node.

        Args:
            node: The node (or graph) to register.
            id: Node id. Defaults to the node's name.
            start: Make this the start node.
            params: Per-registration params, derived over the run params.

        Returns:
            Handle for fluent transition building.

        Raises:
            DuplicateNodeError: If the id is already registered.
            GraphDefinitionError: If the id is invalid or the node cannot
                run in this graph.
        """
        if isinstance(node, Graph):
            node = node.as_node()
        if not isinstance(node, Node):
            raise TypeError(f"Expected a Node or Graph, got {type(node).__name__}")
        inner = getattr(node, "graph", None)
        if isinstance(inner, Graph) and inner._contains(self):
            raise GraphDefinitionError(f"graph {self._id!r} cannot contain itself")

        node_id = id or node.name
        try:
            validate_identifier(node_id)
        except ValueError as e:
            raise GraphDefinitionError(str(e), node_id=node_id) from e
        if node_id in self._nodes:
            raise DuplicateNodeError(
                f"node id {node_id!r} is already registered in graph {self._id!r}",
                node_id=node_id,
            )
        self._check_node(node, node_id)

        self._nodes[node_id] = Registration(node_id, node, Params.coerce(params))
        if start:
            self.set_start(node_id)
        return NodeHandle(self, node_id)

    def _contains(self, graph: Graph) -> bool:
        """Whether graph is this graph or is nested anywhere inside it."""
        if graph is self:
            return True
        for reg in self._nodes.values():
            inner = getattr(reg.node, "graph", None)
            if isinstance(inner, Graph) and inner._contains(graph):
                return True
        return False

    def _check_node(self, node: Node, node_id: str) -> None:
        if node.is_async:
            raise GraphDefinitionError(
                f"node {node_id!r} is async; register it in an AsyncGraph",
                node_id=node_id,
            )

    def set_start(self, node_id: str | NodeHandle) -> Graph:
        """Set the start node.

        Returns:
            Self for chaining.
        """
        if isinstance(node_id, NodeHandle):
            node_id = node_id.node_id
        if self._start is not None and self._start != node_id:
            log_warning(
                run_logger, self._id, "start_replaced", previous=self._start, start=node_id
            )
        self._start = node_id
        return self

    def add_transition(
        self,
        source: str | NodeHandle,
        action: str | None,
        target: str | NodeHandle,
    ) -> Graph:
        """Add the edge (source, action) -> target.

        Nodes need not be registered yet; validate() checks the table before
        a run. Re-adding an existing pair replaces its target unless the
        graph is strict.

        Returns:
            Self for chaining.

        Raises:
            DuplicateTransitionError: In strict mode, if the pair exists.
        """
        source_id = source.node_id if isinstance(source, NodeHandle) else source
        target_id = target.node_id if isinstance(target, NodeHandle) else target
        action = normalize_action(action)
        if not isinstance(target_id, str) or not target_id:
            raise TypeError(f"Transition target must be a node id or END, got {target_id!r}")

        previous = self._transitions.add(source_id, action, target_id)
        if previous is not None and previous != target_id:
            log_debug(
                run_logger,
                self._id,
                "transition_overwritten",
                source=source_id,
                action=action,
                previous=previous,
                target=target_id,
            )
        return self

    def as_node(self) -> Node:
        """Adapt this graph to the node contract."""
        return SubgraphNode(self)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> Node:
        """Get a registered node.

        Raises:
            KeyError: If no node has that id.
        """
        try:
            return self._nodes[node_id].node
        except KeyError:
            raise KeyError(f"No node {node_id!r} in graph {self._id!r}") from None

    def list_nodes(self) -> list[str]:
        """Registered node ids in registration order."""
        return list(self._nodes)

    def registrations(self) -> list[Registration]:
        return list(self._nodes.values())

    def actions(self, node_id: str | None = None) -> list[str]:
        """Actions with transitions, for one node or the whole graph."""
        if node_id is not None:
            return self._transitions.actions_for(node_id)
        return sorted(self._transitions.actions())

    def validate(self) -> list[str]:
        """Validate graph structure.

        Checks for:
        - Missing or unregistered start node
        - Transitions from or to unknown nodes
        - Declared node actions without a transition
        - Problems inside nested graphs

        Returns:
            List of problems (empty if valid).
        """
        problems: list[str] = []

        if self._start is None:
            problems.append("No start node set")
        elif self._start not in self._nodes:
            problems.append(f"Start node {self._start!r} is not registered")

        for source, action, target in self._transitions.edges():
            if source not in self._nodes:
                problems.append(f"Transition ({source!r}, {action!r}) has unknown source")
            if target != END and target not in self._nodes:
                problems.append(
                    f"Transition ({source!r}, {action!r}) targets unknown node {target!r}"
                )

        for reg in self._nodes.values():
            for action in reg.declared_actions:
                if action != END and (reg.node_id, action) not in self._transitions:
                    problems.append(
                        f"Node {reg.node_id!r} declares action {action!r} without a transition"
                    )
            inner = getattr(reg.node, "graph", None)
            if isinstance(inner, Graph):
                problems.extend(f"{reg.node_id}/{problem}" for problem in inner.validate())

        return problems

    def _check_definition(self, path: tuple[str, ...] = ()) -> None:
        problems = self.validate()
        if problems:
            raise GraphDefinitionError(
                f"graph {self._id!r} is invalid: {'; '.join(problems)}",
                problems=problems,
                path=path,
            )

    def _check_store(self, shared: SharedStore) -> None:
        """Hook for graphs with requirements on the shared store."""

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def run(
        self,
        shared: SharedStore,
        params: Params | Mapping[str, Any] | None = None,
        *,
        cancellation: CancellationToken | None = None,
        trace: ExecutionTrace | None = None,
        budget: Budget | None = None,
    ) -> SharedStore:
        """Run the graph to completion.

        Args:
            shared: Shared store, mutated in place by the nodes.
            params: Run params, visible to every node.
            cancellation: Token checked before every step.
            trace: Trace to record the run into.
            budget: Resource limits. Defaults to max_steps.

        Returns:
            The same shared store object.

        Raises:
            GraphDefinitionError: If validate() reports problems.
            FlowError: If a node or transition fails.
            CancelledError: If cancellation was requested.
        """
        context = self._new_context(cancellation, trace, budget)
        try:
            exit_action = self._run_graph(shared, Params.coerce(params), context)
        except BaseException as e:
            self._end_trace(context, error=e)
            raise
        self._end_trace(context, exit_action=exit_action)
        return shared

    def _new_context(
        self,
        cancellation: CancellationToken | None,
        trace: ExecutionTrace | None,
        budget: Budget | None,
    ) -> ExecutionContext:
        if budget is None and self.max_steps is not None:
            budget = Budget(max_steps=self.max_steps)
        if trace is not None:
            trace.start(self._id)
        return ExecutionContext.for_run(
            self._id, budget=budget, cancellation=cancellation, trace=trace
        )

    @staticmethod
    def _end_trace(
        context: ExecutionContext,
        exit_action: str | None = None,
        error: BaseException | None = None,
    ) -> None:
        trace = context.trace
        if trace is None:
            return
        if isinstance(error, CancelledError):
            trace.cancel()
        elif error is not None:
            trace.complete(error=str(error) or type(error).__name__)
        else:
            trace.complete(exit_action=exit_action)

    def _run_graph(self, shared: SharedStore, params: Params, context: ExecutionContext) -> str:
        """Validate, log and orchestrate one run of this graph.

        Used for top-level runs and for runs nested in a parent graph.

        Returns:
            The exit action (the last action produced).
        """
        start_mono = self._graph_started(shared, params, context)
        try:
            exit_action = self._orchestrate(shared, params, context)
        except Exception as e:
            self._graph_failed(e, context, start_mono)
            raise
        self._graph_completed(exit_action, context, start_mono)
        return exit_action

    def _orchestrate(self, shared: SharedStore, params: Params, context: ExecutionContext) -> str:
        current = self._start
        assert current is not None
        while True:
            action = self._run_step(current, shared, params, context)
            target = self._next_node(current, action, context)
            if target is None:
                return action
            current = target

    def _run_step(
        self,
        node_id: str,
        shared: SharedStore,
        params: Params,
        context: ExecutionContext,
    ) -> str:
        reg, step, start_mono = self._begin_step(node_id, context)
        try:
            action = reg.node._invoke(shared, params.derive(reg.params), context, node_id, step)
        except Exception as e:
            self._step_failed(e, node_id, step, context, start_mono)
            raise
        self._step_completed(action, node_id, step, context, start_mono)
        return action

    # ------------------------------------------------------------------
    # Bookkeeping shared by sync and async graphs
    # ------------------------------------------------------------------

    def _graph_started(
        self, shared: SharedStore, params: Params, context: ExecutionContext
    ) -> float:
        self._check_definition(context.path)
        self._check_store(shared)
        log_start(
            context.log,
            self._id,
            "graph_start",
            start=self._start,
            path="/".join(context.path) or None,
            index=context.index,
            run_id=context.run_id,
        )
        return time.monotonic()

    def _graph_failed(self, error: Exception, context: ExecutionContext, start_mono: float) -> None:
        log_error(
            context.log,
            self._id,
            "graph_failed",
            error,
            steps=context.usage.steps_executed,
            duration_s=f"{time.monotonic() - start_mono:.1f}",
        )

    def _graph_completed(
        self, exit_action: str, context: ExecutionContext, start_mono: float
    ) -> None:
        log_complete(
            context.log,
            self._id,
            "graph_complete",
            time.monotonic() - start_mono,
            steps=context.usage.steps_executed,
            exit_action=exit_action,
        )

    def _begin_step(
        self, node_id: str, context: ExecutionContext
    ) -> tuple[Registration, StepTrace | None, float]:
        context.check_cancelled()
        context.check_budget()
        context.usage.add_step()

        reg = self._nodes[node_id]
        step = context.record_step(node_id, reg.node_type, datetime.now())
        log_start(
            context.log,
            self._id,
            "step_start",
            node=context.step_path(node_id),
            node_type=reg.node_type,
            index=context.index,
        )
        return reg, step, time.monotonic()

    def _step_failed(
        self,
        error: Exception,
        node_id: str,
        step: StepTrace | None,
        context: ExecutionContext,
        start_mono: float,
    ) -> None:
        if step is not None:
            step.finish(error=str(error))
        log_error(
            context.log,
            self._id,
            "step_failed",
            error,
            node=context.step_path(node_id),
            index=context.index,
            duration_s=f"{time.monotonic() - start_mono:.1f}",
        )

    def _step_completed(
        self,
        action: str,
        node_id: str,
        step: StepTrace | None,
        context: ExecutionContext,
        start_mono: float,
    ) -> None:
        if step is not None:
            step.finish(action=action)
        log_complete(
            context.log,
            self._id,
            "step_complete",
            time.monotonic() - start_mono,
            node=context.step_path(node_id),
            index=context.index,
            action=action,
        )

    def _next_node(self, current: str, action: str, context: ExecutionContext) -> str | None:
        """Resolve the node after current, or None when the run ends."""
        if action == END:
            return None
        target = self._transitions.resolve(current, action, path=(*context.path, current))
        log_debug(
            context.log,
            self._id,
            "transition",
            source=current,
            action=action,
            target=target,
        )
        return None if target == END else target

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(id={self._id!r}, nodes={len(self._nodes)}, "
            f"transitions={len(self._transitions)}, start={self._start!r})"
        )
