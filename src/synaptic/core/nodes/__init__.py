"""Node abstraction - three-phase units of work and the graphs that run them.

Core abstractions:
    Node: Base class with prepare / execute / finalize (+ optional fallback)
    NodeState: Lifecycle states of one invocation
    FunctionNode: Wraps plain callables as phases
    BatchNode: Execute once per element, ordered results
    DecisionNode: Maps an external decision to a known action
    AsyncNode, AsyncBatchNode, AsyncParallelBatchNode: Coroutine variants

Graph abstractions:
    Graph: Start node + transition table + execution loop
    BatchFlow: Graph re-run once per element with derived params
    AsyncGraph, AsyncBatchFlow, AsyncParallelBatchFlow: Async variants
    SubgraphNode: A graph used as a node

Data model:
    SharedStore: Mutable, run-scoped store (any MutableMapping)
    SynchronizedStore: Lock-guarded store for concurrent batch flows
    Params: Immutable parameter set
    DEFAULT_ACTION, END: Reserved actions

Agent capabilities:
    RetryPolicy: Attempts, backoff and timeout for execute
    Budget: Step and time limits
    ResourceUsage: Resource consumption tracking
    CancellationToken: Cooperative cancellation
    StepTrace, ExecutionTrace: Per-run execution trace

Example:
    >>> from synaptic.core.nodes import END, FunctionNode, Graph
    >>>
    >>> graph = Graph("hello")
    >>> greet = graph.register(
    ...     FunctionNode(
    ...         prepare=lambda shared, params: shared["name"],
    ...         execute=lambda name: f"Hello, {name}!",
    ...         finalize=lambda shared, params, text: shared.__setitem__("greeting", text),
    ...     ),
    ...     "greet",
    ...     start=True,
    ... )
    >>> greet >> END
    >>> graph.run({"name": "Ann"})["greeting"]
    'Hello, Ann!'
"""

from synaptic.core.nodes.actions import DEFAULT_ACTION, END, normalize_action
from synaptic.core.nodes.async_nodes import AsyncBatchNode, AsyncNode, AsyncParallelBatchNode
from synaptic.core.nodes.base import FunctionNode, Node, NodeState
from synaptic.core.nodes.batch import BatchNode
from synaptic.core.nodes.budget import Budget, ResourceUsage
from synaptic.core.nodes.cancellation import CancellationToken, CancelledError
from synaptic.core.nodes.context import ExecutionContext
from synaptic.core.nodes.decision import DecisionNode
from synaptic.core.nodes.errors import (
    BatchElementError,
    BudgetExceededError,
    ConcurrencyConfigError,
    DuplicateNodeError,
    DuplicateTransitionError,
    ExecuteError,
    ExecuteTimeoutError,
    FallbackError,
    FinalizeError,
    FlowError,
    GraphDefinitionError,
    InvalidActionError,
    PrepareError,
    UnresolvedTransitionError,
)
from synaptic.core.nodes.graph import (
    AsyncBatchFlow,
    AsyncGraph,
    AsyncParallelBatchFlow,
    AsyncSubgraphNode,
    BatchFlow,
    Graph,
    NodeHandle,
    SubgraphNode,
    TransitionTable,
)
from synaptic.core.nodes.policies import RetryPolicy
from synaptic.core.nodes.store import Params, SharedStore, SynchronizedStore
from synaptic.core.nodes.trace import ExecutionTrace, StepTrace

__all__ = [
    # Actions
    "DEFAULT_ACTION",
    "END",
    "normalize_action",
    # Nodes
    "Node",
    "NodeState",
    "FunctionNode",
    "BatchNode",
    "DecisionNode",
    "AsyncNode",
    "AsyncBatchNode",
    "AsyncParallelBatchNode",
    # Graphs
    "Graph",
    "BatchFlow",
    "AsyncGraph",
    "AsyncBatchFlow",
    "AsyncParallelBatchFlow",
    "SubgraphNode",
    "AsyncSubgraphNode",
    "NodeHandle",
    "TransitionTable",
    # Data model
    "SharedStore",
    "SynchronizedStore",
    "Params",
    # Execution
    "ExecutionContext",
    "RetryPolicy",
    "Budget",
    "ResourceUsage",
    "CancellationToken",
    "CancelledError",
    "StepTrace",
    "ExecutionTrace",
    # Errors
    "FlowError",
    "PrepareError",
    "ExecuteError",
    "ExecuteTimeoutError",
    "FallbackError",
    "FinalizeError",
    "InvalidActionError",
    "UnresolvedTransitionError",
    "GraphDefinitionError",
    "DuplicateNodeError",
    "DuplicateTransitionError",
    "ConcurrencyConfigError",
    "BatchElementError",
    "BudgetExceededError",
]
