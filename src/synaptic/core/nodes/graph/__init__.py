"""Graph - orchestrator of nodes connected by named actions.

A graph is a composable workflow that:
- Registers nodes under ids unique within the graph
- Walks a transition table keyed by (node id, action)
- Composes: a graph registered into another graph runs as one node
- Re-runs itself per element as a BatchFlow
- Integrates retry policies, step budgets, cancellation and tracing
"""

from synaptic.core.nodes.graph.async_graph import (
    AsyncBatchFlow,
    AsyncGraph,
    AsyncParallelBatchFlow,
)
from synaptic.core.nodes.graph.batch_flow import BatchFlow
from synaptic.core.nodes.graph.builder import ActionEdge, NodeHandle
from synaptic.core.nodes.graph.graph import Graph
from synaptic.core.nodes.graph.registration import Registration
from synaptic.core.nodes.graph.subgraph import AsyncSubgraphNode, SubgraphNode
from synaptic.core.nodes.graph.transitions import TransitionTable

__all__ = [
    "ActionEdge",
    "AsyncBatchFlow",
    "AsyncGraph",
    "AsyncParallelBatchFlow",
    "AsyncSubgraphNode",
    "BatchFlow",
    "Graph",
    "NodeHandle",
    "Registration",
    "SubgraphNode",
    "TransitionTable",
]
