"""Fluent builder classes for transition construction.

NodeHandle and ActionEdge enable building the transition table with
operators:

    a = graph.register(fetch, "fetch", start=True)
    b = graph.register(parse, "parse")
    c = graph.register(report, "report")

    a >> b                  # ("fetch", "default") -> "parse"
    b - "empty" >> END      # ("parse", "empty") -> END
    b - "ok" >> c >> END    # ("parse", "ok") -> "report", ("report", "default") -> END
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from synaptic.core.nodes.actions import DEFAULT_ACTION
from synaptic.core.nodes.errors import GraphDefinitionError

if TYPE_CHECKING:
    from synaptic.core.nodes.base import Node
    from synaptic.core.nodes.graph.graph import Graph


class NodeHandle:
    """A registered node, for fluent transition building.

    Example:
        >>> review = graph.register(Review(), "review", start=True)
        >>> revise = graph.register(Revise(), "revise")
        >>> review - "reject" >> revise >> review
        >>> review - "approve" >> END
    """

    def __init__(self, graph: Graph, node_id: str) -> None:
        self.graph = graph
        self.node_id = node_id

    @property
    def node(self) -> Node:
        return self.graph.get_node(self.node_id)

    def __rshift__(self, other: NodeHandle | str) -> NodeHandle | str:
        """A >> B adds the default-action transition from A to B."""
        return self.connect(DEFAULT_ACTION, other)

    def __sub__(self, action: str) -> ActionEdge:
        """A - "action" starts a transition on a named action."""
        if not isinstance(action, str):
            raise TypeError(f"Action must be a string, got {type(action).__name__}")
        return ActionEdge(self, action)

    def connect(self, action: str, other: NodeHandle | str) -> NodeHandle | str:
        """Add (self, action) -> other and return other for chaining."""
        if isinstance(other, NodeHandle):
            if other.graph is not self.graph:
                raise GraphDefinitionError(
                    f"cannot connect {self.node_id!r} to {other.node_id!r} "
                    f"of graph {other.graph.id!r}; nest the graph instead",
                    node_id=self.node_id,
                )
            target = other.node_id
        elif isinstance(other, str):
            target = other
        else:
            raise TypeError(f"Cannot use >> with {type(other).__name__}")
        self.graph.add_transition(self.node_id, action, target)
        return other

    def __repr__(self) -> str:
        return f"NodeHandle(graph={self.graph.id!r}, id={self.node_id!r})"


class ActionEdge:
    """Pending transition on a named action: `handle - "action"`."""

    def __init__(self, source: NodeHandle, action: str) -> None:
        self.source = source
        self.action = action

    def __rshift__(self, other: NodeHandle | str) -> NodeHandle | str:
        return self.source.connect(self.action, other)

    def __repr__(self) -> str:
        return f"ActionEdge(source={self.source.node_id!r}, action={self.action!r})"
