"""SubgraphNode - a whole graph used as a node of a parent graph.

The inner graph runs over the parent's shared store and the node's effective
params, walking from its own start node to its own end. The action reported
to the parent is the inner run's exit action, so inner nodes decide which
parent edge is taken. END as an inner exit action ends the parent run too.

Inner failures propagate unchanged; their path already begins with the
subgraph's node id.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from synaptic.core.nodes.base import Invocation, Node, NodeState
from synaptic.core.nodes.context import ExecutionContext
from synaptic.core.nodes.store import Params, SharedStore

if TYPE_CHECKING:
    from synaptic.core.nodes.graph.async_graph import AsyncGraph
    from synaptic.core.nodes.graph.graph import Graph
    from synaptic.core.nodes.trace import StepTrace


class SubgraphNode(Node):
    """Adapts a Graph to the node contract.

    Usually created implicitly by registering a graph into another graph.

    Example:
        >>> review = Graph("review")
        >>> ...
        >>> main = Graph("main")
        >>> main.register(draft, "draft", start=True) >> main.register(review, "review")
    """

    node_type: ClassVar[str] = "subgraph"

    def __init__(self, graph: Graph, *, name: str | None = None) -> None:
        super().__init__(name=name or graph.id)
        self.graph = graph

    def _invoke(
        self,
        shared: SharedStore,
        params: Params,
        context: ExecutionContext,
        node_id: str,
        step: StepTrace | None = None,
    ) -> str:
        inv = Invocation(node_id, context, step)
        try:
            inv.enter(NodeState.EXECUTING)
            action = self.graph._run_graph(shared, params, self._inner_context(context, node_id))
        except BaseException:
            inv.enter(NodeState.FAILED)
            raise
        inv.enter(NodeState.DONE)
        return action

    def _inner_context(self, context: ExecutionContext, node_id: str) -> ExecutionContext:
        return context.with_path(node_id).with_graph(self.graph.id)

    def execute(self, local_input: Any) -> Any:
        raise TypeError("SubgraphNode runs its graph directly; execute is not used")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(graph={self.graph.id!r})"


class AsyncSubgraphNode(SubgraphNode):
    """Adapts an AsyncGraph to the async node contract."""

    is_async: ClassVar[bool] = True

    graph: AsyncGraph

    def _invoke(
        self,
        shared: SharedStore,
        params: Params,
        context: ExecutionContext,
        node_id: str,
        step: StepTrace | None = None,
    ) -> str:
        raise TypeError(f"{self.graph.id!r} is an AsyncGraph; run it from an AsyncGraph")

    def run(self, shared: SharedStore, params: Params | dict[str, Any] | None = None) -> str:
        raise TypeError("AsyncSubgraphNode must be run with run_async()")

    async def run_async(
        self, shared: SharedStore, params: Params | dict[str, Any] | None = None
    ) -> str:
        context = ExecutionContext.for_run(self.name)
        return await self._invoke_async(shared, Params.coerce(params), context, self.name)

    async def _invoke_async(
        self,
        shared: SharedStore,
        params: Params,
        context: ExecutionContext,
        node_id: str,
        step: StepTrace | None = None,
    ) -> str:
        inv = Invocation(node_id, context, step)
        try:
            inv.enter(NodeState.EXECUTING)
            action = await self.graph._run_graph_async(
                shared, params, self._inner_context(context, node_id)
            )
        except BaseException:
            inv.enter(NodeState.FAILED)
            raise
        inv.enter(NodeState.DONE)
        return action
