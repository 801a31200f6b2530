"""Async graphs.

AsyncGraph runs the same loop as Graph on an event loop. It accepts async
nodes (awaited) and sync nodes (called inline), so existing sync nodes can
be mixed into async workflows.

AsyncBatchFlow runs its element runs one after another. AsyncParallelBatchFlow
runs them as concurrent tasks; like a threaded BatchFlow this requires a
SynchronizedStore or assume_disjoint_keys=True.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from synaptic.core.config import EngineConfig
from synaptic.core.nodes.async_nodes import gather_ordered
from synaptic.core.nodes.base import Node
from synaptic.core.nodes.batch import as_items
from synaptic.core.nodes.errors import BudgetExceededError, FlowError, PrepareError
from synaptic.core.nodes.graph.batch_flow import BatchFlow, ItemsSource
from synaptic.core.nodes.graph.graph import Graph
from synaptic.core.nodes.graph.subgraph import AsyncSubgraphNode
from synaptic.core.nodes.run_logging import log_start
from synaptic.core.nodes.store import Params, SharedStore

if TYPE_CHECKING:
    from synaptic.core.nodes.budget import Budget
    from synaptic.core.nodes.cancellation import CancellationToken
    from synaptic.core.nodes.context import ExecutionContext
    from synaptic.core.nodes.trace import ExecutionTrace


class AsyncGraph(Graph):
    """Graph whose run is a coroutine.

    Sync nodes are called inline on the event loop thread. Their blocking
    execute calls and retry delays hold up the loop, so under an
    AsyncParallelBatchFlow they do not overlap; wrap blocking work in an
    AsyncNode (e.g. with asyncio.to_thread) to run it concurrently.

    Example:
        >>> graph = AsyncGraph("crawl")
        >>> graph.register(Fetch(), "fetch", start=True) >> graph.register(Parse(), "parse")
        >>> shared = await graph.run_async({"url": "https://example.com"})
    """

    graph_type: ClassVar[str] = "async_graph"

    def _check_node(self, node: Node, node_id: str) -> None:
        """Async graphs accept sync and async nodes."""

    def as_node(self) -> Node:
        return AsyncSubgraphNode(self)

    def run(self, shared: SharedStore, params: Any = None, **kwargs: Any) -> SharedStore:
        raise TypeError(f"{type(self).__name__} {self.id!r} must be run with run_async()")

    async def run_async(
        self,
        shared: SharedStore,
        params: Params | Mapping[str, Any] | None = None,
        *,
        cancellation: CancellationToken | None = None,
        trace: ExecutionTrace | None = None,
        budget: Budget | None = None,
    ) -> SharedStore:
        """Run the graph to completion. See Graph.run."""
        context = self._new_context(cancellation, trace, budget)
        try:
            exit_action = await self._run_graph_async(shared, Params.coerce(params), context)
        except BaseException as e:
            self._end_trace(context, error=e)
            raise
        self._end_trace(context, exit_action=exit_action)
        return shared

    async def _run_graph_async(
        self, shared: SharedStore, params: Params, context: ExecutionContext
    ) -> str:
        start_mono = self._graph_started(shared, params, context)
        try:
            exit_action = await self._orchestrate_async(shared, params, context)
        except Exception as e:
            self._graph_failed(e, context, start_mono)
            raise
        self._graph_completed(exit_action, context, start_mono)
        return exit_action

    async def _orchestrate_async(
        self, shared: SharedStore, params: Params, context: ExecutionContext
    ) -> str:
        current = self.start
        assert current is not None
        while True:
            action = await self._run_step_async(current, shared, params, context)
            target = self._next_node(current, action, context)
            if target is None:
                return action
            current = target

    async def _run_step_async(
        self,
        node_id: str,
        shared: SharedStore,
        params: Params,
        context: ExecutionContext,
    ) -> str:
        reg, step, start_mono = self._begin_step(node_id, context)
        node_params = params.derive(reg.params)
        try:
            if reg.node.is_async:
                action = await reg.node._invoke_async(  # type: ignore[attr-defined]
                    shared, node_params, context, node_id, step
                )
            else:
                action = reg.node._invoke(shared, node_params, context, node_id, step)
        except Exception as e:
            self._step_failed(e, node_id, step, context, start_mono)
            raise
        self._step_completed(action, node_id, step, context, start_mono)
        return action


class AsyncBatchFlow(AsyncGraph, BatchFlow):
    """BatchFlow on an event loop. Element runs are sequential.

    prepare and finalize may be plain methods or coroutines.
    """

    graph_type: ClassVar[str] = "async_batch_flow"

    def __init__(
        self,
        id: str = "async_batch_flow",
        *,
        items: ItemsSource | None = None,
        params_fn: Callable[[Any], Mapping[str, Any]] | None = None,
        strict_transitions: bool | None = None,
        max_steps: int | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        super().__init__(
            id,
            items=items,
            params_fn=params_fn,
            strict_transitions=strict_transitions,
            max_steps=max_steps,
            config=config,
        )

    async def _orchestrate_async(
        self, shared: SharedStore, params: Params, context: ExecutionContext
    ) -> str:
        try:
            elements = as_items(await _maybe_await(self.prepare(shared, params)))
        except FlowError:
            raise
        except Exception as e:
            raise PrepareError(
                "batch flow prepare failed", cause=e, path=self._path(context)
            ) from e
        log_start(context.log, self.id, "batch_start", elements=len(elements))

        exit_actions = await self._run_elements_async(elements, shared, params, context)

        try:
            raw_action = await _maybe_await(self.finalize(shared, params, exit_actions))
        except FlowError:
            raise
        except Exception as e:
            raise self._finalize_error(e, context) from e
        return self._exit_action(raw_action, context)

    async def _run_elements_async(
        self,
        elements: list[Any],
        shared: SharedStore,
        params: Params,
        context: ExecutionContext,
    ) -> list[str]:
        return [
            await self._run_element_async(index, element, shared, params, context)
            for index, element in enumerate(elements)
        ]

    async def _run_element_async(
        self,
        index: int,
        element: Any,
        shared: SharedStore,
        params: Params,
        context: ExecutionContext,
    ) -> str:
        element_params = self._derive_params(index, element, params, context)
        try:
            return await super()._orchestrate_async(
                shared, element_params, context.with_index(index)
            )
        except BudgetExceededError:
            raise
        except FlowError as e:
            raise self._element_error(e, index, context) from e


class AsyncParallelBatchFlow(AsyncBatchFlow):
    """AsyncBatchFlow whose element runs are concurrent tasks.

    Args:
        max_parallel: Maximum element runs in flight. None means unbounded.
        assume_disjoint_keys: Declare that element runs write disjoint shared
            keys, allowing a plain dict store.

    Other arguments as for AsyncBatchFlow.
    """

    graph_type: ClassVar[str] = "async_parallel_batch_flow"

    def __init__(
        self,
        id: str = "async_parallel_batch_flow",
        *,
        items: ItemsSource | None = None,
        params_fn: Callable[[Any], Mapping[str, Any]] | None = None,
        max_parallel: int | None = None,
        assume_disjoint_keys: bool = False,
        strict_transitions: bool | None = None,
        max_steps: int | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        if max_parallel is not None and max_parallel < 1:
            raise ValueError("max_parallel must be >= 1")
        super().__init__(
            id,
            items=items,
            params_fn=params_fn,
            strict_transitions=strict_transitions,
            max_steps=max_steps,
            config=config,
        )
        self.max_parallel = max_parallel
        self.assume_disjoint_keys = assume_disjoint_keys

    @property
    def parallel(self) -> bool:
        return self.max_parallel != 1

    async def _run_elements_async(
        self,
        elements: list[Any],
        shared: SharedStore,
        params: Params,
        context: ExecutionContext,
    ) -> list[str]:
        return await gather_ordered(
            [
                self._run_element_async(index, element, shared, params, context)
                for index, element in enumerate(elements)
            ],
            self.max_parallel,
        )


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
