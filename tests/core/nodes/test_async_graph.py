"""Tests for synaptic.core.nodes.graph.async_graph module."""

import asyncio
import threading
import time

import pytest

from synaptic.core.nodes.actions import END
from synaptic.core.nodes.async_nodes import AsyncNode
from synaptic.core.nodes.base import FunctionNode
from synaptic.core.nodes.cancellation import CancellationToken, CancelledError
from synaptic.core.nodes.errors import (
    BatchElementError,
    ConcurrencyConfigError,
    GraphDefinitionError,
    UnresolvedTransitionError,
)
from synaptic.core.nodes.graph import (
    AsyncBatchFlow,
    AsyncGraph,
    AsyncParallelBatchFlow,
    Graph,
)
from synaptic.core.nodes.store import SynchronizedStore
from synaptic.core.nodes.trace import ExecutionTrace


class Fetch(AsyncNode):
    async def prepare(self, shared, params):
        return params.get("url", shared.get("url"))

    async def execute(self, url):
        await asyncio.sleep(0.01)
        if url == "bad":
            raise ConnectionError("refused")
        return f"<{url}>"

    async def finalize(self, shared, params, body):
        shared.setdefault("bodies", {})[params.get("url", "main")] = body
        return "fetched"


def parse_node() -> FunctionNode:
    return FunctionNode(
        prepare=lambda shared, params: shared["bodies"],
        finalize=lambda shared, params, bodies: shared.__setitem__("parsed", len(bodies)),
    )


class TestAsyncGraph:
    """Tests for AsyncGraph."""

    @pytest.mark.asyncio
    async def test_mixed_sync_and_async_nodes(self):
        """Test async nodes are awaited and sync nodes run inline."""
        graph = AsyncGraph("crawl")
        fetch = graph.register(Fetch(), "fetch", start=True)
        fetch - "fetched" >> graph.register(parse_node(), "parse") >> END

        trace = ExecutionTrace()
        shared = await graph.run_async({"url": "example.com"}, trace=trace)

        assert shared["bodies"] == {"main": "<example.com>"}
        assert shared["parsed"] == 1
        assert trace.visited == ["fetch", "parse"]
        assert trace.status == "completed"

    @pytest.mark.asyncio
    async def test_sync_node_runs_on_loop_thread(self):
        """Test sync nodes execute inline on the event loop thread."""
        loop_thread = threading.get_ident()

        def record_thread(shared, params, _):
            shared["thread"] = threading.get_ident()
            return "done"

        graph = AsyncGraph("inline")
        graph.register(FunctionNode(finalize=record_thread), "sync", start=True) - "done" >> END

        shared = await graph.run_async({})

        assert shared["thread"] == loop_thread

    def test_sync_run_rejected(self):
        """Test run() points at run_async()."""
        with pytest.raises(TypeError, match="run_async"):
            AsyncGraph("g").run({})

    def test_async_graph_inside_sync_graph_rejected(self):
        """Test an AsyncGraph cannot be nested in a sync Graph."""
        with pytest.raises(GraphDefinitionError, match="AsyncGraph"):
            Graph("main").register(AsyncGraph("inner"), "inner")

    @pytest.mark.asyncio
    async def test_nested_async_graph(self):
        """Test an AsyncGraph nested in an AsyncGraph."""
        inner = AsyncGraph("inner")
        inner.register(Fetch(), "fetch", start=True) - "fetched" >> END

        main = AsyncGraph("main")
        nested = main.register(inner, "inner", start=True)
        nested - "fetched" >> main.register(parse_node(), "parse") >> END

        trace = ExecutionTrace()
        shared = await main.run_async({"url": "x"}, trace=trace)

        assert shared["parsed"] == 1
        assert trace.visited == ["inner", "inner/fetch", "parse"]

    @pytest.mark.asyncio
    async def test_sync_graph_nested_in_async_graph(self, recorder):
        """Test a sync Graph runs inline inside an AsyncGraph."""
        inner = Graph("inner")
        inner.register(recorder("a"), "a", start=True) >> END

        main = AsyncGraph("main")
        main.register(inner, "inner", start=True) >> END

        assert (await main.run_async({}))["visited"] == ["a"]

    @pytest.mark.asyncio
    async def test_unresolved_transition(self):
        """Test async runs fail on actions without edges."""
        graph = AsyncGraph("g")
        graph.register(Fetch(), "fetch", start=True) - "other" >> END

        with pytest.raises(UnresolvedTransitionError):
            await graph.run_async({"url": "x"})

    @pytest.mark.asyncio
    async def test_cancellation(self):
        """Test a cancelled token stops the async run."""
        token = CancellationToken()
        token.cancel()
        graph = AsyncGraph("g")
        graph.register(Fetch(), "fetch", start=True) - "fetched" >> END

        with pytest.raises(CancelledError):
            await graph.run_async({"url": "x"}, cancellation=token)


class TestAsyncBatchFlows:
    """Tests for AsyncBatchFlow and AsyncParallelBatchFlow."""

    @staticmethod
    def _register(flow):
        flow.register(Fetch(), "fetch", start=True) - "fetched" >> END
        return flow

    @pytest.mark.asyncio
    async def test_sequential_batch(self):
        """Test one full run per element."""
        flow = self._register(
            AsyncBatchFlow("batch", items=["a", "b"], params_fn=lambda url: {"url": url})
        )
        shared = await flow.run_async({})
        assert shared["bodies"] == {"a": "<a>", "b": "<b>"}

    @pytest.mark.asyncio
    async def test_async_prepare_and_finalize(self):
        """Test coroutine prepare and finalize hooks are awaited."""

        class Crawl(AsyncBatchFlow):
            async def prepare(self, shared, params):
                return [{"url": url} for url in shared["urls"]]

            async def finalize(self, shared, params, exit_actions):
                shared["exits"] = exit_actions
                return END

        flow = self._register(Crawl("crawl"))
        trace = ExecutionTrace()
        shared = await flow.run_async({"urls": ["x", "y"]}, trace=trace)

        assert shared["exits"] == ["fetched", "fetched"]
        assert trace.exit_action == END

    @pytest.mark.asyncio
    async def test_parallel_requires_safe_store(self):
        """Test parallel element runs need a SynchronizedStore or opt-in."""
        flow = self._register(AsyncParallelBatchFlow("p", items=[{"url": "a"}, {"url": "b"}]))

        with pytest.raises(ConcurrencyConfigError):
            await flow.run_async({})

    @pytest.mark.asyncio
    async def test_parallel_batch_overlaps(self):
        """Test element runs are concurrent tasks."""
        urls = [{"url": str(i)} for i in range(10)]
        flow = self._register(AsyncParallelBatchFlow("p", items=urls))

        start = time.monotonic()
        shared = await flow.run_async(SynchronizedStore())

        assert len(shared["bodies"]) == 10
        assert time.monotonic() - start < 0.09

    @pytest.mark.asyncio
    async def test_max_parallel_one_is_sequential(self):
        """Test max_parallel=1 needs no store opt-in."""
        flow = self._register(
            AsyncParallelBatchFlow("p", items=[{"url": "a"}, {"url": "b"}], max_parallel=1)
        )
        assert flow.parallel is False
        shared = await flow.run_async({})
        assert set(shared["bodies"]) == {"a", "b"}

    @pytest.mark.asyncio
    async def test_parallel_element_failure(self):
        """Test the lowest failing element index is reported."""
        items = [{"url": "ok"}, {"url": "bad"}, {"url": "bad"}]
        flow = self._register(
            AsyncParallelBatchFlow("p", items=items, assume_disjoint_keys=True)
        )

        with pytest.raises(BatchElementError) as exc_info:
            await flow.run_async({})
        assert exc_info.value.index == 1
