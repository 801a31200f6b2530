"""Async node variants.

Same lifecycle and policy semantics as the sync nodes, with coroutine
phases. Retry delays use asyncio.sleep and per-attempt timeouts use
asyncio.wait_for, so a timed-out attempt is actually cancelled.

- AsyncNode: coroutine prepare/execute/finalize/fallback
- AsyncBatchNode: execute per element, sequentially
- AsyncParallelBatchNode: execute per element concurrently, bounded by
  max_parallel, results in input order

Async nodes run inside an AsyncGraph (or standalone via run_async).
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from synaptic.core.nodes.base import Invocation, Node, NodeState
from synaptic.core.nodes.batch import batch_items, element_error
from synaptic.core.nodes.cancellation import CancelledError
from synaptic.core.nodes.context import ExecutionContext
from synaptic.core.nodes.errors import FallbackError, FlowError
from synaptic.core.nodes.policies import RetryPolicy
from synaptic.core.nodes.store import Params, SharedStore

if TYPE_CHECKING:
    from synaptic.core.nodes.trace import StepTrace


class AsyncNode(Node):
    """Node with coroutine phases.

    Example:
        >>> class Fetch(AsyncNode):
        ...     async def prepare(self, shared, params):
        ...         return shared["url"]
        ...
        ...     async def execute(self, url):
        ...         async with session.get(url) as response:
        ...             return await response.text()
        ...
        ...     async def finalize(self, shared, params, body):
        ...         shared["body"] = body
        >>>
        >>> node = Fetch(RetryPolicy(max_attempts=3, retry_delay_ms=200, timeout_ms=5000))
        >>> await node.run_async({"url": "https://example.com"})
        'default'
    """

    node_type: ClassVar[str] = "async"
    is_async: ClassVar[bool] = True

    async def prepare(self, shared: SharedStore, params: Params) -> Any:
        return None

    async def execute(self, local_input: Any) -> Any:
        return None

    async def finalize(self, shared: SharedStore, params: Params, result: Any) -> str | None:
        return None

    async def fallback(self, local_input: Any, error: Exception) -> Any:
        raise error

    fallback.is_default_fallback = True  # type: ignore[attr-defined]

    def run(self, shared: SharedStore, params: Params | Mapping[str, Any] | None = None) -> str:
        raise TypeError(f"{type(self).__name__} is async; use run_async()")

    async def run_async(
        self, shared: SharedStore, params: Params | Mapping[str, Any] | None = None
    ) -> str:
        """Run one lifecycle pass outside any graph."""
        context = ExecutionContext.for_run(self.name)
        return await self._invoke_async(shared, Params.coerce(params), context, self.name)

    def _invoke(
        self,
        shared: SharedStore,
        params: Params,
        context: ExecutionContext,
        node_id: str,
        step: StepTrace | None = None,
    ) -> str:
        raise TypeError(f"{type(self).__name__} is async; register it in an AsyncGraph")

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
            inv.enter(NodeState.PREPARING)
            local_input = await self._prepare_phase_async(shared, params, inv)
            result = await self._execute_phase_async(local_input, inv)
            inv.enter(NodeState.FINALIZING)
            action = await self._finalize_phase_async(shared, params, result, inv)
        except BaseException:
            inv.enter(NodeState.FAILED)
            raise
        inv.enter(NodeState.DONE)
        return action

    async def _prepare_phase_async(
        self, shared: SharedStore, params: Params, inv: Invocation
    ) -> Any:
        try:
            return await self.prepare(shared, params)
        except FlowError:
            raise
        except Exception as e:
            raise self._prepare_error(e, inv) from e

    async def _execute_phase_async(self, local_input: Any, inv: Invocation) -> Any:
        return await self._execute_with_policy_async(local_input, inv)

    async def _finalize_phase_async(
        self, shared: SharedStore, params: Params, result: Any, inv: Invocation
    ) -> str:
        try:
            raw_action = await self.finalize(shared, params, result)
        except FlowError:
            raise
        except Exception as e:
            raise self._finalize_error(e, inv) from e
        return self._to_action(raw_action, inv)

    async def _execute_with_policy_async(
        self, item: Any, inv: Invocation, index: int | None = None
    ) -> Any:
        policy = self.policy
        last_error: Exception | None = None

        for attempt in range(policy.max_attempts):
            inv.enter(NodeState.EXECUTING if attempt == 0 else NodeState.RETRYING)
            inv.add_attempt()
            try:
                return await self._call_execute_async(item, inv, index)
            except CancelledError:
                raise
            except Exception as e:
                last_error = e
                if not policy.should_retry(attempt):
                    break
                delay = self._log_retry(e, attempt, inv, index)
                if delay > 0:
                    await asyncio.sleep(delay)

        assert last_error is not None
        if not self.has_fallback:
            raise self._exhausted_error(last_error, inv, index) from last_error

        self._log_fallback(last_error, inv, index)
        try:
            result = await self.fallback(item, last_error)
        except Exception as fallback_error:
            raise self._fallback_failed_error(fallback_error, inv, index) from fallback_error
        inv.mark_fell_back()
        return result

    async def _call_execute_async(self, item: Any, inv: Invocation, index: int | None) -> Any:
        timeout = self.policy.timeout_seconds
        if timeout is None:
            return await self.execute(item)
        try:
            return await asyncio.wait_for(self.execute(item), timeout)
        except asyncio.TimeoutError:
            raise self._timeout_error(inv, index) from None


class AsyncBatchNode(AsyncNode):
    """Async node whose execute runs once per element, in order."""

    node_type: ClassVar[str] = "async_batch"

    async def _execute_phase_async(self, local_input: Any, inv: Invocation) -> list[Any]:
        results = []
        for index, item in enumerate(batch_items(local_input, inv)):
            inv.context.check_cancelled()
            results.append(await self._execute_element_async(item, index, inv))
        return results

    async def _execute_element_async(self, item: Any, index: int, inv: Invocation) -> Any:
        try:
            return await self._execute_with_policy_async(item, inv, index)
        except FallbackError as e:
            raise element_error(e, inv, index) from e


class AsyncParallelBatchNode(AsyncBatchNode):
    """Async batch node whose elements run concurrently.

    Args:
        policy: Retry policy, applied to each element separately.
        max_parallel: Maximum elements in flight. None means unbounded.
        name: Display name.

    Results are in input order. If elements fail, the lowest failing index
    is reported and the remaining elements are cancelled.
    """

    node_type: ClassVar[str] = "async_parallel_batch"

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        max_parallel: int | None = None,
        name: str | None = None,
    ) -> None:
        if max_parallel is not None and max_parallel < 1:
            raise ValueError("max_parallel must be >= 1")
        super().__init__(policy, name=name)
        self.max_parallel = max_parallel

    async def _execute_phase_async(self, local_input: Any, inv: Invocation) -> list[Any]:
        items = batch_items(local_input, inv)
        inv.context.check_cancelled()
        return await gather_ordered(
            [self._execute_element_async(item, index, inv) for index, item in enumerate(items)],
            self.max_parallel,
        )


async def gather_ordered(coros: list[Any], max_parallel: int | None = None) -> list[Any]:
    """Run coroutines concurrently and return their results in input order.

    At most max_parallel run at once. The first failure in input order is
    raised after the other tasks are cancelled.
    """
    semaphore = asyncio.Semaphore(max_parallel) if max_parallel else None

    async def bounded(coro: Any) -> Any:
        try:
            if semaphore is None:
                return await coro
            async with semaphore:
                return await coro
        finally:
            # A task cancelled before it started leaves its coroutine unawaited.
            coro.close()

    tasks = [asyncio.ensure_future(bounded(coro)) for coro in coros]
    try:
        return [await task for task in tasks]
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
