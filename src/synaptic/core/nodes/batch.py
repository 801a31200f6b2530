"""BatchNode - apply execute to every element of a collection.

prepare returns an iterable; execute runs once per element, in input order,
with the node's retry/fallback policy scoped to that element; finalize gets
the ordered list of results.

With max_workers > 1 elements are dispatched to a bounded thread pool. This
is only correct when execute is pure with respect to the shared store - it
receives the element and nothing else, and must not reach the store through
closures either. Results are reassembled in input order regardless of
completion order.
"""

from __future__ import annotations

from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, ClassVar

from synaptic.core.nodes.base import Invocation, Node
from synaptic.core.nodes.errors import BatchElementError, FallbackError
from synaptic.core.nodes.policies import RetryPolicy
from synaptic.core.nodes.run_logging import log_error


def as_items(value: Any) -> list[Any]:
    """Materialize a prepare result as a list of batch elements.

    None means an empty batch. Strings and mappings are rejected because
    iterating them is almost never what was intended.
    """
    if value is None:
        return []
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise TypeError(
            f"batch prepare must return an iterable of elements, got {type(value).__name__}"
        )
    if isinstance(value, dict):
        raise TypeError("batch prepare returned a dict; return a list of elements instead")
    return list(value)


def batch_items(local_input: Any, inv: Invocation) -> list[Any]:
    """Elements of a batch node's prepare result."""
    try:
        return as_items(local_input)
    except TypeError as e:
        raise BatchElementError(str(e), node_id=inv.node_id, phase="prepare", path=inv.path) from e


def collect_ordered(futures: list[Future]) -> list[Any]:
    """Wait for futures in submission order.

    The first failure in input order is raised; futures not yet started are
    cancelled.
    """
    results = []
    try:
        for future in futures:
            results.append(future.result())
    except BaseException:
        for future in futures:
            future.cancel()
        raise
    return results


def element_error(error: FallbackError, inv: Invocation, index: int) -> BatchElementError:
    """Log an exhausted batch element and build the error that ends the batch."""
    context = inv.context
    log_error(
        context.log,
        context.graph_id,
        "batch_element_failed",
        error.cause or error,
        node=inv.log_id,
        index=index,
        attempts=error.attempts,
    )
    return BatchElementError(
        error.message,
        node_id=inv.node_id,
        phase=error.phase,
        index=index,
        cause=error.cause,
        path=inv.path,
    )


class BatchNode(Node):
    """Node whose execute phase runs once per element.

    Args:
        policy: Retry policy, applied to each element separately.
        max_workers: Size of the worker pool. None or 1 runs sequentially.
        name: Display name.

    Example:
        >>> class Square(BatchNode):
        ...     def prepare(self, shared, params):
        ...         return shared["numbers"]
        ...
        ...     def execute(self, n):
        ...         return n * n
        ...
        ...     def finalize(self, shared, params, squares):
        ...         shared["squares"] = squares
        >>>
        >>> shared = {"numbers": [1, 2, 3]}
        >>> Square(max_workers=4).run(shared)
        'default'
        >>> shared["squares"]
        [1, 4, 9]
    """

    node_type: ClassVar[str] = "batch"

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        max_workers: int | None = None,
        name: str | None = None,
    ) -> None:
        if max_workers is not None and max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        super().__init__(policy, name=name)
        self.max_workers = max_workers

    @property
    def parallel(self) -> bool:
        """Whether elements are dispatched to a worker pool."""
        return self.max_workers is not None and self.max_workers > 1

    def _execute_phase(self, local_input: Any, inv: Invocation) -> list[Any]:
        items = batch_items(local_input, inv)

        if self.parallel and len(items) > 1:
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix=f"synaptic-{self.name}"
            ) as executor:
                return collect_ordered(
                    [
                        executor.submit(self._execute_element, item, index, inv)
                        for index, item in enumerate(items)
                    ]
                )

        results = []
        for index, item in enumerate(items):
            inv.context.check_cancelled()
            results.append(self._execute_element(item, index, inv))
        return results

    def _execute_element(self, item: Any, index: int, inv: Invocation) -> Any:
        try:
            return self._execute_with_policy(item, inv, index)
        except FallbackError as e:
            raise element_error(e, inv, index) from e
