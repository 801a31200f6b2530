"""BatchFlow - re-run a whole graph once per element of a collection.

Each element gets its own parameter set, derived over the run params, and a
complete, independent traversal from the start node to the end. Every
element run uses the same shared store; the batch flow collects nothing
itself, so element runs write their results into the store.

Element runs are sequential by default, so each run observes the writes of
the runs before it. Concurrent element runs (max_workers > 1) are only
allowed when the shared store is a SynchronizedStore or the caller declares
that element runs write disjoint keys.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Any, ClassVar

from synaptic.core.config import EngineConfig
from synaptic.core.nodes.actions import DEFAULT_ACTION, normalize_action
from synaptic.core.nodes.batch import as_items, collect_ordered
from synaptic.core.nodes.context import ExecutionContext
from synaptic.core.nodes.errors import (
    BatchElementError,
    BudgetExceededError,
    ConcurrencyConfigError,
    FinalizeError,
    FlowError,
    InvalidActionError,
    PrepareError,
)
from synaptic.core.nodes.graph.graph import Graph
from synaptic.core.nodes.run_logging import log_error, log_start
from synaptic.core.nodes.store import Params, SharedStore, SynchronizedStore

ItemsSource = Callable[[SharedStore, Params], Iterable[Any]] | Iterable[Any]


class BatchFlow(Graph):
    """Graph that runs once per element.

    Register nodes and transitions exactly as for a Graph; they form the
    sub-graph run for each element.

    Args:
        id: Identifier of this batch flow.
        items: Elements to run over: an iterable, or a callable receiving
            (shared, params). Override prepare() instead for more control.
        params_fn: Maps an element to its params. Defaults to using the
            element itself, which must then be a mapping.
        max_workers: Thread pool size for concurrent element runs.
        assume_disjoint_keys: Declare that concurrent element runs write
            disjoint shared keys, allowing a plain dict store.
        strict_transitions: See Graph.
        max_steps: See Graph. Counts steps of all element runs together.
        config: See Graph.

    Example:
        >>> flow = BatchFlow("greet_all", items=[{"n": "Ann"}, {"n": "Bo"}])
        >>> flow.register(Greet(), "greet", start=True) - "done" >> END
        >>> shared = flow.run({})
        >>> shared["greeting_Ann"], shared["greeting_Bo"]
    """

    graph_type: ClassVar[str] = "batch_flow"

    def __init__(
        self,
        id: str = "batch_flow",
        *,
        items: ItemsSource | None = None,
        params_fn: Callable[[Any], Mapping[str, Any]] | None = None,
        max_workers: int | None = None,
        assume_disjoint_keys: bool = False,
        strict_transitions: bool | None = None,
        max_steps: int | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        if max_workers is not None and max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        super().__init__(
            id, strict_transitions=strict_transitions, max_steps=max_steps, config=config
        )
        self._items = items
        self._params_fn = params_fn
        self.max_workers = max_workers
        self.assume_disjoint_keys = assume_disjoint_keys

    @property
    def parallel(self) -> bool:
        """Whether element runs may overlap."""
        return self.max_workers is not None and self.max_workers > 1

    # ------------------------------------------------------------------
    # Hooks (override in subclasses)
    # ------------------------------------------------------------------

    def prepare(self, shared: SharedStore, params: Params) -> Iterable[Any] | None:
        """Return the elements to run over."""
        if self._items is None:
            return []
        if callable(self._items):
            return self._items(shared, params)
        return self._items

    def element_params(self, element: Any) -> Mapping[str, Any]:
        """Return the params for one element."""
        if self._params_fn is not None:
            return self._params_fn(element)
        if not isinstance(element, Mapping):
            raise TypeError(
                f"element {element!r} is not a mapping; pass params_fn to derive its params"
            )
        return element

    def finalize(self, shared: SharedStore, params: Params, exit_actions: list[str]) -> str | None:
        """Return the batch flow's own exit action.

        Args:
            exit_actions: Exit action of each element run, in element order.
        """
        return DEFAULT_ACTION

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def _check_store(self, shared: SharedStore) -> None:
        if self.parallel and not (
            self.assume_disjoint_keys or isinstance(shared, SynchronizedStore)
        ):
            raise ConcurrencyConfigError(
                f"batch flow {self.id!r} runs elements concurrently; use a SynchronizedStore "
                "or set assume_disjoint_keys=True",
            )

    def _orchestrate(self, shared: SharedStore, params: Params, context: ExecutionContext) -> str:
        try:
            elements = as_items(self.prepare(shared, params))
        except FlowError:
            raise
        except Exception as e:
            raise PrepareError(
                "batch flow prepare failed", cause=e, path=self._path(context)
            ) from e
        log_start(context.log, self.id, "batch_start", elements=len(elements))

        if self.parallel and len(elements) > 1:
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix=f"synaptic-{self.id}"
            ) as executor:
                exit_actions = collect_ordered(
                    [
                        executor.submit(
                            self._run_element, index, element, shared, params, context
                        )
                        for index, element in enumerate(elements)
                    ]
                )
        else:
            exit_actions = [
                self._run_element(index, element, shared, params, context)
                for index, element in enumerate(elements)
            ]

        return self._finish(shared, params, exit_actions, context)

    def _run_element(
        self,
        index: int,
        element: Any,
        shared: SharedStore,
        params: Params,
        context: ExecutionContext,
    ) -> str:
        element_params = self._derive_params(index, element, params, context)
        try:
            return super()._orchestrate(shared, element_params, context.with_index(index))
        except BudgetExceededError:
            raise
        except FlowError as e:
            raise self._element_error(e, index, context) from e

    def _derive_params(
        self, index: int, element: Any, params: Params, context: ExecutionContext
    ) -> Params:
        try:
            return params.derive(self.element_params(element))
        except Exception as e:
            raise BatchElementError(
                "could not derive element params",
                phase="prepare",
                index=index,
                cause=e,
                path=self._path(context),
            ) from e

    def _element_error(
        self, error: FlowError, index: int, context: ExecutionContext
    ) -> BatchElementError:
        log_error(context.log, self.id, "batch_element_failed", error, index=index)
        return BatchElementError(
            f"element run failed: {error.message}",
            node_id=error.node_id,
            phase=error.phase,
            index=index,
            cause=error,
            path=error.path,
        )

    def _finish(
        self,
        shared: SharedStore,
        params: Params,
        exit_actions: list[str],
        context: ExecutionContext,
    ) -> str:
        try:
            raw_action = self.finalize(shared, params, exit_actions)
        except FlowError:
            raise
        except Exception as e:
            raise self._finalize_error(e, context) from e
        if inspect.isawaitable(raw_action):
            raise FinalizeError(
                "finalize returned an awaitable; use AsyncBatchFlow", path=self._path(context)
            )
        return self._exit_action(raw_action, context)

    def _finalize_error(self, error: Exception, context: ExecutionContext) -> FinalizeError:
        return FinalizeError("batch flow finalize failed", cause=error, path=self._path(context))

    def _exit_action(self, raw_action: Any, context: ExecutionContext) -> str:
        try:
            return normalize_action(raw_action)
        except TypeError as e:
            raise InvalidActionError(str(e), path=self._path(context)) from e

    def _path(self, context: ExecutionContext) -> tuple[str, ...]:
        return context.path or (self.id,)
