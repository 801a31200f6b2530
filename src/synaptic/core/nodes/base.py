"""Node abstraction - the three-phase unit of work.

A node runs one pass of a fixed lifecycle each time its graph reaches it:

    prepare(shared, params) -> local_input     read the shared store
    execute(local_input) -> result             do the work (retried)
    finalize(shared, params, result) -> action write results, pick next edge

Only execute is retried, per the node's RetryPolicy. When attempts are
exhausted the optional fallback(local_input, error) substitutes a result;
without one the failure propagates and terminates the run.

Node kinds:
- Node: subclass and override the phases
- FunctionNode: wraps plain callables for each phase
- BatchNode: execute once per element (see batch.py)
- DecisionNode: agent-style routing node (see decision.py)
- AsyncNode and friends: coroutine phases (see async_nodes.py)
- SubgraphNode: a whole graph used as a node (see graph/subgraph.py)

Nodes are unaware of the graph that holds them; the id a node is registered
under is passed in by the graph for diagnostics only.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, ClassVar

from synaptic.core.nodes.actions import normalize_action
from synaptic.core.nodes.cancellation import CancelledError
from synaptic.core.nodes.context import ExecutionContext
from synaptic.core.nodes.errors import (
    ExecuteTimeoutError,
    FallbackError,
    FinalizeError,
    FlowError,
    InvalidActionError,
    PrepareError,
)
from synaptic.core.nodes.policies import RetryPolicy
from synaptic.core.nodes.run_logging import log_error, log_warning
from synaptic.core.nodes.store import Params, SharedStore

if TYPE_CHECKING:
    from synaptic.core.nodes.trace import StepTrace

logger = logging.getLogger(__name__)


class NodeState(Enum):
    """Lifecycle states of one node invocation.

    State transitions:
        READY -> PREPARING -> EXECUTING -> (RETRYING)* -> (FALLING_BACK)?
              -> FINALIZING -> DONE
        any state -> FAILED
    """

    READY = auto()
    PREPARING = auto()
    EXECUTING = auto()
    RETRYING = auto()
    FALLING_BACK = auto()
    FINALIZING = auto()
    DONE = auto()
    FAILED = auto()


@dataclass
class Invocation:
    """Bookkeeping for one pass through a node's lifecycle.

    Mirrors state changes into the step trace when tracing is enabled.
    """

    node_id: str
    context: ExecutionContext
    step: StepTrace | None = None
    state: NodeState = NodeState.READY
    attempts: int = 0
    fell_back: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        if self.step is not None:
            self.step.states.append(self.state)

    @property
    def path(self) -> tuple[str, ...]:
        """Node path used in error reports."""
        return (*self.context.path, self.node_id)

    @property
    def log_id(self) -> str:
        """Node path as logged."""
        return self.context.step_path(self.node_id)

    def enter(self, state: NodeState) -> None:
        """Move to a new lifecycle state."""
        with self._lock:
            self.state = state
            if self.step is not None:
                self.step.states.append(state)

    def add_attempt(self) -> None:
        """Count one execute attempt."""
        with self._lock:
            self.attempts += 1
            if self.step is not None:
                self.step.attempts = self.attempts

    def mark_fell_back(self) -> None:
        """Record that the fallback produced a result."""
        self.fell_back = True
        if self.step is not None:
            self.step.fell_back = True


class Node:
    """Base class for units of work.

    Override prepare, execute and finalize (all optional) and, to recover
    from exhausted retries, fallback.

    Attributes:
        policy: Retry policy for the execute phase.
        name: Display name used when the node runs outside a graph.
        actions: Optional declared set of actions finalize may return.
            Graph.validate() checks each has a transition.

    Example:
        >>> class Summarize(Node):
        ...     def prepare(self, shared, params):
        ...         return shared["text"]
        ...
        ...     def execute(self, text):
        ...         return call_llm(f"Summarize: {text}")
        ...
        ...     def finalize(self, shared, params, summary):
        ...         shared["summary"] = summary
        ...         return "long" if len(summary) > 200 else "short"
        >>>
        >>> node = Summarize(RetryPolicy(max_attempts=3, retry_delay_ms=500))
    """

    node_type: ClassVar[str] = "node"
    is_async: ClassVar[bool] = False
    actions: tuple[str, ...] | None = None

    def __init__(self, policy: RetryPolicy | None = None, *, name: str | None = None) -> None:
        self.policy = policy or RetryPolicy()
        self.name = name or type(self).__name__

    # ------------------------------------------------------------------
    # Phases (override in subclasses)
    # ------------------------------------------------------------------

    def prepare(self, shared: SharedStore, params: Params) -> Any:
        """Read what execute needs from the shared store. Must not mutate it."""
        return None

    def execute(self, local_input: Any) -> Any:
        """Do the work. Must not touch the shared store."""
        return None

    def finalize(self, shared: SharedStore, params: Params, result: Any) -> str | None:
        """Write the result into the shared store and return the next action."""
        return None

    def fallback(self, local_input: Any, error: Exception) -> Any:
        """Substitute a result after execute exhausted its attempts.

        The base implementation means "no fallback": the failure propagates.
        """
        raise error

    fallback.is_default_fallback = True  # type: ignore[attr-defined]

    @property
    def has_fallback(self) -> bool:
        """Whether this node provides a fallback."""
        return not getattr(type(self).fallback, "is_default_fallback", False)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def run(self, shared: SharedStore, params: Params | Mapping[str, Any] | None = None) -> str:
        """Run one lifecycle pass outside any graph.

        Args:
            shared: Shared store to read from and write to.
            params: Parameter set for this pass.

        Returns:
            The action finalize produced.
        """
        context = ExecutionContext.for_run(self.name)
        return self._invoke(shared, Params.coerce(params), context, self.name)

    def _invoke(
        self,
        shared: SharedStore,
        params: Params,
        context: ExecutionContext,
        node_id: str,
        step: StepTrace | None = None,
    ) -> str:
        """Run prepare, execute (with policy) and finalize once."""
        inv = Invocation(node_id, context, step)
        try:
            inv.enter(NodeState.PREPARING)
            local_input = self._prepare_phase(shared, params, inv)
            result = self._execute_phase(local_input, inv)
            inv.enter(NodeState.FINALIZING)
            action = self._finalize_phase(shared, params, result, inv)
        except BaseException:
            inv.enter(NodeState.FAILED)
            raise
        inv.enter(NodeState.DONE)
        return action

    def _prepare_phase(self, shared: SharedStore, params: Params, inv: Invocation) -> Any:
        try:
            return self.prepare(shared, params)
        except FlowError:
            raise
        except Exception as e:
            raise self._prepare_error(e, inv) from e

    def _execute_phase(self, local_input: Any, inv: Invocation) -> Any:
        return self._execute_with_policy(local_input, inv)

    def _finalize_phase(
        self, shared: SharedStore, params: Params, result: Any, inv: Invocation
    ) -> str:
        try:
            raw_action = self.finalize(shared, params, result)
        except FlowError:
            raise
        except Exception as e:
            raise self._finalize_error(e, inv) from e
        return self._to_action(raw_action, inv)

    def _execute_with_policy(self, item: Any, inv: Invocation, index: int | None = None) -> Any:
        """Attempt execute up to policy.max_attempts times, then fall back."""
        policy = self.policy
        last_error: Exception | None = None

        for attempt in range(policy.max_attempts):
            inv.enter(NodeState.EXECUTING if attempt == 0 else NodeState.RETRYING)
            inv.add_attempt()
            try:
                return self._call_execute(item, inv, index)
            except CancelledError:
                raise
            except Exception as e:
                last_error = e
                if not policy.should_retry(attempt):
                    break
                delay = self._log_retry(e, attempt, inv, index)
                if delay > 0:
                    time.sleep(delay)

        assert last_error is not None
        return self._handle_exhausted(item, last_error, inv, index)

    def _call_execute(self, item: Any, inv: Invocation, index: int | None) -> Any:
        timeout = self.policy.timeout_seconds
        if timeout is None:
            return self.execute(item)

        # The worker thread cannot be killed; a timed-out attempt is abandoned.
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"synaptic-{self.name}")
        future = executor.submit(self.execute, item)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            if future.done():
                raise
            raise self._timeout_error(inv, index) from None
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _handle_exhausted(
        self, item: Any, error: Exception, inv: Invocation, index: int | None
    ) -> Any:
        if not self.has_fallback:
            raise self._exhausted_error(error, inv, index) from error

        self._log_fallback(error, inv, index)
        try:
            result = self.fallback(item, error)
        except Exception as fallback_error:
            raise self._fallback_failed_error(fallback_error, inv, index) from fallback_error
        inv.mark_fell_back()
        return result

    # ------------------------------------------------------------------
    # Policy bookkeeping shared by sync and async nodes
    # ------------------------------------------------------------------

    def _log_retry(
        self, error: Exception, attempt: int, inv: Invocation, index: int | None
    ) -> float:
        """Log a failed attempt that will be retried and return the delay in seconds."""
        context = inv.context
        delay = self.policy.get_delay_for_attempt(attempt)
        log_warning(
            context.log,
            context.graph_id,
            "step_retry",
            node=inv.log_id,
            index=index,
            attempt=attempt + 1,
            max_attempts=self.policy.max_attempts,
            delay_ms=int(delay * 1000),
            error_type=type(error).__name__,
            error=str(error),
        )
        return delay

    def _timeout_error(self, inv: Invocation, index: int | None) -> ExecuteTimeoutError:
        return ExecuteTimeoutError(
            f"attempt exceeded {self.policy.timeout_ms}ms",
            node_id=inv.node_id,
            index=index,
            path=inv.path,
        )

    def _exhausted_error(
        self, error: Exception, inv: Invocation, index: int | None
    ) -> FallbackError:
        context = inv.context
        attempts = self.policy.max_attempts
        log_error(
            context.log,
            context.graph_id,
            "step_exhausted",
            error,
            node=inv.log_id,
            index=index,
            attempts=attempts,
        )
        return FallbackError(
            f"execute failed after {attempts} attempt(s) and no fallback is configured",
            attempts=attempts,
            node_id=inv.node_id,
            index=index,
            cause=error,
            path=inv.path,
        )

    def _log_fallback(self, error: Exception, inv: Invocation, index: int | None) -> None:
        inv.enter(NodeState.FALLING_BACK)
        context = inv.context
        log_warning(
            context.log,
            context.graph_id,
            "step_fallback",
            node=inv.log_id,
            index=index,
            attempts=self.policy.max_attempts,
            error_type=type(error).__name__,
            error=str(error),
        )

    def _fallback_failed_error(
        self, error: Exception, inv: Invocation, index: int | None
    ) -> FallbackError:
        attempts = self.policy.max_attempts
        return FallbackError(
            f"fallback failed after {attempts} execute attempt(s)",
            attempts=attempts,
            node_id=inv.node_id,
            index=index,
            cause=error,
            path=inv.path,
        )

    # ------------------------------------------------------------------
    # Phase error wrapping
    # ------------------------------------------------------------------

    @staticmethod
    def _prepare_error(error: Exception, inv: Invocation) -> PrepareError:
        return PrepareError("prepare failed", node_id=inv.node_id, cause=error, path=inv.path)

    @staticmethod
    def _finalize_error(error: Exception, inv: Invocation) -> FinalizeError:
        return FinalizeError("finalize failed", node_id=inv.node_id, cause=error, path=inv.path)

    @staticmethod
    def _to_action(raw_action: Any, inv: Invocation) -> str:
        try:
            return normalize_action(raw_action)
        except TypeError as e:
            raise InvalidActionError(str(e), node_id=inv.node_id, path=inv.path) from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, max_attempts={self.policy.max_attempts})"


class FunctionNode(Node):
    """Wraps plain callables as the phases of a node.

    Without a finalize callable the execute result is the action, so a
    single function returning an action string (or None) is a complete node.

    Args:
        execute: Callable receiving the local input. Defaults to identity.
        prepare: Callable receiving (shared, params).
        finalize: Callable receiving (shared, params, result).
        fallback: Callable receiving (local_input, error).
        policy: Retry policy for execute.
        actions: Declared actions finalize may return.
        name: Display name.

    Example:
        >>> greet = FunctionNode(
        ...     prepare=lambda shared, params: params["n"],
        ...     execute=lambda n: f"Hello, {n}!",
        ...     finalize=lambda shared, params, text: shared.__setitem__("greeting", text),
        ... )
    """

    node_type: ClassVar[str] = "function"

    def __init__(
        self,
        execute: Callable[[Any], Any] | None = None,
        *,
        prepare: Callable[[SharedStore, Params], Any] | None = None,
        finalize: Callable[[SharedStore, Params, Any], str | None] | None = None,
        fallback: Callable[[Any, Exception], Any] | None = None,
        policy: RetryPolicy | None = None,
        actions: Iterable[str] | None = None,
        name: str | None = None,
    ) -> None:
        fn_name = getattr(execute, "__name__", None) if execute is not None else None
        super().__init__(policy, name=name or fn_name or "FunctionNode")
        self._prepare_fn = prepare
        self._execute_fn = execute
        self._finalize_fn = finalize
        self._fallback_fn = fallback
        if actions is not None:
            self.actions = tuple(actions)

    def prepare(self, shared: SharedStore, params: Params) -> Any:
        if self._prepare_fn is None:
            return None
        return self._prepare_fn(shared, params)

    def execute(self, local_input: Any) -> Any:
        if self._execute_fn is None:
            return local_input
        return self._execute_fn(local_input)

    def finalize(self, shared: SharedStore, params: Params, result: Any) -> str | None:
        if self._finalize_fn is None:
            return result
        return self._finalize_fn(shared, params, result)

    def fallback(self, local_input: Any, error: Exception) -> Any:
        if self._fallback_fn is None:
            raise error
        return self._fallback_fn(local_input, error)

    @property
    def has_fallback(self) -> bool:
        return self._fallback_fn is not None
