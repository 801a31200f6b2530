"""Error taxonomy for graph execution.

Every failure that terminates a run is a FlowError carrying enough context
to locate it without replaying the run:

- node_id: the node that failed (innermost, for nested graphs)
- phase: lifecycle phase or "transition" / "graph"
- index: batch element index, if any
- path: node ids from the outermost graph down to the failing node
- cause: the underlying exception

Node-local failures (prepare/execute/fallback/finalize) are recovered only
through retry and fallback. Static misconfiguration (GraphDefinitionError and
its subclasses, UnresolvedTransitionError) is never retried.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

Phase = Literal["prepare", "execute", "fallback", "finalize", "transition", "graph"]


class FlowError(Exception):
    """Base class for errors raised by graph execution.

    Attributes:
        node_id: Id of the node that failed, if known.
        phase: Phase in which the failure happened.
        index: Batch element index, if the failure belongs to one.
        cause: The underlying exception, if any.
        path: Node ids from the outermost graph to the failing node.
    """

    default_phase: Phase = "graph"

    def __init__(
        self,
        message: str,
        *,
        node_id: str | None = None,
        phase: Phase | None = None,
        index: int | None = None,
        cause: BaseException | None = None,
        path: Iterable[str] | None = None,
    ) -> None:
        self.message = message
        self.node_id = node_id
        self.phase: Phase = phase or self.default_phase
        self.index = index
        self.cause = cause
        self.path: list[str] = list(path) if path is not None else ([node_id] if node_id else [])
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def location(self) -> str:
        """Slash-joined node path, e.g. "review/draft"."""
        return "/".join(self.path) if self.path else (self.node_id or "<graph>")

    def __str__(self) -> str:
        parts = [f"[{self.location}]", f"{self.phase}:"]
        if self.index is not None:
            parts.append(f"element {self.index}:")
        parts.append(self.message)
        if self.cause is not None:
            parts.append(f"({type(self.cause).__name__}: {self.cause})")
        return " ".join(parts)


class PrepareError(FlowError):
    """Raised when a node's prepare phase fails. Never retried."""

    default_phase: Phase = "prepare"


class ExecuteError(FlowError):
    """Raised when a node's execute phase fails."""

    default_phase: Phase = "execute"


class ExecuteTimeoutError(ExecuteError):
    """Raised when one execute attempt exceeds the policy timeout.

    Counts as a failed attempt and is eligible for retry.
    """


class FallbackError(ExecuteError):
    """Raised when execute exhausted its attempts and fallback is absent or failed.

    Attributes:
        attempts: Number of execute attempts made.
    """

    default_phase: Phase = "fallback"

    def __init__(self, message: str, *, attempts: int = 0, **kwargs) -> None:
        self.attempts = attempts
        super().__init__(message, **kwargs)


class FinalizeError(FlowError):
    """Raised when a node's finalize phase fails."""

    default_phase: Phase = "finalize"


class InvalidActionError(FinalizeError):
    """Raised when finalize returns something that is not an action."""


class UnresolvedTransitionError(FlowError):
    """Raised when a node's action has no entry in the transition table.

    Attributes:
        action: The action that could not be resolved.
        available: Actions the source node does have transitions for.
    """

    default_phase: Phase = "transition"

    def __init__(
        self,
        node_id: str,
        action: str,
        available: Iterable[str] = (),
        path: Iterable[str] | None = None,
    ) -> None:
        self.action = action
        self.available = sorted(available)
        if self.available:
            hint = f"; available: {', '.join(self.available)}"
        else:
            hint = "; node has no outgoing transitions"
        super().__init__(f"no transition for action {action!r}{hint}", node_id=node_id, path=path)


class GraphDefinitionError(FlowError, ValueError):
    """Raised for static graph misconfiguration.

    Attributes:
        problems: Individual problems found, if several.
    """

    def __init__(self, message: str, *, problems: Iterable[str] | None = None, **kwargs) -> None:
        self.problems = list(problems) if problems is not None else [message]
        super().__init__(message, **kwargs)


class DuplicateNodeError(GraphDefinitionError):
    """Raised when two nodes are registered under the same id."""


class DuplicateTransitionError(GraphDefinitionError):
    """Raised in strict mode when a (source, action) pair is added twice."""


class ConcurrencyConfigError(GraphDefinitionError):
    """Raised when parallel batch runs are enabled without a safe shared store."""


class BatchElementError(FlowError):
    """Raised when one element of a batch exhausted its retry/fallback.

    Terminal for the whole batch invocation.
    """


class BudgetExceededError(FlowError):
    """Raised when a run exceeds its step or time budget.

    Attributes:
        reason: Human-readable explanation of which limit was hit.
    """

    def __init__(self, reason: str, **kwargs) -> None:
        self.reason = reason
        super().__init__(reason, **kwargs)
