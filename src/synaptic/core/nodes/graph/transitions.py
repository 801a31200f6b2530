"""TransitionTable - the edges of a graph.

Maps (source node id, action) to a target node id, where the target may be
END. Lookup is by exact string identity; there is no implicit fallthrough.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator

from synaptic.core.nodes.actions import END
from synaptic.core.nodes.errors import DuplicateTransitionError, UnresolvedTransitionError

logger = logging.getLogger(__name__)


class TransitionTable:
    """Mapping of (source, action) -> target.

    Re-adding an existing (source, action) pair replaces the prior target
    unless the table is strict, in which case it raises.

    Args:
        strict: Reject duplicate (source, action) pairs.

    Example:
        >>> table = TransitionTable()
        >>> table.add("Summarize", "long", "ExtractKeywords")
        >>> table.add("Summarize", "short", "Output")
        >>> table.resolve("Summarize", "short")
        'Output'
        >>> table.actions_for("Summarize")
        ['long', 'short']
    """

    def __init__(self, strict: bool = False) -> None:
        self.strict = strict
        self._edges: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def add(self, source: str, action: str, target: str) -> str | None:
        """Add one edge.

        Returns:
            The target that was replaced, if any.

        Raises:
            DuplicateTransitionError: In strict mode, if the pair exists.
        """
        key = (source, action)
        with self._lock:
            previous = self._edges.get(key)
            if previous is not None and self.strict:
                raise DuplicateTransitionError(
                    f"transition ({source!r}, {action!r}) already targets {previous!r}",
                    node_id=source,
                )
            self._edges[key] = target
        return previous

    def resolve(self, source: str, action: str, path: tuple[str, ...] | None = None) -> str:
        """Look up the target for (source, action).

        Raises:
            UnresolvedTransitionError: If no edge exists.
        """
        try:
            return self._edges[(source, action)]
        except KeyError:
            raise UnresolvedTransitionError(
                source, action, self.actions_for(source), path=path
            ) from None

    def get(self, source: str, action: str) -> str | None:
        return self._edges.get((source, action))

    def actions_for(self, source: str) -> list[str]:
        """Actions the source node has edges for, sorted."""
        return sorted(action for (src, action) in self._edges if src == source)

    def actions(self) -> frozenset[str]:
        """The closed set of actions this table recognizes."""
        return frozenset(action for (_, action) in self._edges)

    def edges(self) -> list[tuple[str, str, str]]:
        """All edges as (source, action, target), in insertion order."""
        return [(source, action, target) for (source, action), target in self._edges.items()]

    def targets(self) -> set[str]:
        """Every target id, excluding END."""
        return {target for target in self._edges.values() if target != END}

    def __contains__(self, key: object) -> bool:
        return key in self._edges

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(list(self._edges))

    def __len__(self) -> int:
        return len(self._edges)

    def __repr__(self) -> str:
        return f"TransitionTable(edges={len(self._edges)}, strict={self.strict})"
