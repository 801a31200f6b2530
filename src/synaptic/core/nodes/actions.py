"""Action values - the outcome signals nodes hand back to their graph.

An action is a plain string used only to look up the next transition.
Two values are reserved:

- DEFAULT_ACTION: what a finalize phase returning None means
- END: terminal sentinel; returned by a node, or used as a transition
  target, it halts the graph
"""

from __future__ import annotations

from typing import Any, Final

DEFAULT_ACTION: Final = "default"
END: Final = "__end__"


def normalize_action(value: Any) -> str:
    """Normalize a finalize return value into an action.

    Args:
        value: Value returned by a node's finalize phase.

    Returns:
        The action string (None becomes DEFAULT_ACTION).

    Raises:
        TypeError: If the value is neither None nor a non-empty string.
    """
    if value is None:
        return DEFAULT_ACTION
    if isinstance(value, str) and value:
        return value
    raise TypeError(
        f"Action must be a non-empty string or None, got {type(value).__name__}: {value!r}"
    )
