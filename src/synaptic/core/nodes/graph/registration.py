"""Registration - a node as placed into one graph.

The same node instance may be registered into several graphs (or several
times into one graph under different ids); per-placement configuration lives
here, not on the node.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from synaptic.core.nodes.store import Params

if TYPE_CHECKING:
    from synaptic.core.nodes.base import Node


@dataclass(frozen=True)
class Registration:
    """A node registered into a graph.

    Attributes:
        node_id: Id unique within the graph.
        node: The node to run.
        params: Per-registration params, derived over the run params.
    """

    node_id: str
    node: Node
    params: Params = field(default_factory=Params)

    @property
    def node_type(self) -> str:
        return self.node.node_type

    @property
    def declared_actions(self) -> tuple[str, ...]:
        """Actions the node declares it may emit (empty if undeclared)."""
        return tuple(self.node.actions or ())
