"""Graph file loading for the CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from synaptic.core.nodes.graph import Graph

DEFAULT_GRAPH_VARIABLE = "graph"


class GraphLoadError(Exception):
    """Raised when a graph file cannot be loaded."""


def load_graph_from_file(filepath: str | Path, variable: str = DEFAULT_GRAPH_VARIABLE) -> Graph:
    """Load a Graph defined in a Python file.

    The file is executed in a fresh namespace and must bind a Graph (or
    subclass) instance to `variable`:

        graph = Graph("qa")
        graph.register(Summarize(), "summarize", start=True) - "done" >> END

    Args:
        filepath: Path to the Python file.
        variable: Name of the variable holding the graph.

    Raises:
        GraphLoadError: If the file is missing, fails to execute, or does
            not define a graph under that name.
    """
    path = Path(filepath)
    try:
        code = path.read_text()
    except OSError as e:
        raise GraphLoadError(f"Cannot read {path}: {e}") from e

    namespace: dict[str, Any] = {"__name__": "__synaptic_graph__", "__file__": str(path)}
    try:
        exec(compile(code, str(path), "exec"), namespace)
    except Exception as e:
        raise GraphLoadError(f"Error executing {path}: {type(e).__name__}: {e}") from e

    if variable not in namespace:
        raise GraphLoadError(f"No {variable!r} variable found in {path}")
    graph = namespace[variable]
    if not isinstance(graph, Graph):
        raise GraphLoadError(
            f"{variable!r} in {path} is a {type(graph).__name__}, not a Graph"
        )
    return graph


def parse_json_object(value: str | None, option: str) -> dict[str, Any]:
    """Parse a JSON object given on the command line.

    Raises:
        GraphLoadError: If the value is not a JSON object.
    """
    if not value:
        return {}
    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        raise GraphLoadError(f"{option} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise GraphLoadError(f"{option} must be a JSON object, got {type(data).__name__}")
    return data
