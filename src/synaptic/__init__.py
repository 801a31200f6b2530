"""synaptic - a small node/flow workflow engine.

Work is split into nodes with a three-phase lifecycle (prepare, execute,
finalize). Graphs connect nodes by the actions they return and thread one
shared store through every step.

Layers:
    core/       Engine (nodes, graphs, batch flows, errors, tracing)
    frontends/  User interfaces (CLI)

Quick Start:
    >>> from synaptic import END, Graph, Node
    >>>
    >>> class Summarize(Node):
    ...     def prepare(self, shared, params):
    ...         return shared["text"]
    ...
    ...     def execute(self, text):
    ...         return text[:40]
    ...
    ...     def finalize(self, shared, params, summary):
    ...         shared["summary"] = summary
    ...         return "done"
    >>>
    >>> graph = Graph("qa")
    >>> graph.register(Summarize(), "summarize", start=True) - "done" >> END
    >>> graph.run({"text": "short text"})["summary"]
    'short text'
"""

from synaptic.__version__ import __version__
from synaptic.core import *  # noqa: F403
from synaptic.core import __all__ as _core_all

__all__ = ["__version__", *_core_all]
