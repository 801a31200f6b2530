"""Core - the workflow engine.

No CLI, no I/O, no configured logging; just the engine primitives:

Architecture:
    nodes/          Nodes, graphs, batch variants, errors, tracing
    config          EngineConfig (engine-wide defaults, env overrides)
    logging_config  configure_logging for applications
    validation      Identifier rules
"""

from synaptic.core.config import EngineConfig
from synaptic.core.nodes import *  # noqa: F403
from synaptic.core.nodes import __all__ as _nodes_all
from synaptic.core.validation import is_valid_identifier, validate_identifier

__all__ = [*_nodes_all, "EngineConfig", "is_valid_identifier", "validate_identifier"]
