"""CLI frontend for synaptic.

Commands:
    synaptic run        Run a graph defined in a Python file
    synaptic validate   Check a graph definition without running it

Example:
    $ synaptic validate workflows/qa.py
    $ synaptic run workflows/qa.py --shared '{"text": "short text"}' --trace
"""

from synaptic.frontends.cli.main import cli, main

__all__ = ["cli", "main"]
