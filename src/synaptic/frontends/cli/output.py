"""Output formatting utilities for CLI commands."""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping
from typing import Any, NoReturn

import rich_click as click
from rich.console import Console
from rich.table import Table

from synaptic.core.nodes.trace import ExecutionTrace

console = Console()


def output_json(data: Any, indent: int = 2) -> None:
    """Output data as formatted JSON. Values JSON cannot encode are repr'd."""
    click.echo(json.dumps(data, indent=indent, default=repr))


def print_shared(shared: Mapping[str, Any]) -> None:
    """Pretty-print the final shared store."""
    console.print_json(json.dumps(dict(shared), default=repr))


def print_trace(trace: ExecutionTrace) -> None:
    """Print one row per step of a run."""
    table = Table(title=f"{trace.graph_id} ({trace.status})", title_justify="left")
    table.add_column("#", justify="right", style="dim")
    table.add_column("step")
    table.add_column("type", style="dim")
    table.add_column("index", justify="right")
    table.add_column("attempts", justify="right")
    table.add_column("action", style="cyan")
    table.add_column("ms", justify="right", style="dim")

    for number, step in enumerate(trace.steps, 1):
        action = step.action or ""
        if step.fell_back:
            action = f"{action} (fallback)"
        if step.error:
            action = "[red]failed[/red]"
        table.add_row(
            str(number),
            step.step_id,
            step.node_type,
            "" if step.index is None else str(step.index),
            str(step.attempts) if step.attempts else "",
            action,
            f"{step.duration_ms:.1f}" if step.duration_ms is not None else "",
        )
    console.print(table)
    if trace.exit_action:
        console.print(f"exit action: [cyan]{trace.exit_action}[/cyan]")


def error_exit(message: str, code: int = 1) -> NoReturn:
    """Print error message and exit with code."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)
