"""CLI entry point."""

from __future__ import annotations

import asyncio

import rich_click as click
from dotenv import load_dotenv
from rich.table import Table

from synaptic.core.logging_config import LOG_LEVELS, configure_logging
from synaptic.core.nodes.budget import Budget
from synaptic.core.nodes.errors import FlowError
from synaptic.core.nodes.graph import AsyncGraph, Graph
from synaptic.core.nodes.trace import ExecutionTrace
from synaptic.frontends.cli.loader import (
    DEFAULT_GRAPH_VARIABLE,
    GraphLoadError,
    load_graph_from_file,
    parse_json_object,
)
from synaptic.frontends.cli.output import (
    console,
    error_exit,
    output_json,
    print_shared,
    print_trace,
)

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = "Try running '--help' for more information."
click.rich_click.ERRORS_EPILOGUE = ""
click.rich_click.MAX_WIDTH = 100


def _load(file: str, graph_name: str) -> Graph:
    try:
        return load_graph_from_file(file, graph_name)
    except GraphLoadError as e:
        error_exit(str(e), code=2)


@click.group()
@click.version_option(package_name="synaptic")
def cli() -> None:
    """synaptic - node/flow workflow engine.

    Graphs are defined in Python files that bind a Graph to a variable
    (default `graph`).

    **Commands:**

        synaptic run        Run a graph and print the final shared store

        synaptic validate   Check a graph definition without running it
    """


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--graph", "-g", "graph_name", default=DEFAULT_GRAPH_VARIABLE, help="Variable holding the graph"
)
@click.option(
    "--shared", "-s", "shared_json", default=None, help="Initial shared store (JSON object)"
)
@click.option("--params", "-p", "params_json", default=None, help="Run params (JSON object)")
@click.option(
    "--max-steps", type=click.IntRange(min=1), default=None, help="Step guard for the run"
)
@click.option("--trace", "-t", "show_trace", is_flag=True, help="Show the visited steps")
@click.option("--json", "-j", "json_output", is_flag=True, help="Output as JSON")
@click.option(
    "--env-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Load environment variables before loading the graph",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log level (default: SYNAPTIC_LOG_LEVEL or WARNING)",
)
def run(
    file: str,
    graph_name: str,
    shared_json: str | None,
    params_json: str | None,
    max_steps: int | None,
    show_trace: bool,
    json_output: bool,
    env_file: str | None,
    log_level: str | None,
) -> None:
    """Run a graph defined in a Python file.

    The final shared store is printed when the run completes.

    **Examples:**

        synaptic run qa.py --shared '{"text": "short text"}'

        synaptic run batch.py --graph greet_all --trace

        synaptic run loop.py --max-steps 50 --json
    """
    if env_file:
        load_dotenv(env_file)
    configure_logging(level=log_level, force=True)

    try:
        shared = parse_json_object(shared_json, "--shared")
        params = parse_json_object(params_json, "--params")
    except GraphLoadError as e:
        error_exit(str(e), code=2)
    graph = _load(file, graph_name)

    trace = ExecutionTrace()
    budget = Budget(max_steps=max_steps) if max_steps is not None else None
    error: FlowError | None = None
    try:
        if isinstance(graph, AsyncGraph):
            asyncio.run(graph.run_async(shared, params, trace=trace, budget=budget))
        else:
            graph.run(shared, params, trace=trace, budget=budget)
    except FlowError as e:
        error = e

    if json_output:
        output_json(
            {
                "graph": graph.id,
                "success": error is None,
                "error": str(error) if error else None,
                "shared": shared,
                "trace": trace.to_dict() if show_trace else None,
            }
        )
    else:
        if show_trace:
            print_trace(trace)
        if error is None:
            print_shared(shared)

    if error is not None:
        error_exit(str(error))


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--graph", "-g", "graph_name", default=DEFAULT_GRAPH_VARIABLE, help="Variable holding the graph"
)
@click.option("--json", "-j", "json_output", is_flag=True, help="Output as JSON")
def validate(file: str, graph_name: str, json_output: bool) -> None:
    """Check a graph definition without running it.

    Exits non-zero when problems are found.

    **Examples:**

        synaptic validate qa.py

        synaptic validate flows.py --graph review
    """
    graph = _load(file, graph_name)
    problems = graph.validate()

    if json_output:
        output_json(
            {
                "graph": graph.id,
                "valid": not problems,
                "problems": problems,
                "nodes": graph.list_nodes(),
                "transitions": [list(edge) for edge in graph.transitions.edges()],
            }
        )
    else:
        table = Table(title=f"{graph.id} (start: {graph.start})", title_justify="left")
        table.add_column("source")
        table.add_column("action", style="cyan")
        table.add_column("target")
        for source, action, target in graph.transitions.edges():
            table.add_row(source, action, target)
        console.print(table)
        for problem in problems:
            console.print(f"[red]✗[/red] {problem}")
        if not problems:
            console.print(
                f"[green]✓[/green] {len(graph)} nodes, {len(graph.transitions)} transitions"
            )

    if problems:
        raise SystemExit(1)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
