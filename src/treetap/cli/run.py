"""treetap run -- Execute a rule file as a batch against a simulated device.

Loads a tree dump into a ``SimDevice``, runs every rule through the
``RuleExecutor`` in order, and prints per-rule results plus the batch
aggregate.  ``--json`` prints machine-readable results on stdout.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from treetap.config import TreeTapConfig, TreeTapConfigError
from treetap.engine.errors import ParseError
from treetap.engine.executor import ExecutionResult, ImmediateDelivery, RuleExecutor
from treetap.engine.sim_device import SimDevice, SimPrivilegedTapper
from treetap.rules import build_requests, load_rule_data

console = Console(stderr=True)
output_console = Console()  # stdout for machine-readable output

logger = logging.getLogger("treetap.cli.run")


def _print_error(message: str, title: str = "Error") -> None:
    console.print(Panel(f"[red]{escape(message)}[/red]", title=f"[red]{title}[/red]", border_style="red"))


def _results_table(results: list[ExecutionResult]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Selector")
    table.add_column("Action")
    table.add_column("Result", justify="center")
    table.add_column("Message")
    for i, result in enumerate(results):
        mark = "[green]✓[/green]" if result.success else "[red]✗[/red]"
        table.add_row(str(i + 1), escape(result.selector), escape(result.action), mark, escape(result.message))
    return table


def run(
    snapshot: Path = typer.Argument(..., help="Tree dump (YAML or JSON).", exists=True, dir_okay=False),
    rules: Path = typer.Argument(..., help="Rule file (YAML)."),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="treetap config YAML."),
    privileged: bool = typer.Option(
        False,
        "--privileged",
        help="Simulate an available privileged tap service.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON on stdout."),
) -> None:
    """Run RULES against the tree in SNAPSHOT.

    Exit codes: 0 every rule succeeded, 1 at least one failed, 2 bad input.

    \b
    Examples:
      treetap run dump.yaml rules.yaml
      treetap run dump.yaml rules.yaml --config treetap.yaml --json
    """
    try:
        config = TreeTapConfig.from_file(config_path) if config_path else TreeTapConfig()
        requests = build_requests(load_rule_data(rules), config)
    except (TreeTapConfigError, ParseError, TypeError, ValueError) as exc:
        _print_error(str(exc), title="Invalid Input")
        raise typer.Exit(code=2)

    try:
        device = SimDevice.from_file(snapshot, screen=config.screen)
    except (OSError, TypeError, ValueError) as exc:
        _print_error(str(exc), title="Invalid Tree Dump")
        raise typer.Exit(code=2)

    tapper = SimPrivilegedTapper() if privileged else None
    context = device.context(privileged=tapper, tap_timeout=config.tap_timeout_ms, seed=config.seed)

    logger.info("Running %d rule(s) from %s", len(requests), rules)
    with RuleExecutor(context, delivery=ImmediateDelivery(), max_workers=config.max_workers) as executor:
        results = executor.execute_rules(requests).result()

    aggregate = results[-1]
    if as_json:
        output_console.print_json(json.dumps({
            "results": [r.to_dict() for r in results[:-1]],
            "summary": aggregate.to_dict(),
            "gestures": len(device.gestures),
            "privileged_taps": len(tapper.taps) if tapper else 0,
        }))
    else:
        console.print(_results_table(results[:-1]))
        style = "green" if aggregate.success else "red"
        console.print(f"[{style}]{aggregate.message}[/{style}]")

    if not aggregate.success:
        raise typer.Exit(code=1)
