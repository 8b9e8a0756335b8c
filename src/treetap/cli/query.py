"""treetap query -- Match a selector against a tree dump and show the result."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from treetap.engine.errors import ParseError
from treetap.engine.node import NodeSnapshot
from treetap.engine.selector import MatchOption, Selector
from treetap.engine.sim_device import SimDevice

console = Console()
err_console = Console(stderr=True)


def _node_table(snapshots: list[NodeSnapshot]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Class")
    table.add_column("Id")
    table.add_column("Text")
    table.add_column("Bounds")
    table.add_column("Clickable", justify="center")
    for i, snap in enumerate(snapshots):
        table.add_row(
            str(i),
            snap.class_name,
            escape(snap.view_id or ""),
            escape(snap.text or ""),
            ", ".join(f"{v:g}" for v in snap.bounds.as_list()),
            "yes" if snap.clickable else "",
        )
    return table


def query(
    snapshot: Path = typer.Argument(..., help="Tree dump (YAML or JSON).", exists=True, dir_okay=False),
    selector: str = typer.Argument(..., help="Selector to match."),
    fast: bool = typer.Option(False, "--fast", help="Use fast query where the selector allows it."),
    all_matches: bool = typer.Option(False, "--all", "-a", help="Show every match, not just the first."),
) -> None:
    """Match SELECTOR against the tree in SNAPSHOT.

    Exit codes: 0 match found, 1 no match, 2 invalid selector or dump.

    \b
    Examples:
      treetap query dump.yaml 'text=Skip'
      treetap query dump.json '[clickable=true] > TextView' --all
    """
    try:
        parsed = Selector.parse(selector)
    except ParseError as exc:
        err_console.print(Panel(f"[red]{escape(str(exc))}[/red]", title="[red]Invalid Selector[/red]", border_style="red"))
        raise typer.Exit(code=2)

    try:
        device = SimDevice.from_file(snapshot)
    except (OSError, TypeError, ValueError) as exc:
        err_console.print(Panel(f"[red]{escape(str(exc))}[/red]", title="[red]Invalid Tree Dump[/red]", border_style="red"))
        raise typer.Exit(code=2)

    root = device.root()
    if root is None:
        err_console.print("[yellow]Tree dump has no root node.[/yellow]")
        raise typer.Exit(code=1)

    option = MatchOption(fast_query=fast)
    if all_matches:
        nodes = list(parsed.match_all(root, option))
    else:
        first = parsed.match(root, option)
        nodes = [first] if first is not None else []

    if not nodes:
        err_console.print(f"[yellow]No node matched[/yellow] {escape(selector)}")
        raise typer.Exit(code=1)

    console.print(_node_table([NodeSnapshot.capture(n) for n in nodes]))
    if fast and not parsed.fast_query_eligible:
        console.print("[dim]Selector not eligible for fast query; full traversal used.[/dim]")
