"""treetap CLI -- Main Typer entry point.

Registers all subcommands and provides --version / --verbose global options.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console

from treetap import __version__

TAGLINE = "Find it by selector, tap it anyway."

console = Console()

# ── Version callback ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print("treetap", style="bold cyan")
        console.print(f"  {TAGLINE}", style="dim")
        console.print(f"  v{__version__}\n", style="bold")
        raise typer.Exit()


# ── Main app ──────────────────────────────────────────────────────────────

app = typer.Typer(
    name="treetap",
    help=f"treetap -- {TAGLINE}",
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show treetap version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (debug) logging.",
    ),
) -> None:
    """treetap -- selector-driven actions on accessibility node trees."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")


# ── Register subcommands ──────────────────────────────────────────────────
# Each subcommand is a separate module to keep this file lean.

from treetap.cli.query import query  # noqa: E402
from treetap.cli.run import run  # noqa: E402
from treetap.cli.validate import validate  # noqa: E402

app.command(name="query", help="Match a selector against a tree dump.")(query)
app.command(name="validate", help="Check a rule file without executing it.")(validate)
app.command(name="run", help="Execute a rule file against a tree dump on a simulated device.")(run)
