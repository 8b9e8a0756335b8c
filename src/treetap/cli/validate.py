"""treetap validate -- Parse and check a rule file without executing it.

Parses every rule's selector and position, flags unknown actions and
fast-query flags that cannot take effect.  Nothing is executed.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from treetap.config import TreeTapConfigError
from treetap.rules import load_rule_data, validate_rules

console = Console(stderr=True)

# ── Severity ordering ─────────────────────────────────────────────────────

_SEVERITY_ORDER = {"error": 0, "warning": 1, "info": 2}


def _sev_style(severity: str) -> str:
    return {"error": "bold red", "warning": "yellow", "info": "dim"}.get(severity, "")


def validate(
    rules: Path = typer.Argument(..., help="Rule file (YAML)."),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Exit 1 on warnings as well as errors (default: exit 1 on errors only).",
    ),
) -> None:
    """Validate RULES without executing them.

    \b
    Examples:
      treetap validate rules.yaml
      treetap validate rules.yaml --strict
    """
    try:
        raw_rules = load_rule_data(rules)
    except TreeTapConfigError as exc:
        console.print(Panel(f"[red]{escape(str(exc))}[/red]", title="[red]Cannot Load Rules[/red]", border_style="red"))
        raise typer.Exit(code=2)

    issues = sorted(validate_rules(raw_rules), key=lambda i: (_SEVERITY_ORDER[i["severity"]], i["rule"]))
    errors = sum(1 for i in issues if i["severity"] == "error")
    warnings = sum(1 for i in issues if i["severity"] == "warning")

    for issue in issues:
        where = f"rule {issue['rule']}" if issue["rule"] >= 0 else "file"
        style = _sev_style(issue["severity"])
        console.print(f"[{style}]{issue['severity'].upper():7}[/{style}] {where} {issue['field']}: {escape(issue['message'])}")

    summary = f"{len(raw_rules)} rule(s), {errors} error(s), {warnings} warning(s)"
    if errors or (strict and warnings):
        console.print(f"[red]✗[/red] {summary}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] {summary}")
