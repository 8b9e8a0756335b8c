"""Rule file loading and validation.

A rule file is YAML: either a list of rule mappings or a mapping with a
``rules`` list.  Each rule becomes one ``ActionRequest``::

    rules:
      - selector: 'text=Skip'
      - selector: '[id="com.app:id/close"]'
        action: clickCenter
        position: {left: 0.9, top: 0.5}
        delayAfterExecution: 300
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from treetap.config import TreeTapConfig, TreeTapConfigError
from treetap.engine.actions import ActionKind
from treetap.engine.errors import ParseError
from treetap.engine.executor import ActionRequest
from treetap.engine.selector import Selector


def load_rule_data(path: Path) -> list[dict[str, Any]]:
    """Read the raw rule mappings from ``path``."""
    if not path.exists():
        raise TreeTapConfigError(f"Rule file not found: {path}")
    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise TreeTapConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("rules")
    if not isinstance(data, list):
        raise TreeTapConfigError(f"Rule file must contain a list of rules (or a 'rules' list): {path}")
    return data


def validate_rules(rules: list[Any]) -> list[dict[str, Any]]:
    """Check every rule without executing anything.  Returns issue dicts."""
    issues: list[dict[str, Any]] = []

    def add(severity: str, index: int, field: str, message: str) -> None:
        issues.append({"severity": severity, "rule": index, "field": field, "message": message})

    if not rules:
        add("warning", -1, "rules", "Rule file contains no rules")

    for index, raw in enumerate(rules):
        try:
            request = ActionRequest.from_dict(raw)
        except (ParseError, TypeError, ValueError) as exc:
            add("error", index, "rule", str(exc))
            continue

        try:
            selector = Selector.parse(request.selector)
        except ParseError as exc:
            add("error", index, "selector", f"{request.selector!r}: {exc}")
            continue

        if request.action not in ActionKind.names():
            add("warning", index, "action", f"Unknown action {request.action!r}; 'click' will be used")
        if request.fast_query and not selector.fast_query_eligible:
            add(
                "info",
                index,
                "fastQuery",
                "Selector has no top-level id/text predicate on its target; full traversal will be used",
            )
        if request.max_retries < 1:
            add("error", index, "maxRetries", "maxRetries must be at least 1")
    return issues


def build_requests(rules: list[dict[str, Any]], config: TreeTapConfig | None = None) -> list[ActionRequest]:
    """Turn raw rules into requests, filling unset fields from ``config``."""
    requests = []
    for raw in rules:
        request = ActionRequest.from_dict(raw)
        if config is not None:
            request = config.apply_defaults(request, raw)
        requests.append(request)
    return requests
