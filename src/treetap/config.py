"""treetap configuration management."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from treetap.models import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_WORKERS,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_SCREEN_SIZE,
    DEFAULT_TAP_TIMEOUT_MS,
)


class TreeTapConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


@dataclass
class TreeTapConfig:
    """Host and executor settings for a treetap run."""

    project_dir: Path = field(default_factory=lambda: Path("."))

    # Host
    screen: tuple[int, int] | None = None  # None: use the host's own geometry
    tap_timeout_ms: int = DEFAULT_TAP_TIMEOUT_MS
    seed: int | None = None

    # Executor
    max_workers: int = DEFAULT_MAX_WORKERS

    # Rule defaults (applied when a rule leaves the field unset)
    delay_after_execution_ms: float | None = None
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay_ms: float = DEFAULT_RETRY_DELAY_MS

    @classmethod
    def from_file(cls, config_path: Path) -> TreeTapConfig:
        """Load config from a YAML file."""
        if not config_path.exists():
            raise TreeTapConfigError(
                f"Config file not found: {config_path}\n\n"
                "To fix: create it or drop the --config option"
            )
        with open(config_path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise TreeTapConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise TreeTapConfigError(f"Config file must be a YAML mapping: {config_path}")
        return cls._from_dict(data, config_path.parent)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], project_dir: Path) -> TreeTapConfig:
        """Create config from a dictionary."""
        config = cls()
        config.project_dir = project_dir

        try:
            if "screen" in data:
                screen = data["screen"]
                if not isinstance(screen, dict):
                    raise TreeTapConfigError("'screen' must be a mapping with width and height")
                config.screen = (
                    int(screen.get("width", DEFAULT_SCREEN_SIZE[0])),
                    int(screen.get("height", DEFAULT_SCREEN_SIZE[1])),
                )
            if "tap_timeout_ms" in data:
                config.tap_timeout_ms = int(data["tap_timeout_ms"])
            if data.get("seed") is not None:
                config.seed = int(data["seed"])
            if "max_workers" in data:
                config.max_workers = int(data["max_workers"])
            if data.get("delay_after_execution_ms") is not None:
                config.delay_after_execution_ms = float(data["delay_after_execution_ms"])
            if "max_retries" in data:
                config.max_retries = int(data["max_retries"])
            if "retry_delay_ms" in data:
                config.retry_delay_ms = float(data["retry_delay_ms"])
        except (TypeError, ValueError) as exc:
            raise TreeTapConfigError(f"Invalid config value: {exc}") from exc

        if config.max_workers < 1:
            raise TreeTapConfigError("max_workers must be at least 1")
        if config.max_retries < 1:
            raise TreeTapConfigError("max_retries must be at least 1")
        return config

    def apply_defaults(self, request: Any, raw: dict[str, Any] | None = None) -> Any:
        """Fill request fields that the rule mapping ``raw`` left unset.

        ``request`` is an ``ActionRequest``; only keys absent from ``raw``
        take the config value.
        """
        raw = raw or {}
        updates: dict[str, Any] = {}
        if request.delay_after_execution is None and self.delay_after_execution_ms is not None:
            updates["delay_after_execution"] = self.delay_after_execution_ms
        if not {"maxRetries", "max_retries"} & raw.keys():
            updates["max_retries"] = self.max_retries
        if not {"retryDelay", "retry_delay"} & raw.keys():
            updates["retry_delay"] = self.retry_delay_ms
        return dataclasses.replace(request, **updates) if updates else request
