"""Unit tests for treetap.config — TreeTapConfig and rule defaults."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from treetap.config import TreeTapConfig, TreeTapConfigError
from treetap.engine.executor import ActionRequest
from treetap.models import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_WORKERS,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_TAP_TIMEOUT_MS,
)


def _write(tmp_path: Path, data) -> Path:
    path = tmp_path / "treetap.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------

class TestTreeTapConfigDefaults:
    """TreeTapConfig should have sensible defaults for every field."""

    def test_screen_defers_to_host(self):
        assert TreeTapConfig().screen is None

    def test_tap_timeout_matches_models_constant(self):
        assert TreeTapConfig().tap_timeout_ms == DEFAULT_TAP_TIMEOUT_MS

    def test_executor_defaults(self):
        cfg = TreeTapConfig()
        assert cfg.max_workers == DEFAULT_MAX_WORKERS
        assert cfg.max_retries == DEFAULT_MAX_RETRIES
        assert cfg.retry_delay_ms == DEFAULT_RETRY_DELAY_MS

    def test_optional_fields_are_none(self):
        cfg = TreeTapConfig()
        assert cfg.seed is None
        assert cfg.delay_after_execution_ms is None


# ---------------------------------------------------------------------------
# 2. from_file()
# ---------------------------------------------------------------------------

class TestFromFile:
    def test_full_config(self, tmp_path):
        path = _write(tmp_path, {
            "screen": {"width": 720, "height": 1280},
            "tap_timeout_ms": 80,
            "seed": 3,
            "max_workers": 2,
            "delay_after_execution_ms": 250,
            "max_retries": 3,
            "retry_delay_ms": 400,
        })
        cfg = TreeTapConfig.from_file(path)

        assert cfg.project_dir == tmp_path
        assert cfg.screen == (720, 1280)
        assert cfg.tap_timeout_ms == 80
        assert cfg.seed == 3
        assert cfg.max_workers == 2
        assert cfg.delay_after_execution_ms == 250.0
        assert cfg.max_retries == 3
        assert cfg.retry_delay_ms == 400.0

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "treetap.yaml"
        path.write_text("", encoding="utf-8")
        cfg = TreeTapConfig.from_file(path)
        assert cfg.max_workers == DEFAULT_MAX_WORKERS
        assert cfg.screen is None

    def test_partial_screen_fills_default_axis(self, tmp_path):
        cfg = TreeTapConfig.from_file(_write(tmp_path, {"screen": {"width": 720}}))
        assert cfg.screen == (720, 2400)

    def test_missing_file(self, tmp_path):
        with pytest.raises(TreeTapConfigError, match="not found"):
            TreeTapConfig.from_file(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "treetap.yaml"
        path.write_text("screen: [unclosed", encoding="utf-8")
        with pytest.raises(TreeTapConfigError, match="Invalid YAML"):
            TreeTapConfig.from_file(path)

    def test_non_mapping(self, tmp_path):
        with pytest.raises(TreeTapConfigError, match="mapping"):
            TreeTapConfig.from_file(_write(tmp_path, [1, 2]))

    def test_bad_value_type(self, tmp_path):
        with pytest.raises(TreeTapConfigError, match="Invalid config value"):
            TreeTapConfig.from_file(_write(tmp_path, {"tap_timeout_ms": "fast"}))

    def test_screen_must_be_mapping(self, tmp_path):
        with pytest.raises(TreeTapConfigError, match="screen"):
            TreeTapConfig.from_file(_write(tmp_path, {"screen": [720, 1280]}))

    @pytest.mark.parametrize("key", ["max_workers", "max_retries"])
    def test_lower_bounds(self, tmp_path, key):
        with pytest.raises(TreeTapConfigError, match=key):
            TreeTapConfig.from_file(_write(tmp_path, {key: 0}))


# ---------------------------------------------------------------------------
# 3. apply_defaults()
# ---------------------------------------------------------------------------

class TestApplyDefaults:
    """Config values fill only what a rule left unset."""

    def test_fills_unset_fields(self):
        cfg = TreeTapConfig(delay_after_execution_ms=200, max_retries=3, retry_delay_ms=50)
        raw = {"selector": "text=Skip"}
        request = cfg.apply_defaults(ActionRequest.from_dict(raw), raw)

        assert request.delay_after_execution == 200
        assert request.max_retries == 3
        assert request.retry_delay == 50

    def test_rule_values_win(self):
        cfg = TreeTapConfig(delay_after_execution_ms=200, max_retries=3, retry_delay_ms=50)
        raw = {"selector": "text=Skip", "delayAfterExecution": 10, "maxRetries": 1, "retry_delay": 5}
        request = cfg.apply_defaults(ActionRequest.from_dict(raw), raw)

        assert request.delay_after_execution == 10
        assert request.max_retries == 1
        assert request.retry_delay == 5

    def test_returns_new_request(self):
        cfg = TreeTapConfig(max_retries=2)
        original = ActionRequest("text=Skip")
        updated = cfg.apply_defaults(original, {"selector": "text=Skip"})
        assert updated is not original
        assert original.max_retries == DEFAULT_MAX_RETRIES
