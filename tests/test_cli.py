"""Integration tests for the treetap CLI — query, validate and run commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from treetap import __version__
from treetap.cli.app import app

runner = CliRunner()


@pytest.fixture
def good_rules_file(tmp_path: Path) -> Path:
    path = tmp_path / "good.yaml"
    path.write_text(
        yaml.safe_dump({"rules": [{"selector": "text=Skip"}, {"selector": "vid=close", "action": "clickNode"}]}),
        encoding="utf-8",
    )
    return path


# ---------------------------------------------------------------------------
# 1. Global options
# ---------------------------------------------------------------------------

class TestGlobalOptions:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "query" in result.output
        assert "run" in result.output


# ---------------------------------------------------------------------------
# 2. treetap query
# ---------------------------------------------------------------------------

class TestQueryCommand:
    def test_match_found(self, dump_file):
        result = runner.invoke(app, ["query", str(dump_file), "text=Skip"])
        assert result.exit_code == 0
        assert "Skip" in result.output

    def test_fast_query(self, dump_file):
        result = runner.invoke(app, ["query", str(dump_file), '[id="com.app:id/ok"]', "--fast"])
        assert result.exit_code == 0
        assert "OK" in result.output

    def test_all_matches(self, dump_file):
        result = runner.invoke(app, ["query", str(dump_file), "ListView TextView", "--all"])
        assert result.exit_code == 0
        assert result.output.count("Item") >= 2

    def test_no_match_exits_1(self, dump_file):
        result = runner.invoke(app, ["query", str(dump_file), "id=missing"])
        assert result.exit_code == 1

    def test_invalid_selector_exits_2(self, dump_file):
        result = runner.invoke(app, ["query", str(dump_file), "[foo=1]"])
        assert result.exit_code == 2

    def test_invalid_dump_exits_2(self, tmp_path):
        bad = tmp_path / "dump.yaml"
        bad.write_text("- just\n- a list\n", encoding="utf-8")
        result = runner.invoke(app, ["query", str(bad), "text=Skip"])
        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# 3. treetap validate
# ---------------------------------------------------------------------------

class TestValidateCommand:
    def test_clean_rules(self, rules_file):
        result = runner.invoke(app, ["validate", str(rules_file)])
        assert result.exit_code == 0
        assert "3 rule(s), 0 error(s)" in result.output

    def test_errors_exit_1(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("- selector: '[foo=1]'\n", encoding="utf-8")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1
        assert "ERROR" in result.output

    def test_warnings_pass_unless_strict(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("- selector: vid=ok\n  action: wiggle\n", encoding="utf-8")
        assert runner.invoke(app, ["validate", str(path)]).exit_code == 0
        assert runner.invoke(app, ["validate", str(path), "--strict"]).exit_code == 1

    def test_unreadable_file_exits_2(self, tmp_path):
        result = runner.invoke(app, ["validate", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# 4. treetap run
# ---------------------------------------------------------------------------

class TestRunCommand:
    def test_partial_failure_exits_1(self, dump_file, rules_file):
        result = runner.invoke(app, ["run", str(dump_file), str(rules_file)])
        assert result.exit_code == 1
        assert "2/3 succeeded" in result.output

    def test_all_succeed_exits_0(self, dump_file, good_rules_file):
        result = runner.invoke(app, ["run", str(dump_file), str(good_rules_file)])
        assert result.exit_code == 0
        assert "2/2 succeeded" in result.output

    def test_json_output(self, dump_file, rules_file):
        result = runner.invoke(app, ["run", str(dump_file), str(rules_file), "--json"])
        data = json.loads(result.stdout)

        assert [r["success"] for r in data["results"]] == [True, False, True]
        assert data["results"][1]["message"] == "no node matched selector: id=missing"
        assert data["summary"]["message"] == "2/3 succeeded"
        assert data["gestures"] == 1
        assert data["privileged_taps"] == 0

    def test_privileged_service(self, dump_file, good_rules_file):
        result = runner.invoke(app, ["run", str(dump_file), str(good_rules_file), "--json", "--privileged"])
        data = json.loads(result.stdout)
        assert data["privileged_taps"] == 1
        assert data["gestures"] == 0

    def test_config_applied(self, tmp_path, dump_file, good_rules_file):
        config = tmp_path / "treetap.yaml"
        config.write_text("tap_timeout_ms: 50\nseed: 1\n", encoding="utf-8")
        result = runner.invoke(app, ["run", str(dump_file), str(good_rules_file), "-c", str(config)])
        assert result.exit_code == 0

    def test_bad_config_exits_2(self, tmp_path, dump_file, rules_file):
        config = tmp_path / "treetap.yaml"
        config.write_text("max_workers: 0\n", encoding="utf-8")
        result = runner.invoke(app, ["run", str(dump_file), str(rules_file), "-c", str(config)])
        assert result.exit_code == 2

    def test_bad_rules_exits_2(self, tmp_path, dump_file):
        path = tmp_path / "rules.yaml"
        path.write_text("- action: back\n", encoding="utf-8")
        result = runner.invoke(app, ["run", str(dump_file), str(path)])
        assert result.exit_code == 2

    def test_non_numeric_delay_exits_2(self, tmp_path, dump_file):
        path = tmp_path / "rules.yaml"
        path.write_text(
            "- selector: text=Skip\n  delayAfterExecution: soon\n- selector: vid=ok\n",
            encoding="utf-8",
        )
        result = runner.invoke(app, ["run", str(dump_file), str(path)])
        assert result.exit_code == 2
        assert result.exception is None or isinstance(result.exception, SystemExit)

    def test_dump_screen_must_be_mapping(self, tmp_path, rules_file):
        dump = tmp_path / "dump.yaml"
        dump.write_text(
            yaml.safe_dump({"screen": [1080, 2400], "root": {"class": "android.widget.FrameLayout"}}),
            encoding="utf-8",
        )
        result = runner.invoke(app, ["run", str(dump), str(rules_file)])
        assert result.exit_code == 2
        assert result.exception is None or isinstance(result.exception, SystemExit)
