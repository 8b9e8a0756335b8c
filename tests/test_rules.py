"""Unit tests for treetap.rules — loading, validating and building rule requests."""

from __future__ import annotations

import pytest

from treetap.config import TreeTapConfig, TreeTapConfigError
from treetap.engine.errors import ParseError
from treetap.rules import build_requests, load_rule_data, validate_rules


def _issues(rules, severity=None, field=None):
    return [
        i for i in validate_rules(rules)
        if (severity is None or i["severity"] == severity) and (field is None or i["field"] == field)
    ]


# ---------------------------------------------------------------------------
# 1. load_rule_data()
# ---------------------------------------------------------------------------

class TestLoadRuleData:
    def test_rules_key(self, rules_file):
        data = load_rule_data(rules_file)
        assert [r["selector"] for r in data] == ["text=Skip", "id=missing", '[id="com.app:id/ok"]']

    def test_bare_list(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("- selector: vid=ok\n", encoding="utf-8")
        assert load_rule_data(path) == [{"selector": "vid=ok"}]

    def test_missing_file(self, tmp_path):
        with pytest.raises(TreeTapConfigError, match="not found"):
            load_rule_data(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("rules: [", encoding="utf-8")
        with pytest.raises(TreeTapConfigError, match="Invalid YAML"):
            load_rule_data(path)

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("selector: vid=ok\n", encoding="utf-8")
        with pytest.raises(TreeTapConfigError, match="list of rules"):
            load_rule_data(path)


# ---------------------------------------------------------------------------
# 2. validate_rules()
# ---------------------------------------------------------------------------

class TestValidateRules:
    def test_sample_rules_are_clean(self, rules_file):
        assert validate_rules(load_rule_data(rules_file)) == []

    def test_empty_rule_list_warns(self):
        issues = _issues([], severity="warning")
        assert len(issues) == 1
        assert issues[0]["rule"] == -1

    def test_missing_selector_is_error(self):
        issues = _issues([{"action": "back"}], severity="error", field="rule")
        assert len(issues) == 1
        assert issues[0]["rule"] == 0

    def test_bad_selector_is_error(self):
        issues = _issues([{"selector": "vid=ok"}, {"selector": "[foo=1]"}], severity="error")
        assert [i["rule"] for i in issues] == [1]
        assert issues[0]["field"] == "selector"
        assert "unknown attribute" in issues[0]["message"]

    def test_bad_position_is_error(self):
        issues = _issues([{"selector": "vid=ok", "position": {"left": "width ** 2"}}], severity="error")
        assert len(issues) == 1

    def test_unknown_action_warns(self):
        issues = _issues([{"selector": "vid=ok", "action": "wiggle"}], field="action")
        assert issues[0]["severity"] == "warning"

    def test_ineligible_fast_query_is_info(self):
        issues = _issues([{"selector": "[clickable=true]", "fastQuery": True}])
        assert [(i["severity"], i["field"]) for i in issues] == [("info", "fastQuery")]

    def test_non_numeric_delay_is_error(self):
        rules = [{"selector": "text=Skip", "delayAfterExecution": "soon"}, {"selector": "vid=ok"}]
        issues = _issues(rules, severity="error")
        assert [(i["rule"], i["field"]) for i in issues] == [(0, "rule")]
        assert "delayAfterExecution" in issues[0]["message"]

    def test_string_fast_query_flag_is_error(self):
        issues = _issues([{"selector": "vid=ok", "fastQuery": "false"}], severity="error")
        assert len(issues) == 1
        assert "fastQuery" in issues[0]["message"]

    def test_build_requests_rejects_non_numeric_delay(self):
        with pytest.raises(ParseError, match="delayAfterExecution"):
            build_requests([{"selector": "vid=ok", "delayAfterExecution": "soon"}])

    def test_zero_retries_is_error(self):
        issues = _issues([{"selector": "vid=ok", "maxRetries": 0}], field="maxRetries")
        assert issues[0]["severity"] == "error"


# ---------------------------------------------------------------------------
# 3. build_requests()
# ---------------------------------------------------------------------------

class TestBuildRequests:
    def test_builds_in_order(self, rules_file):
        requests = build_requests(load_rule_data(rules_file))
        assert [r.action for r in requests] == ["click", "click", "longClick"]
        assert requests[2].fast_query is True

    def test_config_defaults_applied(self):
        cfg = TreeTapConfig(delay_after_execution_ms=120, max_retries=2)
        requests = build_requests([{"selector": "vid=ok"}, {"selector": "vid=ok", "maxRetries": 5}], cfg)
        assert [r.delay_after_execution for r in requests] == [120, 120]
        assert [r.max_retries for r in requests] == [2, 5]
