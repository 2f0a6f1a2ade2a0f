"""
Rule Configuration Tests

Tests loading, validation, aliasing and atomic reload of scoring rules.
"""

import json

import pytest

from core.rules import ConfigurationError, RuleConfig, RuleStore, load_rules, parse_rules


def write_rules(path, document) -> str:
    path.write_text(json.dumps(document), encoding="utf-8")
    return str(path)


class TestLoadRules:
    """load_rules() validates the file up front."""

    def test_shipped_rules_load(self, shipped_rules):
        assert shipped_rules.country_blocklist["KP"] == 50
        assert shipped_rules.ipqs_fraud_multiplier == 0.3
        assert shipped_rules.decision_thresholds.deny == 80
        assert shipped_rules.decision_thresholds.challenge == 40
        assert shipped_rules.challenge_rules is not None

    def test_ua_pattern_order_preserved(self, shipped_rules):
        patterns = list(shipped_rules.ua_bot_patterns)
        assert patterns[0] == "HeadlessChrome"
        assert patterns.index("Playwright") < patterns.index("bot")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_rules(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid scoring rules JSON"):
            load_rules(path)

    @pytest.mark.parametrize("document", [{}, [], "rules", 42, None])
    def test_empty_or_non_object(self, tmp_path, document):
        path = write_rules(tmp_path / "rules.json", document)
        with pytest.raises(ConfigurationError):
            load_rules(path)

    def test_inverted_thresholds_rejected(self, tmp_path):
        path = write_rules(tmp_path / "rules.json", {"decision_thresholds": {"deny": 30, "challenge": 60}})
        with pytest.raises(ConfigurationError):
            load_rules(path)

    @pytest.mark.parametrize("text", [
        '{"decision_thresholds": {"deny": NaN, "challenge": NaN}}',
        '{"decision_thresholds": {"deny": Infinity, "challenge": 40}}',
        '{"country_blocklist": {"KP": NaN}}',
        '{"ipqs_fraud_multiplier": -Infinity}',
        '{"challenge_rules": {"webdriver_penalty": NaN}}',
        '{"time_based_scoring": {"enabled": true, "weight": Infinity}}',
    ])
    def test_non_finite_numbers_rejected(self, tmp_path, text):
        """JSON NaN/Infinity literals never reach the scorer or the thresholds."""
        path = tmp_path / "rules.json"
        path.write_text(text, encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_rules(path)

    def test_wrong_weight_type_rejected(self):
        with pytest.raises(ConfigurationError):
            parse_rules({"country_blocklist": {"KP": "lots"}})

    def test_unknown_keys_ignored(self):
        rules = parse_rules({"country_blocklist": {"KP": 50}, "comment": "tuned weekly"})
        assert rules.country_blocklist == {"KP": 50}


class TestRuleConfig:
    """Defaults and aliases."""

    def test_defaults(self):
        rules = RuleConfig()

        assert rules.ipqs_vpn_weight is None
        assert rules.ipqs_fraud_multiplier is None
        assert rules.rate_limit_penalty == 50
        assert rules.challenge_rules is None
        assert rules.challenge_bonus == 20
        assert rules.expected_timezones is None

    def test_short_fraud_multiplier_alias(self):
        assert parse_rules({"fraud_multiplier": 0.4}).ipqs_fraud_multiplier == 0.4

    def test_long_fraud_multiplier_name(self):
        assert parse_rules({"ipqs_fraud_multiplier": 0.2}).ipqs_fraud_multiplier == 0.2

    def test_snapshot_is_immutable(self):
        rules = RuleConfig()
        with pytest.raises(Exception):
            rules.rate_limit_penalty = 10


class TestRuleStore:
    """Snapshot swap on reload."""

    def test_reload_swaps_snapshot(self, tmp_path):
        path = write_rules(tmp_path / "rules.json", {"country_blocklist": {"KP": 50}})
        store = RuleStore(path)
        before = store.current

        write_rules(tmp_path / "rules.json", {"country_blocklist": {"KP": 70}})
        store.reload()

        assert store.current.country_blocklist["KP"] == 70
        assert before.country_blocklist["KP"] == 50

    def test_failed_reload_keeps_previous_snapshot(self, tmp_path):
        path = write_rules(tmp_path / "rules.json", {"country_blocklist": {"KP": 50}})
        store = RuleStore(path)

        (tmp_path / "rules.json").write_text("{broken", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            store.reload()

        assert store.current.country_blocklist["KP"] == 50

    def test_construction_fails_on_bad_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            RuleStore(tmp_path / "missing.json")

    def test_from_rules(self):
        rules = RuleConfig(challenge_bonus=5)
        assert RuleStore.from_rules(rules).current is rules
