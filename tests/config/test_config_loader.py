"""
Tests for billing configuration loading.

Covers the shipped default set, overrides from a custom YAML file, value
validation and the billing_config_loaded trace.
"""

import pytest
import yaml

from billing_config import (
    BillingConfig,
    NumberingScope,
    get_active_config,
)
from billing_config.loader import compute_checksum, parse_config


def _write_yaml(tmp_path, data) -> str:
    path = tmp_path / "billing.yaml"
    path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
    return str(path)


class TestDefaultConfig:
    """The shipped default set."""

    def test_loads_default_set(self):
        config = get_active_config()
        assert isinstance(config, BillingConfig)
        assert config.config_id == "default"
        assert config.default_currency == "EUR"
        assert config.numbering.default_prefix == "RE"
        assert config.numbering.scope == NumberingScope.FISCAL_YEAR
        assert config.numbering.pad_width == 4

    def test_matching_guard_off_by_default(self):
        """Any non-blank pattern matches unless a minimum length is configured."""
        assert get_active_config().matching.min_pattern_length == 0

    def test_retry_policy(self):
        retry = get_active_config().retry
        assert retry.max_attempts == 3
        assert retry.backoff_seconds == 0.5

    def test_checksum_is_stable(self):
        assert get_active_config().checksum == get_active_config().checksum

    def test_emits_loaded_trace(self, captured_logs):
        """Every load logs billing_config_loaded with id and checksum."""
        config = get_active_config()
        records = [r for r in captured_logs() if r["message"] == "billing_config_loaded"]
        assert records
        assert records[-1]["config_id"] == config.config_id
        assert records[-1]["checksum"] == config.checksum


class TestCustomConfig:
    def test_override_file(self, tmp_path):
        path = _write_yaml(
            tmp_path,
            {
                "config_id": "studio-ch",
                "version": 2,
                "default_currency": "chf",
                "numbering": {
                    "default_prefix": "INV",
                    "scope": "issuer",
                    "include_payer_abbreviation": True,
                    "pad_width": 5,
                },
                "matching": {"min_pattern_length": 3},
            },
        )
        config = get_active_config(path)
        assert config.config_id == "studio-ch"
        assert config.version == 2
        assert config.default_currency == "CHF"
        assert config.numbering.scope == NumberingScope.ISSUER
        assert config.numbering.include_payer_abbreviation
        assert config.numbering.pad_width == 5
        assert config.matching.min_pattern_length == 3

    def test_missing_sections_take_defaults(self, tmp_path):
        config = get_active_config(_write_yaml(tmp_path, {"config_id": "minimal"}))
        assert config.numbering == BillingConfig().numbering
        assert config.retry == BillingConfig().retry

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")


class TestValidation:
    """Invalid values raise ValueError with the offending key."""

    @pytest.mark.parametrize(
        "data",
        [
            {"numbering": {"scope": "monthly"}},
            {"numbering": {"pad_width": 0}},
            {"numbering": {"pad_width": "four"}},
            {"retry": {"max_attempts": 0}},
            {"retry": {"backoff_seconds": -1}},
            {"matching": {"min_pattern_length": -1}},
            {"matching": {"ambiguity_tiebreak": "random"}},
            {"default_currency": "XXX"},
            {"version": True},
        ],
    )
    def test_invalid_values(self, data):
        with pytest.raises(ValueError):
            parse_config(data)

    def test_not_a_mapping(self):
        with pytest.raises(ValueError):
            parse_config(["numbering"])


class TestChecksum:
    def test_key_order_independent(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_changes_with_content(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})
