"""Unit tests for configuration management."""

import pytest
from pathlib import Path

from protrade_app.config.defaults import ExitMethodParams, get_default_config
from protrade_app.config.loader import ConfigLoader, config_from_dict
from protrade_app.config.validation import ConfigValidator
from protrade_app.errors import ConfigurationError


class TestDefaultConfig:
    """Test suite for default configuration."""

    def test_default_config_creation(self) -> None:
        """Test that default configuration carries the documented defaults."""
        config = get_default_config()
        assert config.ai.weights == {"gpt": 35.0, "claude": 30.0, "gemini": 20.0}
        assert config.ai.technical_weight == 15.0
        assert config.dedup.lock_ttl_seconds == 1800
        assert config.exits.allocations == (40.0, 35.0, 25.0)
        assert config.position.taker_fee == 0.001

    def test_default_config_is_valid(self) -> None:
        """Test that the defaults pass validation."""
        ConfigValidator.ensure_valid(get_default_config())

    def test_default_exit_method_weights(self) -> None:
        """Test base weights of the take-profit methods."""
        methods = get_default_config().exits.methods
        assert methods["support_resistance"].weight == 30.0
        assert methods["volatility"].weight == 25.0
        assert all(m.enabled for m in methods.values())


class TestConfigLoader:
    """Test suite for configuration loader."""

    def test_config_loader_creation(self) -> None:
        """Test that ConfigLoader can be created with the repository config dir."""
        loader = ConfigLoader.create()
        assert isinstance(loader.config_dir, Path)
        assert loader.config_dir.name == "config"

    def test_merge_config_defaults_only(self, tmp_path) -> None:
        """Test config merging with no YAML files present."""
        loader = ConfigLoader.create(tmp_path)
        config = loader.merge_config("UNKNOWN-SYMBOL")

        assert config["capital"]["total_capital"] == 1000.0
        assert config["exits"]["tp_percents"] == [2.5, 4.5, 7.0]

    def test_merge_config_layers(self, tmp_path) -> None:
        """Test that symbol overrides beat settings and call overrides beat both."""
        (tmp_path / "settings.yaml").write_text(
            "dedup:\n  max_daily_signals: 5\n  lock_ttl_seconds: 600\n"
        )
        (tmp_path / "symbols.yaml").write_text(
            "symbols:\n  ETH-USDT:\n    dedup:\n      max_daily_signals: 2\n"
        )
        loader = ConfigLoader.create(tmp_path)

        merged = loader.merge_config("ETH-USDT")
        assert merged["dedup"]["max_daily_signals"] == 2
        assert merged["dedup"]["lock_ttl_seconds"] == 600

        merged = loader.merge_config("ETH-USDT", {"dedup": {"max_daily_signals": 9}})
        assert merged["dedup"]["max_daily_signals"] == 9
        # Untouched defaults remain
        assert merged["dedup"]["duplicate_window_seconds"] == 1800

    def test_load_builds_typed_config(self, tmp_path) -> None:
        """Test that load converts lists back to tuples and method dicts to params."""
        (tmp_path / "settings.yaml").write_text(
            "exits:\n  tp_percents: [3.0, 5.0, 8.0]\n"
            "  methods:\n    fibonacci:\n      enabled: false\n      weight: 15.0\n"
        )
        config = ConfigLoader.create(tmp_path).load()

        assert config.exits.tp_percents == (3.0, 5.0, 8.0)
        assert config.exits.methods["fibonacci"] == ExitMethodParams(enabled=False, weight=15.0)
        assert config.exits.methods["atr"].enabled is True

    def test_unknown_keys_ignored(self) -> None:
        """Test that unknown keys do not break config construction."""
        config = config_from_dict({"capital": {"total_capital": 500.0, "leverage": 10}})
        assert config.capital.total_capital == 500.0

    def test_repository_settings_load(self) -> None:
        """Test that the shipped YAML files load and validate."""
        config = ConfigLoader.create().load("SOL-USDT")
        ConfigValidator.ensure_valid(config)
        assert config.position.trailing_percent == 3.0


class TestConfigValidator:
    """Test suite for configuration validation."""

    def test_weights_summing_to_100_accepted(self) -> None:
        """Test that 35/30/20 plus technical 15 is valid."""
        params = {"weights": {"gpt": 35, "claude": 30, "gemini": 20}, "technical_weight": 15}
        assert ConfigValidator.validate_ai_params(params) == []

    def test_weights_within_tolerance_accepted(self) -> None:
        """Test that a sum of 104 is inside the +/-5 tolerance."""
        params = {"weights": {"gpt": 39, "claude": 30, "gemini": 20}, "technical_weight": 15}
        assert ConfigValidator.validate_ai_params(params) == []

    def test_weights_outside_tolerance_rejected(self) -> None:
        """Test that a sum of 120 is rejected."""
        params = {"weights": {"gpt": 50, "claude": 35, "gemini": 20}, "technical_weight": 15}
        errors = ConfigValidator.validate_ai_params(params)
        assert len(errors) == 1
        assert errors[0].field == "ai.weights"
        assert errors[0].value == 120

    def test_negative_weight_rejected(self) -> None:
        """Test that negative source weights are reported per source."""
        params = {"weights": {"gpt": -10, "claude": 30}, "technical_weight": 15}
        errors = ConfigValidator.validate_ai_params(params)
        assert errors[0].field == "ai.weights.gpt"

    def test_invalid_trade_amounts(self) -> None:
        """Test that min trade amount above max is rejected."""
        errors = ConfigValidator.validate_capital_params({"min_trade_amount": 60, "max_trade_amount": 50})
        assert len(errors) == 1
        assert errors[0].field == "capital.min_trade_amount"

    def test_invalid_tp_percents(self) -> None:
        """Test that non-increasing take-profit percentages are rejected."""
        errors = ConfigValidator.validate_exit_params({"tp_percents": [2.5, 2.0, 7.0]})
        assert len(errors) == 1
        assert errors[0].field == "exits.tp_percents"

    def test_allocations_over_100_rejected(self) -> None:
        """Test that allocations summing above 100% are rejected."""
        errors = ConfigValidator.validate_exit_params({"allocations": [50, 40, 30]})
        assert len(errors) == 1
        assert "exceed" in errors[0].message

    def test_invalid_dedup_values(self) -> None:
        """Test that non-integer dedup windows are rejected."""
        errors = ConfigValidator.validate_dedup_params({"lock_ttl_seconds": 0, "max_daily_signals": "6"})
        assert {e.field for e in errors} == {"dedup.lock_ttl_seconds", "dedup.max_daily_signals"}

    def test_invalid_taker_fee(self) -> None:
        """Test that a taker fee of 1 or more is rejected."""
        errors = ConfigValidator.validate_position_params({"taker_fee": 1.5})
        assert errors[0].field == "position.taker_fee"

    def test_ensure_valid_raises_on_bad_weights(self) -> None:
        """Test that invalid AI weights are fatal at startup."""
        config = config_from_dict({"ai": {"weights": {"gpt": 80.0, "claude": 30.0}}})

        with pytest.raises(ConfigurationError) as exc_info:
            ConfigValidator.ensure_valid(config)

        assert exc_info.value.errors
        assert exc_info.value.errors[0].field == "ai.weights"
        assert exc_info.value.recoverable is False
