"""Configuration validation utilities."""

from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Union

import structlog

from ..errors import ConfigurationError
from .defaults import AppConfig

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    value: Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigValidator:
    """Validates configuration parameters."""

    @staticmethod
    def validate_ai_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate AI weights and confidence floors."""
        errors = []

        weights = params.get("weights", {})
        technical_weight = params.get("technical_weight", 0)
        tolerance = params.get("weight_tolerance", 5)

        if not isinstance(weights, dict) or not weights:
            errors.append(ValidationError(
                field="ai.weights",
                message="Must be a non-empty mapping of source to weight",
                value=weights
            ))
        else:
            for source, weight in weights.items():
                if not _is_number(weight) or weight < 0:
                    errors.append(ValidationError(
                        field=f"ai.weights.{source}",
                        message="Must be a non-negative number",
                        value=weight
                    ))

            if not errors and _is_number(technical_weight):
                total = sum(weights.values()) + technical_weight
                if abs(total - 100) > tolerance:
                    errors.append(ValidationError(
                        field="ai.weights",
                        message=f"AI and technical weights must sum to 100 (+/- {tolerance})",
                        value=total
                    ))

        for key in ("min_confidence", "confidence_buffer"):
            if key in params:
                value = params[key]
                if not _is_number(value) or value < 0 or value > 100:
                    errors.append(ValidationError(
                        field=f"ai.{key}",
                        message="Must be a number between 0 and 100",
                        value=value
                    ))

        if "opinion_timeout_seconds" in params:
            value = params["opinion_timeout_seconds"]
            if not _is_number(value) or value <= 0:
                errors.append(ValidationError(
                    field="ai.opinion_timeout_seconds",
                    message="Must be a positive number",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_capital_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate capital and risk settings."""
        errors = []

        for key in ("total_capital", "risk_per_trade", "min_trade_amount",
                    "max_trade_amount", "stop_loss_percent", "take_profit_percent"):
            if key in params:
                value = params[key]
                if not _is_number(value) or value <= 0:
                    errors.append(ValidationError(
                        field=f"capital.{key}",
                        message="Must be a positive number",
                        value=value
                    ))

        min_amount = params.get("min_trade_amount")
        max_amount = params.get("max_trade_amount")
        if _is_number(min_amount) and _is_number(max_amount) and min_amount > max_amount:
            errors.append(ValidationError(
                field="capital.min_trade_amount",
                message="Must not exceed max_trade_amount",
                value=min_amount
            ))

        return errors

    @staticmethod
    def validate_threshold_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate acceptance thresholds."""
        errors = []

        for regime, value in (params.get("regime_min_confidence") or {}).items():
            if not _is_number(value) or value < 0 or value > 100:
                errors.append(ValidationError(
                    field=f"thresholds.regime_min_confidence.{regime}",
                    message="Must be a number between 0 and 100",
                    value=value
                ))

        for key in ("default_min_confidence", "technical_min_confidence",
                    "counter_regime_min_confidence"):
            if key in params:
                value = params[key]
                if not _is_number(value) or value < 0 or value > 100:
                    errors.append(ValidationError(
                        field=f"thresholds.{key}",
                        message="Must be a number between 0 and 100",
                        value=value
                    ))

        if "min_risk_reward" in params:
            value = params["min_risk_reward"]
            if not _is_number(value) or value <= 0:
                errors.append(ValidationError(
                    field="thresholds.min_risk_reward",
                    message="Must be a positive number",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_dedup_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate duplicate-suppression windows."""
        errors = []

        for key in ("lock_ttl_seconds", "duplicate_window_seconds", "min_signal_gap_seconds",
                    "max_daily_signals", "max_recent_signals"):
            if key in params:
                value = params[key]
                if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                    errors.append(ValidationError(
                        field=f"dedup.{key}",
                        message="Must be a positive integer",
                        value=value
                    ))

        return errors

    @staticmethod
    def validate_exit_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate take-profit percentages and allocations."""
        errors = []

        tp_percents = params.get("tp_percents")
        if tp_percents is not None:
            values = list(tp_percents)
            if (len(values) != 3 or not all(_is_number(v) and v > 0 for v in values)
                    or not values[0] < values[1] < values[2]):
                errors.append(ValidationError(
                    field="exits.tp_percents",
                    message="Must be three positive, strictly increasing percentages",
                    value=tp_percents
                ))

        allocations = params.get("allocations")
        if allocations is not None:
            values = list(allocations)
            if len(values) != 3 or not all(_is_number(v) and v >= 0 for v in values):
                errors.append(ValidationError(
                    field="exits.allocations",
                    message="Must be three non-negative percentages",
                    value=allocations
                ))
            elif sum(values) > 100:
                errors.append(ValidationError(
                    field="exits.allocations",
                    message="Allocations must not exceed 100%",
                    value=sum(values)
                ))

        return errors

    @staticmethod
    def validate_position_params(params: dict[str, Any]) -> list[ValidationError]:
        """Validate trailing stop and fee settings."""
        errors = []

        if "trailing_percent" in params:
            value = params["trailing_percent"]
            if not _is_number(value) or value <= 0 or value >= 100:
                errors.append(ValidationError(
                    field="position.trailing_percent",
                    message="Must be a number between 0 and 100",
                    value=value
                ))

        if "taker_fee" in params:
            value = params["taker_fee"]
            if not _is_number(value) or value < 0 or value >= 1:
                errors.append(ValidationError(
                    field="position.taker_fee",
                    message="Must be a fraction between 0 and 1",
                    value=value
                ))

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ValidationError]:
        """Validate complete configuration."""
        errors = []

        if "ai" in config:
            errors.extend(ConfigValidator.validate_ai_params(config["ai"]))

        if "capital" in config:
            errors.extend(ConfigValidator.validate_capital_params(config["capital"]))

        if "thresholds" in config:
            errors.extend(ConfigValidator.validate_threshold_params(config["thresholds"]))

        if "dedup" in config:
            errors.extend(ConfigValidator.validate_dedup_params(config["dedup"]))

        if "exits" in config:
            errors.extend(ConfigValidator.validate_exit_params(config["exits"]))

        if "position" in config:
            errors.extend(ConfigValidator.validate_position_params(config["position"]))

        return errors

    @staticmethod
    def ensure_valid(config: Union[AppConfig, dict[str, Any]]) -> None:
        """
        Validate configuration at startup.

        Raises:
            ConfigurationError: if any validation error is found
        """
        config_dict = asdict(config) if is_dataclass(config) else config
        errors = ConfigValidator.validate_config(config_dict)

        if errors:
            logger.error(
                "Configuration validation failed",
                error_count=len(errors),
                errors=[f"{e.field}: {e.message} ({e.value})" for e in errors]
            )
            raise ConfigurationError(
                f"Invalid configuration: {errors[0].field}: {errors[0].message}",
                errors=errors
            )
