"""Configuration loader with layered parameter precedence."""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml

from .defaults import (
    AIParams,
    AppConfig,
    CapitalParams,
    DedupParams,
    ExitMethodParams,
    ExitParams,
    IndicatorParams,
    LoggingParams,
    MarketDataParams,
    PositionParams,
    RegimeParams,
    RuntimeParams,
    ThresholdParams,
    get_default_config,
)

logger = structlog.get_logger(__name__)

_SECTIONS = {
    "capital": CapitalParams,
    "indicators": IndicatorParams,
    "ai": AIParams,
    "thresholds": ThresholdParams,
    "dedup": DedupParams,
    "exits": ExitParams,
    "position": PositionParams,
    "market_data": MarketDataParams,
    "regime": RegimeParams,
    "runtime": RuntimeParams,
    "logging": LoggingParams,
}

_TUPLE_FIELDS = {"tp_percents", "allocations", "timeframes"}


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with layered precedence."""

    config_dir: Path
    defaults: AppConfig

    @classmethod
    def create(cls, config_dir: Optional[Path] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
        )

    def _read_yaml(self, filename: str) -> dict[str, Any]:
        path = self.config_dir / filename

        if not path.exists():
            return {}

        with open(path) as f:
            content = yaml.safe_load(f)

        return content or {}

    def load_settings(self) -> dict[str, Any]:
        """Load global setting overrides from settings.yaml."""
        return self._read_yaml("settings.yaml")

    def load_symbol_config(self, symbol: str) -> dict[str, Any]:
        """Load symbol-specific configuration overrides."""
        symbols_config = self._read_yaml("symbols.yaml")
        return symbols_config.get("symbols", {}).get(symbol, {}) or {}  # type: ignore[no-any-return]

    def merge_config(
        self,
        symbol: Optional[str] = None,
        overrides: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Merge configuration layers.

        Priority order:
        1. Call overrides (highest priority)
        2. Symbol-specific overrides
        3. Global settings file
        4. Dataclass defaults (lowest priority)
        """
        config = self._dataclass_to_dict(self.defaults)
        config = self._deep_merge(config, self.load_settings())

        if symbol:
            config = self._deep_merge(config, self.load_symbol_config(symbol))

        if overrides:
            config = self._deep_merge(config, overrides)

        return config

    def load(
        self,
        symbol: Optional[str] = None,
        overrides: Optional[dict[str, Any]] = None
    ) -> AppConfig:
        """Merge all layers and build a typed configuration."""
        return config_from_dict(self.merge_config(symbol, overrides))

    def _dataclass_to_dict(self, obj: Any) -> Any:
        """Convert nested dataclasses to dictionary."""
        if hasattr(obj, '__dataclass_fields__'):
            return {
                field_name: self._dataclass_to_dict(getattr(obj, field_name))
                for field_name in obj.__dataclass_fields__
            }
        if isinstance(obj, dict):
            return {key: self._dataclass_to_dict(value) for key, value in obj.items()}
        if isinstance(obj, tuple):
            return list(obj)
        return obj

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


def _build_section(section: str, cls: type, values: dict[str, Any]) -> Any:
    known = {f.name for f in fields(cls)}
    kwargs = {}

    for key, value in values.items():
        if key not in known:
            logger.warning("Ignoring unknown config key", section=section, key=key)
            continue
        if key in _TUPLE_FIELDS and isinstance(value, list):
            value = tuple(value)
        if section == "exits" and key == "methods":
            value = {
                name: params if isinstance(params, ExitMethodParams) else ExitMethodParams(**params)
                for name, params in value.items()
            }
        kwargs[key] = value

    return cls(**kwargs)


def config_from_dict(config: dict[str, Any]) -> AppConfig:
    """Build an AppConfig from a (merged) configuration dictionary."""
    sections = {}
    for section, cls in _SECTIONS.items():
        sections[section] = _build_section(section, cls, config.get(section, {}) or {})
    return AppConfig(**sections)
