"""Configuration management for the signal engine."""

from .defaults import AppConfig, get_default_config
from .loader import ConfigLoader, config_from_dict
from .validation import ConfigValidator, ValidationError

__all__ = [
    "AppConfig",
    "get_default_config",
    "ConfigLoader",
    "config_from_dict",
    "ConfigValidator",
    "ValidationError",
]
