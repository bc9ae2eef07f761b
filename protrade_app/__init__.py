"""
ProTrade signal and position engine.

Market data and AI opinions in, deduplicated trade signals with adaptive
take-profit plans out; executed signals become positions managed tick by
tick until they stop out or complete.
"""

from .config import AppConfig, ConfigLoader, ConfigValidator, get_default_config
from .engine import AssemblyResult, SignalAssembler, build_position_manager, build_signal_assembler
from .signals.models import Direction, RejectionReason, Signal, SignalStatus, Strength
from .state.runtime import PositionLifecycleManager

__version__ = "0.1.0"

__all__ = [
    "AppConfig",
    "ConfigLoader",
    "ConfigValidator",
    "get_default_config",
    "AssemblyResult",
    "SignalAssembler",
    "build_signal_assembler",
    "build_position_manager",
    "Direction",
    "RejectionReason",
    "Signal",
    "SignalStatus",
    "Strength",
    "PositionLifecycleManager",
]
