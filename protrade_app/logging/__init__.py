"""Structured logging helpers built on structlog."""

from .config import (
    configure_from_params,
    configure_logging,
    get_gating_logger,
    get_logger,
    get_state_logger,
    log_gate_decision,
    log_state_transition,
)

__all__ = [
    "configure_logging",
    "configure_from_params",
    "get_logger",
    "get_gating_logger",
    "get_state_logger",
    "log_gate_decision",
    "log_state_transition",
]
