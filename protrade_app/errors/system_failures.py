"""
System failure error classifications.

Calculation failures are captured and replaced with neutral values by the
caller; configuration failures abort startup.
"""

from typing import Optional, Dict, Any


class SystemFailureError(Exception):
    """Base class for system-level failures."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = False


class CalculationError(SystemFailureError):
    """An indicator or metric computation raised or produced a non-finite value."""

    def __init__(self, message: str, metric_name: Optional[str] = None,
                 calculation_input: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.metric_name = metric_name
        self.calculation_input = calculation_input


class ExitMethodError(CalculationError):
    """A single take-profit method failed; the method is excluded from the blend."""

    def __init__(self, message: str, method: Optional[str] = None, **kwargs):
        super().__init__(message, metric_name=method, **kwargs)
        self.method = method


class PositionStateError(SystemFailureError):
    """Illegal position operation, e.g. opening from a signal that was never executed."""

    def __init__(self, message: str, current_state: Optional[str] = None,
                 attempted_transition: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.current_state = current_state
        self.attempted_transition = attempted_transition


class ConfigurationError(SystemFailureError):
    """Configuration is invalid; the system must not start."""

    def __init__(self, message: str, errors: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or []
