"""
Error classification for the signal and position pipeline.

Data quality problems degrade to neutral values, collaborator failures are
recovered at the call boundary, and configuration problems are fatal.
"""

from .data_quality import (
    DataQualityError,
    MissingDataError,
    MalformedDataError,
    InsufficientDataError,
)
from .system_failures import (
    SystemFailureError,
    CalculationError,
    ExitMethodError,
    PositionStateError,
    ConfigurationError,
)
from .recovery import (
    RecoverableError,
    CollaboratorError,
    CollaboratorTimeoutError,
)

__all__ = [
    # Data Quality Errors
    "DataQualityError",
    "MissingDataError",
    "MalformedDataError",
    "InsufficientDataError",
    # System Failures
    "SystemFailureError",
    "CalculationError",
    "ExitMethodError",
    "PositionStateError",
    "ConfigurationError",
    # Recovery Categories
    "RecoverableError",
    "CollaboratorError",
    "CollaboratorTimeoutError",
]
