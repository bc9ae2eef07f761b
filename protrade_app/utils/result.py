"""
Result type for indicator calculations.

Indicator functions are run through ``attempt`` which captures any exception
or non-finite output as a CalculationError; callers then pick an explicit
neutral default with ``unwrap_or``.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

import structlog

from ..errors import CalculationError, InsufficientDataError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a calculation: a value or an error."""
    value: Optional[T] = None
    error: Optional[Exception] = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: Exception) -> "Result[T]":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None and self.value is not None

    def unwrap_or(self, default: T) -> T:
        """Return the value, or the neutral default on failure."""
        return self.value if self.is_ok else default  # type: ignore[return-value]


def _is_finite(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    if isinstance(value, (tuple, list)):
        return all(_is_finite(v) for v in value)
    if hasattr(value, "__dataclass_fields__"):
        return all(_is_finite(getattr(value, name)) for name in value.__dataclass_fields__)
    return True


def attempt(name: str, fn: Callable[..., Optional[T]], *args: Any, **kwargs: Any) -> Result[T]:
    """
    Run an indicator function and capture failures.

    A None return is treated as insufficient data; an exception or a
    non-finite number is a CalculationError. Both are logged at debug level.
    """
    try:
        value = fn(*args, **kwargs)
    except Exception as e:
        logger.debug("Indicator calculation failed", metric=name, error=str(e))
        return Result.fail(CalculationError(str(e), metric_name=name))

    if value is None:
        logger.debug("Indicator has insufficient data", metric=name)
        return Result.fail(InsufficientDataError(f"{name}: insufficient data"))

    if not _is_finite(value):
        logger.debug("Indicator produced non-finite value", metric=name)
        return Result.fail(CalculationError(f"{name}: non-finite result", metric_name=name))

    return Result.ok(value)
