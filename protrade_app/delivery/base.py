"""Base classes for position event notifications."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable

import structlog

if TYPE_CHECKING:
    from ..state.models import Position

logger = structlog.get_logger(__name__)


class NotificationSink(ABC):
    """Receives take-profit and stop-loss events for open positions."""

    @abstractmethod
    def on_take_profit(self, position: "Position", level: int, profit: float) -> None:
        """Called after a take-profit level executed."""
        pass

    @abstractmethod
    def on_stop_loss(self, position: "Position", loss: float) -> None:
        """Called after the stop-loss closed the remaining quantity."""
        pass


class LoggingNotificationSink(NotificationSink):
    """Sink that only writes structured log events."""

    def __init__(self):
        self.logger = logger.bind(sink="logging")

    def on_take_profit(self, position: "Position", level: int, profit: float) -> None:
        self.logger.info(
            "Take profit executed",
            position_id=position.id,
            symbol=position.symbol,
            level=level,
            profit=round(profit, 4),
            remaining_quantity=position.remaining_quantity
        )

    def on_stop_loss(self, position: "Position", loss: float) -> None:
        self.logger.info(
            "Stop loss executed",
            position_id=position.id,
            symbol=position.symbol,
            pnl=round(loss, 4),
            stop_price=position.stop_loss.price
        )


def notify_safely(callback: Callable[..., Any], *args: Any) -> bool:
    """
    Invoke a sink callback, logging instead of propagating failures.

    Returns:
        True if the callback completed
    """
    try:
        callback(*args)
        return True
    except Exception as e:
        logger.error(
            "Notification sink failed",
            callback=getattr(callback, "__qualname__", repr(callback)),
            error=str(e),
            error_type=type(e).__name__
        )
        return False
