"""
Position data models.

Positions are mutable and owned by the lifecycle manager; every mutation
happens inside a serialized tick.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..signals.models import Direction
from ..utils.time import format_timestamp


class PositionStatus(str, Enum):
    """Position lifecycle states."""
    ACTIVE = "ACTIVE"
    PARTIAL = "PARTIAL"
    COMPLETED = "COMPLETED"
    STOPPED = "STOPPED"

    @property
    def is_terminal(self) -> bool:
        return self in (PositionStatus.COMPLETED, PositionStatus.STOPPED)


@dataclass
class StopLoss:
    """Stop-loss state, optionally trailing."""
    price: float
    trailing: bool = False
    trail_percent: float = 2.0
    extreme_price: float = 0.0           # Highest (LONG) / lowest (SHORT) price seen
    executed: bool = False
    executed_at: Optional[datetime] = None
    executed_price: Optional[float] = None


@dataclass
class TakeProfitLevel:
    """One take-profit level of an open position."""
    level: int
    price: float
    share_pct: float
    quantity: int
    executed: bool = False
    executed_at: Optional[datetime] = None
    executed_price: Optional[float] = None


@dataclass
class Position:
    """Open position created from an executed signal."""
    id: str
    signal_id: str
    symbol: str
    direction: Direction
    entry_price: float
    quantity: int
    remaining_quantity: int
    stop_loss: StopLoss
    take_profits: list[TakeProfitLevel]
    opened_at: datetime
    status: PositionStatus = PositionStatus.ACTIVE
    current_price: float = 0.0
    unrealized_pnl: float = 0.0
    realized_pnl: float = 0.0
    closed_at: Optional[datetime] = None
    last_update: Optional[datetime] = None
    history: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "signal_id": self.signal_id,
            "symbol": self.symbol,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "quantity": self.quantity,
            "remaining_quantity": self.remaining_quantity,
            "status": self.status.value,
            "stop_loss": {
                "price": self.stop_loss.price,
                "trailing": self.stop_loss.trailing,
                "trail_percent": self.stop_loss.trail_percent,
                "extreme_price": self.stop_loss.extreme_price,
                "executed": self.stop_loss.executed,
                "executed_at": format_timestamp(self.stop_loss.executed_at),
                "executed_price": self.stop_loss.executed_price,
            },
            "take_profits": [
                {
                    "level": tp.level,
                    "price": tp.price,
                    "share_pct": tp.share_pct,
                    "quantity": tp.quantity,
                    "executed": tp.executed,
                    "executed_at": format_timestamp(tp.executed_at),
                    "executed_price": tp.executed_price,
                }
                for tp in self.take_profits
            ],
            "current_price": self.current_price,
            "unrealized_pnl": self.unrealized_pnl,
            "realized_pnl": self.realized_pnl,
            "opened_at": format_timestamp(self.opened_at),
            "closed_at": format_timestamp(self.closed_at),
            "last_update": format_timestamp(self.last_update),
        }
