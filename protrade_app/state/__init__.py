"""
Position lifecycle management.

Open positions are advanced one price tick at a time: unrealized PnL,
trailing stop, take-profit levels, stop-loss, then status.
"""

from .machine import TickEvent, apply_tick, derive_status, directional_pnl
from .models import Position, PositionStatus, StopLoss, TakeProfitLevel
from .runtime import PositionLifecycleManager

__all__ = [
    "Position",
    "PositionStatus",
    "StopLoss",
    "TakeProfitLevel",
    "TickEvent",
    "apply_tick",
    "derive_status",
    "directional_pnl",
    "PositionLifecycleManager",
]
