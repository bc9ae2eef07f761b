"""
Signal data models.

A Signal is immutable once assembled; status changes produce a copy via
``with_status`` so that a signal handed to a consumer never changes under it.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

import orjson

from ..utils.time import format_timestamp


class Direction(str, Enum):
    """Trade direction; HOLD only appears on intermediate technical results."""
    LONG = "LONG"
    SHORT = "SHORT"
    HOLD = "HOLD"

    @property
    def sign(self) -> int:
        return {"LONG": 1, "SHORT": -1}.get(self.value, 0)


class Strength(str, Enum):
    """Signal strength tier."""
    STRONG = "STRONG"
    MEDIUM = "MEDIUM"
    WEAK = "WEAK"


class SignalStatus(str, Enum):
    """Signal lifecycle status."""
    GENERATED = "GENERATED"
    EXECUTED = "EXECUTED"
    EXPIRED = "EXPIRED"
    REJECTED = "REJECTED"


class RejectionReason(str, Enum):
    """Why the assembler declined to emit a signal."""
    TOO_SOON = "too_soon"
    ACTIVE_LOCK = "active_lock"
    NO_DIRECTION = "no_direction"
    WEAK_SIGNAL = "weak_signal"
    LOW_TECHNICAL_CONFIDENCE = "low_technical_confidence"
    LOW_CONSENSUS_CONFIDENCE = "low_consensus_confidence"
    CONSENSUS_DISAGREES = "consensus_disagrees"
    POOR_RISK_REWARD = "poor_risk_reward"
    MAX_LOSS_EXCEEDED = "max_loss_exceeded"
    REGIME_CONFLICT = "regime_conflict"
    TIMEFRAME_CONFLICT = "timeframe_conflict"
    DUPLICATE = "duplicate"
    DAILY_CAP = "daily_cap"
    MARKET_DATA_UNAVAILABLE = "market_data_unavailable"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class TakeProfitTarget:
    """One level of a take-profit plan."""
    price: float
    share_pct: float


@dataclass(frozen=True)
class TakeProfitPlan:
    """Three ordered take-profit levels with their quantity shares."""
    tp1: TakeProfitTarget
    tp2: TakeProfitTarget
    tp3: TakeProfitTarget
    primary_method: str = "percentage"
    confidence: float = 100.0
    methods: tuple[str, ...] = ()
    dynamic: bool = False

    @property
    def levels(self) -> tuple[TakeProfitTarget, TakeProfitTarget, TakeProfitTarget]:
        return (self.tp1, self.tp2, self.tp3)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tp1": {"price": self.tp1.price, "share_pct": self.tp1.share_pct},
            "tp2": {"price": self.tp2.price, "share_pct": self.tp2.share_pct},
            "tp3": {"price": self.tp3.price, "share_pct": self.tp3.share_pct},
            "primary_method": self.primary_method,
            "confidence": self.confidence,
            "methods": list(self.methods),
            "dynamic": self.dynamic,
        }


@dataclass(frozen=True)
class Signal:
    """Fully assembled trade recommendation."""
    id: str
    symbol: str
    direction: Direction
    strength: Strength
    final_confidence: float
    entry_price: float
    current_price: float
    stop_loss: float
    take_profit: float
    position_size: float
    risk_reward: float
    max_loss: float
    max_gain: float
    risk_level: str
    time_horizon: str
    created_at: datetime
    market_regime: str = "UNKNOWN"
    take_profit_plan: Optional[TakeProfitPlan] = None
    technical: dict[str, Any] = field(default_factory=dict)
    consensus: dict[str, Any] = field(default_factory=dict)
    market_context: dict[str, Any] = field(default_factory=dict)
    reasoning: str = ""
    status: SignalStatus = SignalStatus.GENERATED

    def __post_init__(self) -> None:
        if self.direction not in (Direction.LONG, Direction.SHORT):
            raise ValueError(f"Signal direction must be LONG or SHORT, got {self.direction}")
        if not 0 <= self.final_confidence <= 100:
            raise ValueError(f"final_confidence out of range: {self.final_confidence}")

    def with_status(self, status: SignalStatus) -> "Signal":
        return replace(self, status=status)

    def with_exit_plan(self, plan: TakeProfitPlan) -> "Signal":
        return replace(self, take_profit_plan=plan)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "direction": self.direction.value,
            "strength": self.strength.value,
            "final_confidence": self.final_confidence,
            "entry_price": self.entry_price,
            "current_price": self.current_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "take_profit_plan": self.take_profit_plan.to_dict() if self.take_profit_plan else None,
            "position_size": self.position_size,
            "risk_reward": self.risk_reward,
            "max_loss": self.max_loss,
            "max_gain": self.max_gain,
            "risk_level": self.risk_level,
            "time_horizon": self.time_horizon,
            "market_regime": self.market_regime,
            "created_at": format_timestamp(self.created_at),
            "technical": self.technical,
            "consensus": self.consensus,
            "market_context": self.market_context,
            "reasoning": self.reasoning,
            "status": self.status.value,
        }

    def to_json(self) -> bytes:
        return orjson.dumps(self.to_dict())
