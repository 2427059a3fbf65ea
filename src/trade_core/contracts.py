"""
Data contracts for trade-core: Candle, Signal, TradeParameters, Fill, ClosedTrade, Position.

trade-core consumes candles, signals, account snapshots and raw fills, and
produces sizing decisions and closed trades. No I/O; these are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from trade_core.errors import ValidationError


class Direction(str, Enum):
    """Trade direction proposed by a Signal Source."""

    LONG = "LONG"
    SHORT = "SHORT"
    HOLD = "HOLD"


class Side(str, Enum):
    """Order / fill side as reported by the venue."""

    BUY = "buy"
    SELL = "sell"

    @property
    def direction(self) -> Direction:
        """Position direction opened by a fill on this side."""
        return Direction.LONG if self is Side.BUY else Direction.SHORT

    @property
    def opposite(self) -> Side:
        return Side.SELL if self is Side.BUY else Side.BUY


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


def entry_side(direction: Direction) -> Side:
    """Order side that opens a position in ``direction``."""
    if direction == Direction.LONG:
        return Side.BUY
    if direction == Direction.SHORT:
        return Side.SELL
    raise ValueError(f"No order side for direction {direction.value}")


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Candle:
    """OHLCV candle; timestamps in UTC, strictly increasing within a sequence."""

    open: float
    high: float
    low: float
    close: float
    volume: float
    timestamp: datetime
    symbol: str | None = None

    def __post_init__(self) -> None:
        if self.high < self.low:
            raise ValidationError(f"Candle high {self.high} is below low {self.low}")


# ---------------------------------------------------------------------------
# Signal and sizing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Signal:
    """Directional proposal from the Signal Source. Distances are price deltas."""

    direction: Direction
    confidence: float
    stop_loss_distance: float
    take_profit_distance: float
    reason: str = ""

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 100.0:
            raise ValidationError(f"Signal confidence must be within 0..100, got {self.confidence}")
        if self.stop_loss_distance < 0 or self.take_profit_distance < 0:
            raise ValidationError("Signal distances must not be negative")

    @property
    def is_actionable(self) -> bool:
        return self.direction != Direction.HOLD

    @classmethod
    def hold(cls, reason: str) -> Signal:
        """Fail-safe signal: HOLD with zero confidence."""
        return cls(Direction.HOLD, 0.0, 0.0, 0.0, reason)


@dataclass(frozen=True)
class AccountState:
    """Account snapshot for sizing: balance, last trade price, leverage."""

    balance: float
    last_price: float
    leverage: float = 10.0


@dataclass(frozen=True)
class TradeParameters:
    """Output of the RiskSizer. Absolute stop and target prices."""

    size: float
    stop_loss_price: float
    take_profit_price: float


# ---------------------------------------------------------------------------
# Fills and trades
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Fill:
    """One execution reported by the venue. Append-only."""

    side: Side
    size: float
    price: float
    timestamp: datetime
    order_id: str | None = None
    fill_id: str | None = None

    def __post_init__(self) -> None:
        if self.size < 0:
            raise ValidationError(f"Fill size must not be negative, got {self.size}")


@dataclass
class OpenLot:
    """Unmatched inventory awaiting an opposing fill. Owned by the FillMatcher."""

    side: Side
    remaining_size: float
    price: float
    timestamp: datetime


@dataclass(frozen=True)
class ClosedTrade:
    """Round trip (or a slice of one) matched FIFO. ``side`` is the opening direction."""

    side: Direction
    entry_price: float
    entry_time: datetime
    exit_price: float
    exit_time: datetime
    size: float
    pnl: float
    exit_reason: str | None = None

    @property
    def is_win(self) -> bool:
        return self.pnl > 0


@dataclass
class Position:
    """Position owned by the executor or simulation that opened it."""

    direction: Direction
    entry_price: float
    entry_time: datetime
    size: float
    stop_loss_price: float
    take_profit_price: float
    status: PositionStatus = PositionStatus.OPEN
    metadata: dict = field(default_factory=dict)

    def pnl_at(self, price: float) -> float:
        sign = 1.0 if self.direction == Direction.LONG else -1.0
        return (price - self.entry_price) * self.size * sign

    def close(self, price: float, timestamp: datetime, reason: str | None = None) -> ClosedTrade:
        """Mark the position CLOSED and return the resulting ClosedTrade."""
        self.status = PositionStatus.CLOSED
        return ClosedTrade(
            side=self.direction,
            entry_price=self.entry_price,
            entry_time=self.entry_time,
            exit_price=price,
            exit_time=timestamp,
            size=self.size,
            pnl=self.pnl_at(price),
            exit_reason=reason,
        )
