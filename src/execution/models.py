"""Order specs, venue views and executor results for live/paper execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from trade_core.contracts import Direction, Position, Side


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"  # stop-limit: triggers at stop_price, rests at limit_price


class OrderTag(str, Enum):
    ENTRY = "entry"
    STOP_LOSS = "stop-loss"
    TAKE_PROFIT = "take-profit"


@dataclass(frozen=True)
class OrderSpec:
    symbol: str
    side: Side
    size: float
    order_type: OrderType
    tag: OrderTag
    limit_price: float | None = None
    stop_price: float | None = None
    reduce_only: bool = False


@dataclass(frozen=True)
class OrderAck:
    """Venue acknowledgement of an accepted submission."""

    status: str
    order_ids: tuple[str, ...] = ()

    @property
    def order_id(self) -> str | None:
        return self.order_ids[0] if self.order_ids else None


@dataclass(frozen=True)
class VenueOrder:
    """Resting order as reported by the venue."""

    order_id: str
    symbol: str
    side: Side
    size: float
    order_type: OrderType
    tag: OrderTag
    limit_price: float | None = None
    stop_price: float | None = None
    reduce_only: bool = False


@dataclass(frozen=True)
class VenuePosition:
    """Open position as reported by the venue."""

    symbol: str
    direction: Direction
    size: float
    entry_price: float


class ExecutionState(str, Enum):
    IDLE = "IDLE"
    ENTRY_SUBMITTED = "ENTRY_SUBMITTED"
    ENTRY_FILLED = "ENTRY_FILLED"
    ENTRY_REJECTED = "ENTRY_REJECTED"
    ENTRY_TIMEOUT = "ENTRY_TIMEOUT"
    EXIT_SUBMITTED = "EXIT_SUBMITTED"
    EXIT_CONFIRMED = "EXIT_CONFIRMED"
    EXIT_FAILED = "EXIT_FAILED"


@dataclass
class ExecutionResult:
    """Outcome of one executor invocation. ``state`` is the terminal state reached."""

    state: ExecutionState = ExecutionState.IDLE
    transitions: list[ExecutionState] = field(default_factory=list)
    entry_order_id: str | None = None
    filled_size: float = 0.0
    average_price: float | None = None
    position: Position | None = None
    exit_order_ids: tuple[str, ...] = ()
    exits_submitted: bool = False
    error: str | None = None
