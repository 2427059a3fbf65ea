"""
trade-core: risk sizing and FIFO trade accounting.

No I/O, no network. Consumes signals, account snapshots and raw fills;
produces TradeParameters and ClosedTrades. Fully deterministic and unit-testable.
"""

from trade_core.contracts import (
    AccountState,
    Candle,
    ClosedTrade,
    Direction,
    Fill,
    OpenLot,
    Position,
    PositionStatus,
    Side,
    Signal,
    TradeParameters,
)
from trade_core.fill_matcher import FillMatcher, last_closed_trades, match_fills
from trade_core.risk_sizer import size_trade
from trade_core.stats import TradeStats, compute_stats

__all__ = [
    "AccountState",
    "Candle",
    "ClosedTrade",
    "compute_stats",
    "Direction",
    "Fill",
    "FillMatcher",
    "last_closed_trades",
    "match_fills",
    "OpenLot",
    "Position",
    "PositionStatus",
    "Side",
    "Signal",
    "size_trade",
    "TradeParameters",
    "TradeStats",
]
