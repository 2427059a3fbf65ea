"""
Fill Matcher: raw venue fills -> closed trades with realized PnL (FIFO).

One queue of open lots, all on the same side. A fill on that side (or on an
empty queue) adds inventory; an opposing fill consumes lots oldest-first and
emits one ClosedTrade per lot slice. Whatever is left of the fill once the
opposing inventory is exhausted opens a new lot on the fill's side (a flip).

    pnl = (exit_price - lot_price) * matched_size * (+1 LONG / -1 SHORT)

Venues may report fills newest-first; input is stably sorted by timestamp
before matching, so ties keep their reported order.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Sequence

from trade_core.contracts import ClosedTrade, Direction, Fill, OpenLot

logger = logging.getLogger("trader.fills")

# Remainders below this are float noise from repeated subtraction.
_EPS = 1e-12


class FillMatcher:
    """Incremental FIFO matcher. Feed fills in chronological order via ``apply``."""

    def __init__(self) -> None:
        self._lots: deque[OpenLot] = deque()

    @property
    def open_lots(self) -> list[OpenLot]:
        return list(self._lots)

    @property
    def net_position(self) -> float:
        """Signed open inventory: positive long, negative short."""
        total = sum(lot.remaining_size for lot in self._lots)
        if self._lots and self._lots[0].side.direction == Direction.SHORT:
            return -total
        return total

    def apply(self, fill: Fill) -> list[ClosedTrade]:
        """Match one fill against the open lots. Returns the trades it closes."""
        if fill.size <= 0:
            logger.debug("Ignoring zero-size fill at %s", fill.timestamp)
            return []

        if not self._lots or self._lots[0].side == fill.side:
            self._lots.append(OpenLot(fill.side, fill.size, fill.price, fill.timestamp))
            return []

        closed: list[ClosedTrade] = []
        remaining = fill.size
        while remaining > _EPS and self._lots and self._lots[0].side != fill.side:
            lot = self._lots[0]
            matched = min(remaining, lot.remaining_size)
            sign = 1.0 if lot.side.direction == Direction.LONG else -1.0
            closed.append(
                ClosedTrade(
                    side=lot.side.direction,
                    entry_price=lot.price,
                    entry_time=lot.timestamp,
                    exit_price=fill.price,
                    exit_time=fill.timestamp,
                    size=matched,
                    pnl=(fill.price - lot.price) * matched * sign,
                )
            )
            remaining -= matched
            lot.remaining_size -= matched
            if lot.remaining_size <= _EPS:
                self._lots.popleft()

        if remaining > _EPS:
            # Opposing inventory exhausted: the rest of the fill flips the position.
            self._lots.append(OpenLot(fill.side, remaining, fill.price, fill.timestamp))
        return closed


def sort_fills(fills: Iterable[Fill]) -> list[Fill]:
    """Chronological order; ``sorted`` is stable so ties keep input order."""
    return sorted(fills, key=lambda f: f.timestamp)


def match_fills(fills: Iterable[Fill], since: datetime | None = None) -> list[ClosedTrade]:
    """Match a raw fill stream FIFO and return closed trades in chronological order.

    Parameters
    ----------
    fills:
        Venue-reported fills in any order.
    since:
        Optional cutoff; fills stamped before it are dropped (e.g. fills from
        before this process started trading).
    """
    matcher = FillMatcher()
    trades: list[ClosedTrade] = []
    for fill in sort_fills(fills):
        if since is not None and fill.timestamp < since:
            continue
        trades.extend(matcher.apply(fill))
    return trades


def last_closed_trades(
    fills: Iterable[Fill],
    n: int = 10,
    *,
    since: datetime | None = None,
    newest_first: bool = True,
) -> list[ClosedTrade]:
    """Bounded view of the most recent ``n`` closed trades, for Signal Source context."""
    if n <= 0:
        return []
    recent = match_fills(fills, since=since)[-n:]
    return list(reversed(recent)) if newest_first else recent


@dataclass(frozen=True)
class RealizedPnl:
    realized_pnl: float
    win_count: int
    close_count: int


def realized_pnl_summary(trades: Sequence[ClosedTrade]) -> RealizedPnl:
    """Realized PnL, winning closes and total closes over matched trades."""
    return RealizedPnl(
        realized_pnl=sum(t.pnl for t in trades),
        win_count=sum(1 for t in trades if t.pnl > 0),
        close_count=len(trades),
    )
