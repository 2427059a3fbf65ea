"""
Fetch OHLCV candles from a market data provider. Configurable adapter; sync.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from trade_core.contracts import Candle


@dataclass
class FetchResult:
    """Result of a fetch: candles and optional next cursor for pagination."""

    candles: list[Candle]
    symbol: str
    timeframe: str
    next_cursor: str | None = None


class CandleFetcher(Protocol):
    """Protocol for candle fetchers. Implement per provider."""

    def fetch(
        self,
        symbol: str,
        timeframe: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> FetchResult:
        """Fetch candles; timestamps normalized to UTC, ascending."""
        ...


class StaticCandleFetcher:
    """Serves a fixed candle list; for tests and offline runs."""

    def __init__(self, candles: list[Candle]) -> None:
        self._candles = list(candles)

    def fetch(
        self,
        symbol: str,
        timeframe: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> FetchResult:
        candles = [
            c for c in self._candles
            if (start is None or c.timestamp >= start) and (end is None or c.timestamp < end)
        ]
        if limit is not None:
            candles = candles[-limit:]
        return FetchResult(candles=candles, symbol=symbol, timeframe=timeframe)
