"""Pytest fixtures: candle sequences, fake clocks and scripted signal sources."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Sequence

import pytest

from trade_core.contracts import Candle, ClosedTrade, Direction, Signal

T0 = datetime(2025, 7, 2, 0, 0, tzinfo=timezone.utc)


def _ts(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


def _candle(i: int, close: float, *, high: float | None = None, low: float | None = None,
           open_: float | None = None, volume: float = 10.0, step: int = 3) -> Candle:
    """Candle number *i* on a ``step``-minute grid."""
    return Candle(
        open=close if open_ is None else open_,
        high=close + 0.5 if high is None else high,
        low=close - 0.5 if low is None else low,
        close=close,
        volume=volume,
        timestamp=_ts(i * step),
        symbol="BTC/USD",
    )


def _flat_candles(n: int, price: float = 100.0) -> list[Candle]:
    return [_candle(i, price) for i in range(n)]


class ScriptedSource:
    """Signal Source that replays a list of signals, then HOLDs."""

    def __init__(self, signals: Sequence[Signal | Exception]) -> None:
        self._signals = list(signals)
        self.calls: list[tuple[int, int]] = []

    def generate(self, window, history) -> Signal:
        self.calls.append((len(window), len(history)))
        if not self._signals:
            return Signal.hold("script exhausted")
        nxt = self._signals.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


class FakeClock:
    """Monotonic clock advanced only by the recorded sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def symbol() -> str:
    return "BTC/USD"


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def long_signal() -> Signal:
    return Signal(Direction.LONG, 80.0, 2.0, 4.0, "test long")


@pytest.fixture
def short_signal() -> Signal:
    return Signal(Direction.SHORT, 80.0, 2.0, 4.0, "test short")


def _closed_trade(pnl: float, minute: int = 0, side: Direction = Direction.LONG) -> ClosedTrade:
    return ClosedTrade(
        side=side,
        entry_price=100.0,
        entry_time=_ts(minute),
        exit_price=100.0 + pnl,
        exit_time=_ts(minute + 1),
        size=1.0,
        pnl=pnl,
    )


@pytest.fixture
def make_candle():
    """Factory: ``make_candle(i, close, high=..., low=...)`` on a 3-minute grid."""
    return _candle


@pytest.fixture
def flat_candles():
    """Factory: ``flat_candles(n, price=100.0)``; high/low are price +/- 0.5."""
    return _flat_candles


@pytest.fixture
def make_trade():
    """Factory: ``make_trade(pnl, minute=0)`` closed LONG of size 1 entered at 100."""
    return _closed_trade


@pytest.fixture
def scripted_source():
    return ScriptedSource


@pytest.fixture
def at():
    """Factory: UTC timestamp ``minutes`` after 2025-07-02 00:00."""
    return _ts
