"""
Candle indicators used to give the Signal Source context.

True Range = max(
    high - low,
    |high - prev_close|,
    |low  - prev_close|
)

ATR(n) = Simple Moving Average of True Range over the last n candles.

Pure functions; no I/O.
"""

from __future__ import annotations

from typing import Sequence

from trade_core.contracts import Candle


def true_range(current: Candle, prev_close: float) -> float:
    """Compute the True Range for a single candle, accounting for gaps."""
    return max(
        current.high - current.low,
        abs(current.high - prev_close),
        abs(current.low - prev_close),
    )


def compute_atr(candles: Sequence[Candle], period: int = 14) -> float:
    """Compute ATR over the last ``period`` candles using SMA.

    Returns 0.0 if fewer than 2 candles are provided. With fewer than
    ``period + 1`` candles the average covers whatever is available.
    """
    if len(candles) < 2:
        return 0.0

    tr_values = [true_range(candles[i], candles[i - 1].close) for i in range(1, len(candles))]
    window = tr_values[-period:]
    return sum(window) / len(window)


def sma(values: Sequence[float], period: int) -> float:
    """Simple moving average of the last ``period`` values (fewer if short)."""
    if not values:
        return 0.0
    window = values[-period:]
    return sum(window) / len(window)


def momentum_pct(candles: Sequence[Candle], period: int = 20) -> float:
    """Percent distance of the last close from its ``period`` SMA."""
    closes = [c.close for c in candles]
    mean = sma(closes, period)
    if not closes or mean == 0:
        return 0.0
    return (closes[-1] - mean) / mean * 100


def channel_midline(candles: Sequence[Candle]) -> float:
    """Midpoint of the highest high and lowest low over ``candles``."""
    highest = max(c.high for c in candles)
    lowest = min(c.low for c in candles)
    return (highest + lowest) / 2
