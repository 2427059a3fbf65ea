"""Tests for candle indicators: True Range, ATR, SMA, momentum and channel midline.

Validates against hand-computed values and short-input edge cases.
"""

from datetime import datetime, timedelta, timezone

import pytest

from trade_core.contracts import Candle
from trade_core.indicators import channel_midline, compute_atr, momentum_pct, sma, true_range

BASE_TS = datetime(2025, 7, 2, 0, 0, tzinfo=timezone.utc)


def _candle(i: int, *, high: float = 102.0, low: float = 99.0, close: float = 101.0) -> Candle:
    return Candle(
        open=100.0, high=high, low=low, close=close, volume=5.0,
        timestamp=BASE_TS + timedelta(minutes=3 * i), symbol="BTC/USD",
    )


# ---------------------------------------------------------------------------
# true_range
# ---------------------------------------------------------------------------


class TestTrueRange:

    def test_no_gap(self) -> None:
        """prev_close inside the range: TR = high - low."""
        assert true_range(_candle(1, high=105.0, low=100.0), 102.0) == 5.0

    def test_gap_up(self) -> None:
        assert true_range(_candle(1, high=110.0, low=106.0), 100.0) == 10.0

    def test_gap_down(self) -> None:
        assert true_range(_candle(1, high=95.0, low=90.0), 100.0) == 10.0


# ---------------------------------------------------------------------------
# compute_atr
# ---------------------------------------------------------------------------


class TestAtr:

    def test_constant_range(self) -> None:
        candles = [_candle(i) for i in range(20)]
        assert compute_atr(candles, 14) == pytest.approx(3.0)

    def test_uses_last_period_only(self) -> None:
        candles = [_candle(i, high=110.0, low=90.0) for i in range(10)]
        candles += [_candle(10 + i) for i in range(15)]
        assert compute_atr(candles, 14) == pytest.approx(3.0)

    def test_short_input(self) -> None:
        assert compute_atr([_candle(0)], 14) == 0.0
        assert compute_atr([_candle(0), _candle(1)], 14) == pytest.approx(3.0)


def test_sma_and_momentum() -> None:
    assert sma([1.0, 2.0, 3.0, 4.0], 2) == 3.5
    assert sma([], 5) == 0.0
    candles = [_candle(i, close=100.0) for i in range(19)] + [_candle(19, close=120.0)]
    # mean of 19 x 100 and 120 is 101; (120 - 101) / 101
    assert momentum_pct(candles, 20) == pytest.approx(19 / 101 * 100)


def test_channel_midline() -> None:
    candles = [_candle(0, high=110.0, low=95.0), _candle(1, high=104.0, low=90.0)]
    assert channel_midline(candles) == 100.0
