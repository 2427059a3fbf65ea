"""Tests for trade-core data contracts: construction-time validation."""

from datetime import datetime, timezone

import pytest

from trade_core.contracts import Candle, Direction, Fill, Side, Signal
from trade_core.errors import ValidationError

TS = datetime(2025, 7, 2, tzinfo=timezone.utc)


class TestSignal:
    @pytest.mark.parametrize("confidence", [-0.1, 100.5, 150.0])
    def test_confidence_out_of_range(self, confidence) -> None:
        with pytest.raises(ValidationError, match="confidence"):
            Signal(Direction.LONG, confidence, 10.0, 20.0)

    @pytest.mark.parametrize("stop, target", [(-1.0, 20.0), (10.0, -0.5)])
    def test_negative_distances(self, stop, target) -> None:
        with pytest.raises(ValidationError, match="negative"):
            Signal(Direction.SHORT, 50.0, stop, target)

    def test_bounds_are_inclusive(self) -> None:
        assert Signal(Direction.LONG, 100.0, 0.0, 0.0).confidence == 100.0
        assert Signal.hold("flat").confidence == 0.0


def test_fill_negative_size() -> None:
    with pytest.raises(ValidationError, match="Fill size"):
        Fill(Side.BUY, -1.0, 100.0, TS)
    assert Fill(Side.SELL, 0.0, 100.0, TS).size == 0.0


def test_candle_high_below_low() -> None:
    with pytest.raises(ValidationError, match="below low"):
        Candle(open=100.0, high=99.0, low=101.0, close=100.0, volume=1.0, timestamp=TS)
    doji = Candle(open=100.0, high=100.0, low=100.0, close=100.0, volume=0.0, timestamp=TS)
    assert doji.high == doji.low
