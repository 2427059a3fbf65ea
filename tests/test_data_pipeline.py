"""Integration tests for the data pipeline: candle store, CSV loading, aggregation."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from data import CandleStore, StaticCandleFetcher, aggregate_candles, load_candles_csv
from data.candles import parse_timestamp
from trade_core.contracts import Candle
from trade_core.errors import ValidationError

T0 = datetime(2025, 7, 2, 0, 0, tzinfo=timezone.utc)


def _candle(minute: int, close: float, volume: float = 1.0) -> Candle:
    return Candle(close - 1, close + 1, close - 2, close, volume, T0 + timedelta(minutes=minute), "BTC/USD")


# ---------------------------------------------------------------------------
# CandleStore
# ---------------------------------------------------------------------------


def test_store_write_and_get() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store = CandleStore(Path(tmp) / "candles.db")
        assert store.write_candles("BTC/USD", "3m", [_candle(0, 100.0), _candle(3, 101.0)]) == 2
        out = store.get_candles("BTC/USD", "3m")
        assert [c.close for c in out] == [100.0, 101.0]
        assert out[0].timestamp == T0
        assert out[0].symbol == "BTC/USD"
        assert store.count_candles("BTC/USD", "3m") == 2
        assert store.count_candles("BTC/USD", "1m") == 0


def test_store_upserts_by_timestamp(tmp_path: Path) -> None:
    store = CandleStore(tmp_path / "candles.db")
    store.write_candles("BTC/USD", "3m", [_candle(0, 100.0)])
    store.write_candles("BTC/USD", "3m", [_candle(0, 105.0)])
    (only,) = store.get_candles("BTC/USD", "3m")
    assert only.close == 105.0


def test_store_range_and_last(tmp_path: Path) -> None:
    store = CandleStore(tmp_path / "candles.db")
    store.write_candles("BTC/USD", "3m", [_candle(3 * i, 100.0 + i) for i in range(6)])
    ranged = store.get_candles("BTC/USD", "3m", since=T0 + timedelta(minutes=3), until=T0 + timedelta(minutes=9))
    assert [c.close for c in ranged] == [101.0, 102.0]
    last3 = store.get_last_candles("BTC/USD", "3m", 3)
    assert [c.close for c in last3] == [103.0, 104.0, 105.0]
    assert len(store.get_candles("BTC/USD", "3m", limit=2)) == 2


def test_static_fetcher_filters(tmp_path: Path) -> None:
    fetcher = StaticCandleFetcher([_candle(i, 100.0 + i) for i in range(5)])
    result = fetcher.fetch("BTC/USD", "1m", start=T0 + timedelta(minutes=1), limit=2)
    assert [c.close for c in result.candles] == [103.0, 104.0]


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def test_load_csv_sorts_and_dedupes(tmp_path: Path) -> None:
    path = tmp_path / "btc.csv"
    path.write_text(
        "timestamp,open,high,low,close,volume\n"
        "1751414580,101,102,100,101.5,2\n"
        "2025-07-02T00:00:00Z,100,101,99,100.5,1\n"
        "1751414580,101,103,100,102.5,3\n"
    )
    candles = load_candles_csv(path, symbol="BTC/USD")
    assert len(candles) == 2
    assert candles[0].timestamp == T0
    assert candles[1].timestamp == T0 + timedelta(minutes=3)
    assert candles[1].close == 102.5
    assert candles[1].symbol == "BTC/USD"


def test_load_csv_alternate_headers(tmp_path: Path) -> None:
    path = tmp_path / "btc.csv"
    path.write_text("Time,Open,High,Low,Close\n2025-07-02 00:00:00,1,2,0.5,1.5\n")
    (candle,) = load_candles_csv(path)
    assert candle.volume == 0.0
    assert candle.timestamp.tzinfo is not None


def test_load_csv_rejects_bad_input(tmp_path: Path) -> None:
    missing = tmp_path / "missing.csv"
    missing.write_text("timestamp,open,high,close\n1,1,1,1\n")
    with pytest.raises(ValidationError, match="low"):
        load_candles_csv(missing)

    bad_row = tmp_path / "bad.csv"
    bad_row.write_text("timestamp,open,high,low,close\n1751414400,1,2,x,1\n")
    with pytest.raises(ValidationError, match=":2:"):
        load_candles_csv(bad_row)

    inverted = tmp_path / "inverted.csv"
    inverted.write_text("timestamp,open,high,low,close\n1751414400,1,2,1,1.5\n1751414580,1,1,3,2\n")
    with pytest.raises(ValidationError, match=":3: bad candle row.*below low"):
        load_candles_csv(inverted)


def test_parse_timestamp_forms() -> None:
    assert parse_timestamp("1751414400") == T0
    assert parse_timestamp("2025-07-02T00:00:00+00:00") == T0
    assert parse_timestamp("2025-07-02T02:00:00+02:00") == T0


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def test_aggregate_three_to_one() -> None:
    ones = [_candle(i, 100.0 + i, volume=1.0 + i) for i in range(7)]
    threes = aggregate_candles(ones, 3)
    # the oldest candle does not fill a group and is dropped
    assert len(threes) == 2
    first = threes[0]
    assert first.open == ones[1].open
    assert first.close == ones[3].close
    assert first.high == max(c.high for c in ones[1:4])
    assert first.low == min(c.low for c in ones[1:4])
    assert first.volume == pytest.approx(2.0 + 3.0 + 4.0)
    assert first.timestamp == ones[3].timestamp
    assert threes[-1].timestamp == ones[-1].timestamp


def test_aggregate_factor_bounds() -> None:
    ones = [_candle(i, 100.0) for i in range(3)]
    assert aggregate_candles(ones, 1) == ones
    with pytest.raises(ValueError):
        aggregate_candles(ones, 0)
