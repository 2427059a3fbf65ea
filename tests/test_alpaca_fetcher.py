"""Tests for the Alpaca crypto candle fetcher (mocked SDK). No network calls."""

import sys
from datetime import datetime, timezone
from types import ModuleType
from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture(autouse=True)
def alpaca_modules():
    """Mock the alpaca SDK modules so tests run without alpaca-py installed."""
    alpaca = ModuleType("alpaca")
    alpaca_data = ModuleType("alpaca.data")
    alpaca_data_historical = ModuleType("alpaca.data.historical")
    alpaca_data_requests = ModuleType("alpaca.data.requests")
    alpaca_data_timeframe = ModuleType("alpaca.data.timeframe")

    alpaca_data_historical.CryptoHistoricalDataClient = MagicMock()
    alpaca_data_requests.CryptoBarsRequest = MagicMock()

    class FakeTimeFrameUnit:
        Minute = "Minute"
        Hour = "Hour"
        Day = "Day"

    alpaca_data_timeframe.TimeFrameUnit = FakeTimeFrameUnit
    alpaca_data_timeframe.TimeFrame = MagicMock()

    mods = {
        "alpaca": alpaca,
        "alpaca.data": alpaca_data,
        "alpaca.data.historical": alpaca_data_historical,
        "alpaca.data.requests": alpaca_data_requests,
        "alpaca.data.timeframe": alpaca_data_timeframe,
    }
    with patch.dict(sys.modules, mods):
        # Clear any cached import of the fetcher module
        sys.modules.pop("data.alpaca_fetcher", None)
        yield mods


def _bar(ts: datetime, close: float = 100.5) -> MagicMock:
    bar = MagicMock()
    bar.open = 100.0
    bar.high = 101.0
    bar.low = 99.0
    bar.close = close
    bar.volume = 0.4213
    bar.timestamp = ts
    return bar


def test_maps_crypto_bars_to_candles() -> None:
    from data.alpaca_fetcher import AlpacaCandleFetcher

    response = MagicMock()
    response.data = {"BTC/USD": [_bar(datetime(2025, 7, 2, 0, 3, tzinfo=timezone.utc))]}
    response.next_page_token = None

    fetcher = AlpacaCandleFetcher()
    fetcher._client = MagicMock()
    fetcher._client.get_crypto_bars.return_value = response

    result = fetcher.fetch("BTC/USD", "3m", start=datetime(2025, 7, 2, tzinfo=timezone.utc))

    assert len(result.candles) == 1
    candle = result.candles[0]
    assert candle.symbol == "BTC/USD"
    assert candle.close == 100.5
    assert candle.volume == pytest.approx(0.4213)
    assert candle.timestamp.tzinfo is not None
    assert result.timeframe == "3m"
    assert result.next_cursor is None


def test_naive_timestamps_become_utc() -> None:
    from data.alpaca_fetcher import AlpacaCandleFetcher

    response = MagicMock()
    response.data = {"BTC/USD": [_bar(datetime(2025, 7, 2, 0, 3))]}
    response.next_page_token = "cursor-2"

    fetcher = AlpacaCandleFetcher("key", "secret")
    fetcher._client = MagicMock()
    fetcher._client.get_crypto_bars.return_value = response

    result = fetcher.fetch("BTC/USD", "1m")
    assert result.candles[0].timestamp == datetime(2025, 7, 2, 0, 3, tzinfo=timezone.utc)
    assert result.next_cursor == "cursor-2"


def test_empty_response() -> None:
    from data.alpaca_fetcher import AlpacaCandleFetcher

    response = MagicMock()
    response.data = {}
    response.next_page_token = None

    fetcher = AlpacaCandleFetcher()
    fetcher._client = MagicMock()
    fetcher._client.get_crypto_bars.return_value = response

    assert fetcher.fetch("BTC/USD", "3m").candles == []


def test_keys_are_optional(alpaca_modules) -> None:
    from data.alpaca_fetcher import AlpacaCandleFetcher

    AlpacaCandleFetcher("", "")
    client_cls = alpaca_modules["alpaca.data.historical"].CryptoHistoricalDataClient
    client_cls.assert_called_once_with(None, None)


def test_unsupported_timeframe() -> None:
    from data.alpaca_fetcher import AlpacaCandleFetcher

    fetcher = AlpacaCandleFetcher()
    fetcher._client = MagicMock()
    with pytest.raises(ValueError, match="Unsupported timeframe"):
        fetcher.fetch("BTC/USD", "7m")


def test_get_alpaca_fetcher_factory() -> None:
    from data import get_alpaca_fetcher
    from data.alpaca_fetcher import AlpacaCandleFetcher

    assert isinstance(get_alpaca_fetcher(), AlpacaCandleFetcher)
