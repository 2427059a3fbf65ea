"""
Alpaca crypto candle fetcher: implements CandleFetcher using the alpaca-py SDK.

Maps Alpaca crypto bars (e.g. "BTC/USD") to trade_core Candle with float
volume and UTC timestamps. Keys are optional for crypto market data but
raise the rate limit when supplied.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from data.fetcher import FetchResult
from trade_core.contracts import Candle

logger = logging.getLogger("trader.data")

_TIMEFRAME_MAP = {
    "1m": ("Minute", 1),
    "3m": ("Minute", 3),
    "5m": ("Minute", 5),
    "15m": ("Minute", 15),
    "30m": ("Minute", 30),
    "1h": ("Hour", 1),
    "1d": ("Day", 1),
}


def _parse_timeframe(tf_str: str):
    """Convert string timeframe to an Alpaca TimeFrame."""
    from alpaca.data.timeframe import TimeFrame, TimeFrameUnit

    if tf_str not in _TIMEFRAME_MAP:
        raise ValueError(
            f"Unsupported timeframe '{tf_str}'. Supported: {list(_TIMEFRAME_MAP.keys())}"
        )
    unit_str, amount = _TIMEFRAME_MAP[tf_str]
    return TimeFrame(amount, getattr(TimeFrameUnit, unit_str))


class AlpacaCandleFetcher:
    """Fetch crypto OHLCV candles from the Alpaca Market Data API."""

    def __init__(self, api_key: str | None = None, api_secret: str | None = None) -> None:
        try:
            from alpaca.data.historical import CryptoHistoricalDataClient
        except ImportError:
            raise ImportError(
                "alpaca-py is required for AlpacaCandleFetcher. "
                "Install with: pip install 'signal-trader[data]'"
            )
        self._client = CryptoHistoricalDataClient(api_key or None, api_secret or None)

    def fetch(
        self,
        symbol: str,
        timeframe: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> FetchResult:
        """Fetch crypto bars; normalize timestamps to UTC."""
        from alpaca.data.requests import CryptoBarsRequest

        request_params = CryptoBarsRequest(
            symbol_or_symbols=symbol,
            timeframe=_parse_timeframe(timeframe),
            start=start,
            end=end,
            limit=limit,
        )
        response = self._client.get_crypto_bars(request_params)
        raw_bars = response.data.get(symbol, []) if hasattr(response, "data") else response.get(symbol, [])
        candles: list[Candle] = []
        for bar in raw_bars:
            ts = bar.timestamp
            ts = ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)
            candles.append(
                Candle(
                    open=float(bar.open),
                    high=float(bar.high),
                    low=float(bar.low),
                    close=float(bar.close),
                    volume=float(bar.volume),
                    timestamp=ts,
                    symbol=symbol,
                )
            )
        logger.info("Fetched %d candles for %s %s", len(candles), symbol, timeframe)
        return FetchResult(
            candles=candles,
            symbol=symbol,
            timeframe=timeframe,
            next_cursor=getattr(response, "next_page_token", None),
        )
