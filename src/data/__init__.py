"""
Data pipeline: fetch OHLCV, normalize to UTC, persist candles, load CSV, aggregate.

Depends on trade_core.contracts for Candle; no dependency from trade_core back to data.
"""

from data.candle_store import CandleStore
from data.candles import aggregate_candles, load_candles_csv
from data.fetcher import CandleFetcher, FetchResult, StaticCandleFetcher

__all__ = [
    "aggregate_candles",
    "CandleFetcher",
    "CandleStore",
    "FetchResult",
    "load_candles_csv",
    "StaticCandleFetcher",
]


def get_alpaca_fetcher(api_key: str | None = None, api_secret: str | None = None):
    """Lazy import to avoid requiring alpaca-py when not used."""
    from data.alpaca_fetcher import AlpacaCandleFetcher

    return AlpacaCandleFetcher(api_key, api_secret)
