"""
Persist and load OHLCV candles (SQLite). Timestamps in UTC.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from trade_core.contracts import Candle


def _utc_ts(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class CandleStore:
    """SQLite-backed candle storage. One file per path."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path))

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS candles (
                    symbol TEXT NOT NULL,
                    timeframe TEXT NOT NULL,
                    ts_utc TEXT NOT NULL,
                    open REAL NOT NULL,
                    high REAL NOT NULL,
                    low REAL NOT NULL,
                    close REAL NOT NULL,
                    volume REAL NOT NULL,
                    PRIMARY KEY (symbol, timeframe, ts_utc)
                )
                """
            )

    def write_candles(self, symbol: str, timeframe: str, candles: Sequence[Candle]) -> int:
        """Upsert candles (by symbol, timeframe, ts_utc). Returns the number written."""
        with self._conn() as c:
            c.executemany(
                """
                INSERT OR REPLACE INTO candles (symbol, timeframe, ts_utc, open, high, low, close, volume)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (symbol, timeframe, _utc_ts(k.timestamp).isoformat(), k.open, k.high, k.low, k.close, k.volume)
                    for k in candles
                ],
            )
        return len(candles)

    def get_candles(
        self,
        symbol: str,
        timeframe: str,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[Candle]:
        """Return candles with ``since <= ts < until`` in ascending time order."""
        q = "SELECT ts_utc, open, high, low, close, volume FROM candles WHERE symbol = ? AND timeframe = ?"
        params: list = [symbol, timeframe]
        if since is not None:
            q += " AND ts_utc >= ?"
            params.append(_utc_ts(since).isoformat())
        if until is not None:
            q += " AND ts_utc < ?"
            params.append(_utc_ts(until).isoformat())
        q += " ORDER BY ts_utc ASC"
        if limit is not None:
            q += " LIMIT ?"
            params.append(limit)
        with self._conn() as c:
            rows = c.execute(q, params).fetchall()
        return self._rows_to_candles(rows, symbol)

    def count_candles(self, symbol: str, timeframe: str) -> int:
        with self._conn() as c:
            row = c.execute(
                "SELECT COUNT(*) FROM candles WHERE symbol = ? AND timeframe = ?",
                (symbol, timeframe),
            ).fetchone()
        return row[0] if row else 0

    def get_last_candles(self, symbol: str, timeframe: str, n: int) -> list[Candle]:
        """Return the last n candles in ascending order. Feeds the live cycle window."""
        with self._conn() as c:
            rows = c.execute(
                "SELECT ts_utc, open, high, low, close, volume FROM candles "
                "WHERE symbol = ? AND timeframe = ? ORDER BY ts_utc DESC LIMIT ?",
                (symbol, timeframe, n),
            ).fetchall()
        return self._rows_to_candles(list(reversed(rows)), symbol)

    @staticmethod
    def _rows_to_candles(rows: list, symbol: str) -> list[Candle]:
        out: list[Candle] = []
        for ts_utc, o, h, l, c, vol in rows:
            ts = datetime.fromisoformat(ts_utc.replace("Z", "+00:00"))
            if ts.tzinfo is None:
                ts = ts.replace(tzinfo=timezone.utc)
            out.append(Candle(open=o, high=h, low=l, close=c, volume=vol, timestamp=ts, symbol=symbol))
        return out
