"""
Candle files and transforms: CSV loading and fixed-factor aggregation.

CSV columns: timestamp, open, high, low, close, volume. ``timestamp`` may be
Unix seconds or ISO-8601; naive timestamps are taken as UTC.
"""

from __future__ import annotations

import csv
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from trade_core.contracts import Candle
from trade_core.errors import ValidationError

_TIME_COLUMNS = ("timestamp", "time", "ts")


def parse_timestamp(value: str) -> datetime:
    """Unix seconds (int or float) or ISO-8601 -> aware UTC datetime."""
    value = value.strip()
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except ValueError:
        pass
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)


def load_candles_csv(path: str | Path, symbol: str | None = None) -> list[Candle]:
    """Read candles from CSV, sorted ascending. Duplicate timestamps keep the last row."""
    path = Path(path)
    by_ts: dict[datetime, Candle] = {}
    with path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        fields = {name.strip().lower(): name for name in reader.fieldnames or []}
        time_col = next((fields[c] for c in _TIME_COLUMNS if c in fields), None)
        missing = [c for c in ("open", "high", "low", "close") if c not in fields]
        if time_col is None or missing:
            raise ValidationError(
                f"{path}: CSV needs a timestamp column and open/high/low/close (missing {missing or ['timestamp']})"
            )
        for line_no, row in enumerate(reader, start=2):
            try:
                ts = parse_timestamp(row[time_col])
                candle = Candle(
                    open=float(row[fields["open"]]),
                    high=float(row[fields["high"]]),
                    low=float(row[fields["low"]]),
                    close=float(row[fields["close"]]),
                    volume=float(row[fields["volume"]]) if "volume" in fields and row[fields["volume"]] else 0.0,
                    timestamp=ts,
                    symbol=symbol,
                )
            except (TypeError, ValueError, ValidationError) as exc:
                raise ValidationError(f"{path}:{line_no}: bad candle row: {exc}") from exc
            by_ts[ts] = candle
    return [by_ts[ts] for ts in sorted(by_ts)]


def aggregate_candles(candles: Sequence[Candle], factor: int) -> list[Candle]:
    """Merge every ``factor`` consecutive candles into one (e.g. 1m -> 3m).

    Groups align to the newest candle; leading candles that do not fill a
    whole group are dropped. Each merged candle takes the first open, the
    max high, the min low, the last close, the summed volume and the last
    timestamp of its group.
    """
    if factor < 1:
        raise ValueError(f"factor must be >= 1, got {factor}")
    if factor == 1:
        return list(candles)
    usable = len(candles) - len(candles) % factor
    tail = list(candles)[len(candles) - usable:]
    out: list[Candle] = []
    for i in range(0, usable, factor):
        group = tail[i:i + factor]
        out.append(
            Candle(
                open=group[0].open,
                high=max(c.high for c in group),
                low=min(c.low for c in group),
                close=group[-1].close,
                volume=sum(c.volume for c in group),
                timestamp=group[-1].timestamp,
                symbol=group[-1].symbol,
            )
        )
    return out
