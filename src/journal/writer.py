"""
Trade ledger: append-only JSON lines for signals, orders, fills, closed trades and cycles.

Closed trades are keyed; a trade already present in the file (or written
earlier by this process) is not written again, so overlapping cycles that
re-derive the same ClosedTrade do not double-count it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from trade_core.contracts import ClosedTrade, Fill, Signal

logger = logging.getLogger("trader.journal")


def _serialize(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return {k: _serialize(v) for k, v in asdict(obj).items()}
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(x) for x in obj]
    return obj


def trade_key(trade: ClosedTrade | dict) -> str:
    """Stable identity of a closed trade: side, entry/exit time and price, size."""
    if isinstance(trade, ClosedTrade):
        trade = _serialize(trade)
    return "|".join(
        str(trade.get(k))
        for k in ("side", "entry_time", "entry_price", "exit_time", "exit_price", "size")
    )


class JournalWriter:
    """Append-only ledger. Each line is a JSON object with ``event`` and ``ts_utc``."""

    def __init__(self, path: str | Path, *, echo_stdout: bool = False) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._echo = echo_stdout
        self._trade_keys = self._load_trade_keys()

    @property
    def path(self) -> Path:
        return self._path

    def _load_trade_keys(self) -> set[str]:
        keys: set[str] = set()
        if not self._path.exists():
            return keys
        with open(self._path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping unreadable ledger line in %s", self._path)
                    continue
                if record.get("event") == "trade":
                    keys.add(record.get("key") or trade_key(record))
        return keys

    def _write(self, event_type: str, payload: dict) -> None:
        record = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event_type, **payload}
        line = json.dumps(_serialize(record)) + "\n"
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(line)
        if self._echo:
            print(line.rstrip())

    def signal(self, symbol: str, signal: Signal, **extra: Any) -> None:
        self._write(
            "signal",
            {
                "symbol": symbol,
                "direction": signal.direction.value,
                "confidence": signal.confidence,
                "stop_loss_distance": signal.stop_loss_distance,
                "take_profit_distance": signal.take_profit_distance,
                "reason": signal.reason,
                **extra,
            },
        )

    def order(self, order_id: str | None, symbol: str, state: str, **extra: Any) -> None:
        self._write("order", {"order_id": order_id, "symbol": symbol, "state": state, **extra})

    def fill(self, symbol: str, fill: Fill, **extra: Any) -> None:
        self._write(
            "fill",
            {
                "symbol": symbol,
                "fill_id": fill.fill_id,
                "order_id": fill.order_id,
                "side": fill.side.value,
                "size": fill.size,
                "price": fill.price,
                "fill_time": fill.timestamp,
                **extra,
            },
        )

    def trade(self, symbol: str, trade: ClosedTrade, **extra: Any) -> bool:
        """Append a closed trade unless its key is already in the ledger. Returns True if written."""
        key = trade_key(trade)
        if key in self._trade_keys:
            logger.debug("Trade %s already in ledger, skipped", key)
            return False
        self._trade_keys.add(key)
        self._write("trade", {"symbol": symbol, "key": key, **_serialize(trade), **extra})
        return True

    def cycle(self, symbol: str, **metrics: Any) -> None:
        self._write("cycle", {"symbol": symbol, **metrics})

    def read_events(self, event_type: str | None = None) -> list[dict]:
        """All ledger records, optionally filtered by event type."""
        if not self._path.exists():
            return []
        out = []
        with open(self._path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                record = json.loads(line)
                if event_type is None or record.get("event") == event_type:
                    out.append(record)
        return out
