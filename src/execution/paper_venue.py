"""
Paper venue: single-writer order/fill/position state in SQLite, restart-safe.

Implements the Venue protocol without live capital. Prices arrive through
``update_price``; resting entry limits, stop-limits and take-profit limits are
matched against each new price. Marketable entries fill on submission.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence

from execution.models import (
    OrderAck,
    OrderSpec,
    OrderTag,
    OrderType,
    VenueOrder,
    VenuePosition,
)
from execution.venue import OrderRejectedError
from trade_core.contracts import Direction, Fill, Side

logger = logging.getLogger("trader.paper")

_EPS = 1e-9


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _fills_from_rows(rows: list[tuple]) -> list[Fill]:
    """Rows of (id, order_id, side, size, price, ts_utc) -> Fill."""
    return [
        Fill(
            side=Side(r[2]),
            size=r[3],
            price=r[4],
            timestamp=_parse_ts(r[5]),
            order_id=r[1],
            fill_id=r[0],
        )
        for r in rows
    ]


class PaperVenue:
    """
    Simulated exchange account for one or more symbols.

    Single writer (one process). Positions are netted per symbol; realized
    PnL is credited to the balance when a position is reduced or closed.
    When a position goes flat, its remaining reduce-only orders are cancelled.
    """

    def __init__(
        self,
        state_path: str | Path,
        *,
        initial_balance: float = 10_000.0,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._path = Path(state_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._initial_balance = initial_balance
        self._clock = clock
        self._init_schema()

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path), timeout=10.0)

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS orders (
                    id TEXT PRIMARY KEY,
                    symbol TEXT NOT NULL,
                    side TEXT NOT NULL,
                    size REAL NOT NULL,
                    order_type TEXT NOT NULL,
                    tag TEXT NOT NULL,
                    limit_price REAL,
                    stop_price REAL,
                    reduce_only INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL,
                    ts_utc TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS fills (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT UNIQUE NOT NULL,
                    order_id TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    side TEXT NOT NULL,
                    size REAL NOT NULL,
                    price REAL NOT NULL,
                    ts_utc TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS positions (
                    symbol TEXT PRIMARY KEY,
                    size REAL NOT NULL,
                    avg_price REAL NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS prices (
                    symbol TEXT PRIMARY KEY,
                    price REAL NOT NULL,
                    ts_utc TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS cash (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    balance REAL NOT NULL
                )
                """
            )
            c.execute("INSERT OR IGNORE INTO cash (id, balance) VALUES (1, ?)", (self._initial_balance,))

    # ------------------------------------------------------------------
    # Internal state helpers (all take an open connection)
    # ------------------------------------------------------------------

    @staticmethod
    def _last_price(c: sqlite3.Connection, symbol: str) -> float | None:
        row = c.execute("SELECT price FROM prices WHERE symbol = ?", (symbol,)).fetchone()
        return float(row[0]) if row else None

    @staticmethod
    def _net_size(c: sqlite3.Connection, symbol: str) -> float:
        row = c.execute("SELECT size FROM positions WHERE symbol = ?", (symbol,)).fetchone()
        return float(row[0]) if row else 0.0

    def _insert_order(self, c: sqlite3.Connection, spec: OrderSpec, ts: str) -> str:
        order_id = str(uuid.uuid4())
        c.execute(
            """INSERT INTO orders (id, symbol, side, size, order_type, tag, limit_price, stop_price,
                                   reduce_only, status, ts_utc)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'open', ?)""",
            (
                order_id,
                spec.symbol,
                spec.side.value,
                spec.size,
                spec.order_type.value,
                spec.tag.value,
                spec.limit_price,
                spec.stop_price,
                int(spec.reduce_only),
                ts,
            ),
        )
        return order_id

    def _fill_order(
        self,
        c: sqlite3.Connection,
        order_id: str,
        symbol: str,
        side: Side,
        size: float,
        price: float,
        ts: str,
    ) -> None:
        """Record a fill, mark the order filled and net it into the position."""
        c.execute(
            "INSERT INTO fills (id, order_id, symbol, side, size, price, ts_utc) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (str(uuid.uuid4()), order_id, symbol, side.value, size, price, ts),
        )
        c.execute("UPDATE orders SET status = 'filled' WHERE id = ?", (order_id,))

        signed = size if side == Side.BUY else -size
        row = c.execute("SELECT size, avg_price FROM positions WHERE symbol = ?", (symbol,)).fetchone()
        current, avg = (float(row[0]), float(row[1])) if row else (0.0, 0.0)

        if abs(current) < _EPS or (current > 0) == (signed > 0):
            new_size = current + signed
            new_avg = (abs(current) * avg + size * price) / abs(new_size)
            realized = 0.0
        else:
            closed = min(abs(current), size)
            sign = 1.0 if current > 0 else -1.0
            realized = (price - avg) * closed * sign
            new_size = current + signed
            if abs(new_size) < _EPS:
                new_size, new_avg = 0.0, 0.0
            elif (new_size > 0) == (current > 0):
                new_avg = avg
            else:
                new_avg = price  # flipped; remainder opens at this fill

        c.execute(
            "INSERT OR REPLACE INTO positions (symbol, size, avg_price, updated_at) VALUES (?, ?, ?, ?)",
            (symbol, new_size, new_avg, ts),
        )
        if realized:
            c.execute("UPDATE cash SET balance = balance + ? WHERE id = 1", (realized,))
        logger.info("Paper fill %s %s %s @ %s (order %s)", symbol, side.value, size, price, order_id)

        if new_size == 0.0:
            cancelled = c.execute(
                "UPDATE orders SET status = 'cancelled' WHERE symbol = ? AND status = 'open' AND reduce_only = 1",
                (symbol,),
            ).rowcount
            if cancelled:
                logger.info("Paper %s flat, cancelled %d reduce-only order(s)", symbol, cancelled)

    # ------------------------------------------------------------------
    # Venue protocol
    # ------------------------------------------------------------------

    def submit_entry_order(self, spec: OrderSpec) -> OrderAck:
        """Accept an entry; fill immediately when marketable at the last price."""
        if spec.size <= 0:
            raise OrderRejectedError(f"Order size must be positive, got {spec.size}")
        if spec.order_type == OrderType.LIMIT and spec.limit_price is None:
            raise OrderRejectedError("Limit order without limit_price")
        if spec.order_type == OrderType.STOP:
            raise OrderRejectedError("Stop orders are only accepted as reduce-only exits")
        ts = _utc(self._clock()).isoformat()
        with self._conn() as c:
            last = self._last_price(c, spec.symbol)
            if last is None:
                raise OrderRejectedError(f"No price for {spec.symbol}; call update_price first")
            order_id = self._insert_order(c, spec, ts)
            if self._entry_marketable(spec, last):
                self._fill_order(c, order_id, spec.symbol, spec.side, spec.size, last, ts)
                return OrderAck("filled", (order_id,))
        return OrderAck("open", (order_id,))

    @staticmethod
    def _entry_marketable(spec: OrderSpec, price: float) -> bool:
        if spec.order_type == OrderType.MARKET:
            return True
        if spec.side == Side.BUY:
            return price <= spec.limit_price
        return price >= spec.limit_price

    def submit_exit_batch(self, specs: Sequence[OrderSpec]) -> OrderAck:
        """Rest all exit orders in one transaction, or reject the whole batch."""
        if not specs:
            raise OrderRejectedError("Empty exit batch")
        ts = _utc(self._clock()).isoformat()
        with self._conn() as c:
            for spec in specs:
                net = self._net_size(c, spec.symbol)
                if not spec.reduce_only:
                    raise OrderRejectedError(f"Exit order for {spec.symbol} must be reduce-only")
                if abs(net) < _EPS:
                    raise OrderRejectedError(f"No open position in {spec.symbol} to protect")
                if (net > 0) == (spec.side == Side.BUY):
                    raise OrderRejectedError(f"Exit side {spec.side.value} would increase the {spec.symbol} position")
                if spec.size > abs(net) + _EPS:
                    raise OrderRejectedError(f"Exit size {spec.size} exceeds position {abs(net)}")
                if spec.order_type == OrderType.STOP and spec.stop_price is None:
                    raise OrderRejectedError("Stop order without stop_price")
            order_ids = tuple(self._insert_order(c, spec, ts) for spec in specs)
        return OrderAck("accepted", order_ids)

    def poll_recent_fills(self, limit: int = 100) -> list[Fill]:
        """Most recent fills, oldest first."""
        return list(reversed(self.list_fills(limit=limit)))

    def fill_history(self, symbol: str) -> list[Fill]:
        """All fills for ``symbol`` in execution order."""
        with self._conn() as c:
            rows = c.execute(
                "SELECT id, order_id, side, size, price, ts_utc FROM fills WHERE symbol = ? ORDER BY seq",
                (symbol,),
            ).fetchall()
        return _fills_from_rows(rows)

    def get_open_positions(self) -> list[VenuePosition]:
        with self._conn() as c:
            rows = c.execute("SELECT symbol, size, avg_price FROM positions WHERE size != 0").fetchall()
        return [
            VenuePosition(
                symbol=r[0],
                direction=Direction.LONG if r[1] > 0 else Direction.SHORT,
                size=abs(r[1]),
                entry_price=r[2],
            )
            for r in rows
        ]

    def get_open_orders(self) -> list[VenueOrder]:
        with self._conn() as c:
            rows = c.execute(
                """SELECT id, symbol, side, size, order_type, tag, limit_price, stop_price, reduce_only
                   FROM orders WHERE status = 'open' ORDER BY ts_utc, rowid"""
            ).fetchall()
        return [
            VenueOrder(
                order_id=r[0],
                symbol=r[1],
                side=Side(r[2]),
                size=r[3],
                order_type=OrderType(r[4]),
                tag=OrderTag(r[5]),
                limit_price=r[6],
                stop_price=r[7],
                reduce_only=bool(r[8]),
            )
            for r in rows
        ]

    def get_balance(self) -> float:
        with self._conn() as c:
            row = c.execute("SELECT balance FROM cash WHERE id = 1").fetchone()
            return float(row[0]) if row else self._initial_balance

    # ------------------------------------------------------------------
    # Paper-only controls
    # ------------------------------------------------------------------

    def cancel_order(self, order_id: str) -> bool:
        with self._conn() as c:
            return c.execute(
                "UPDATE orders SET status = 'cancelled' WHERE id = ? AND status = 'open'", (order_id,)
            ).rowcount > 0

    def last_price(self, symbol: str) -> float | None:
        with self._conn() as c:
            return self._last_price(c, symbol)

    def update_price(self, symbol: str, price: float, timestamp: datetime | None = None) -> list[Fill]:
        """Record a new price for *symbol* and fill every resting order it reaches.

        Sell stops trigger at or below ``stop_price`` and fill at this price
        unless it is below their limit; buy stops mirror that. Take-profit and
        entry limits fill at their limit price once it is reached.
        """
        ts = _utc(timestamp or self._clock()).isoformat()
        with self._conn() as c:
            start_seq = c.execute("SELECT COALESCE(MAX(seq), 0) FROM fills").fetchone()[0]
            c.execute(
                "INSERT OR REPLACE INTO prices (symbol, price, ts_utc) VALUES (?, ?, ?)",
                (symbol, price, ts),
            )
            rows = c.execute(
                """SELECT id, side, size, order_type, limit_price, stop_price FROM orders
                   WHERE symbol = ? AND status = 'open' ORDER BY reduce_only, ts_utc, rowid""",
                (symbol,),
            ).fetchall()
            for order_id, side_raw, size, type_raw, limit_price, stop_price in rows:
                status = c.execute("SELECT status FROM orders WHERE id = ?", (order_id,)).fetchone()[0]
                if status != "open":
                    continue
                side = Side(side_raw)
                fill_price = self._match_price(side, OrderType(type_raw), price, limit_price, stop_price)
                if fill_price is not None:
                    self._fill_order(c, order_id, symbol, side, size, fill_price, ts)
            rows = c.execute(
                "SELECT id, order_id, side, size, price, ts_utc FROM fills WHERE seq > ? ORDER BY seq",
                (start_seq,),
            ).fetchall()
        return _fills_from_rows(rows)

    @staticmethod
    def _match_price(
        side: Side,
        order_type: OrderType,
        price: float,
        limit_price: float | None,
        stop_price: float | None,
    ) -> float | None:
        if order_type == OrderType.MARKET:
            return price
        if order_type == OrderType.STOP:
            if side == Side.SELL and price <= stop_price:
                return price if limit_price is None or price >= limit_price else None
            if side == Side.BUY and price >= stop_price:
                return price if limit_price is None or price <= limit_price else None
            return None
        if side == Side.BUY and price <= limit_price:
            return limit_price
        if side == Side.SELL and price >= limit_price:
            return limit_price
        return None

    def list_fills(self, symbol: str | None = None, limit: int = 100) -> list[Fill]:
        """Fills newest first, optionally for one symbol."""
        with self._conn() as c:
            if symbol:
                rows = c.execute(
                    "SELECT id, order_id, side, size, price, ts_utc FROM fills WHERE symbol = ? ORDER BY seq DESC LIMIT ?",
                    (symbol, limit),
                ).fetchall()
            else:
                rows = c.execute(
                    "SELECT id, order_id, side, size, price, ts_utc FROM fills ORDER BY seq DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return _fills_from_rows(rows)
