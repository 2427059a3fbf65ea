"""
Persist the protective exit plan of each entry (SQLite), one row per symbol.

The plan is written when the entry order is accepted and updated with the
re-anchored levels once the fill is confirmed. A later process reads it back
so ``LiveOrderExecutor.recover`` can protect a position it did not open:
after a crash between entry and exits, an exit batch failure, or a late fill
of an entry that timed out.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from trade_core.contracts import Direction


@dataclass(frozen=True)
class ExitPlan:
    symbol: str
    direction: Direction
    stop_loss_distance: float
    take_profit_distance: float
    entry_order_id: str
    created_at: datetime
    stop_loss_price: float | None = None
    take_profit_price: float | None = None

    @property
    def has_levels(self) -> bool:
        return self.stop_loss_price is not None and self.take_profit_price is not None

    def levels_from(self, entry_price: float) -> tuple[float, float]:
        """Stop and target anchored on ``entry_price`` by the planned distances."""
        sign = 1.0 if self.direction == Direction.LONG else -1.0
        return (
            entry_price - sign * self.stop_loss_distance,
            entry_price + sign * self.take_profit_distance,
        )


class ExitPlanStore:
    """SQLite-backed exit plans. Safe to share a file with the paper venue."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path), timeout=10.0)

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS exit_plans (
                    symbol TEXT PRIMARY KEY,
                    direction TEXT NOT NULL,
                    stop_loss_distance REAL NOT NULL,
                    take_profit_distance REAL NOT NULL,
                    entry_order_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    stop_loss_price REAL,
                    take_profit_price REAL
                )
                """
            )

    def save(self, plan: ExitPlan) -> None:
        """Insert or replace the plan for ``plan.symbol``."""
        with self._conn() as c:
            c.execute(
                """
                INSERT OR REPLACE INTO exit_plans (symbol, direction, stop_loss_distance, take_profit_distance,
                                                   entry_order_id, created_at, stop_loss_price, take_profit_price)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    plan.symbol,
                    plan.direction.value,
                    plan.stop_loss_distance,
                    plan.take_profit_distance,
                    plan.entry_order_id,
                    plan.created_at.astimezone(timezone.utc).isoformat(),
                    plan.stop_loss_price,
                    plan.take_profit_price,
                ),
            )

    def get(self, symbol: str) -> ExitPlan | None:
        with self._conn() as c:
            row = c.execute(
                """
                SELECT direction, stop_loss_distance, take_profit_distance, entry_order_id, created_at,
                       stop_loss_price, take_profit_price
                FROM exit_plans WHERE symbol = ?
                """,
                (symbol,),
            ).fetchone()
        if row is None:
            return None
        return ExitPlan(
            symbol=symbol,
            direction=Direction(row[0]),
            stop_loss_distance=row[1],
            take_profit_distance=row[2],
            entry_order_id=row[3],
            created_at=datetime.fromisoformat(row[4]),
            stop_loss_price=row[5],
            take_profit_price=row[6],
        )

    def clear(self, symbol: str) -> bool:
        """Drop the plan for ``symbol``. Returns True when one existed."""
        with self._conn() as c:
            cur = c.execute("DELETE FROM exit_plans WHERE symbol = ?", (symbol,))
            return cur.rowcount > 0
