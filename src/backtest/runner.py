"""
Candle-driven backtest: replay candles in order, ask the Signal Source, simulate exits.

No lookahead: the source sees candles strictly before the current one.
Exits resolve against the current candle's low/high (stop wins a tie);
entries open at the current candle's close. Sizing goes through the RiskSizer.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

from config.trading_config import RiskConfig, SimulationConfig
from trade_core.contracts import (
    AccountState,
    Candle,
    ClosedTrade,
    Direction,
    Position,
    Signal,
)
from trade_core.errors import InsufficientDataError
from trade_core.risk_sizer import size_trade
from trade_core.signal_source import SignalSource
from trade_core.stats import TradeStats, compute_stats

logger = logging.getLogger("trader.backtest")

EventCallback = Callable[[str, dict], None]


@dataclass
class SimulationResult:
    """Result of a simulation run."""

    initial_balance: float
    final_balance: float
    trades: list[ClosedTrade] = field(default_factory=list)
    signal_calls: int = 0
    errors: int = 0
    open_position: Position | None = None
    stats: TradeStats = field(default_factory=lambda: compute_stats([]))
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def total_return_pct(self) -> float:
        if self.initial_balance <= 0:
            return 0.0
        return (self.final_balance - self.initial_balance) / self.initial_balance * 100


def filter_candles(
    candles: Sequence[Candle],
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Candle]:
    """Candles with ``start <= timestamp < end``; either bound may be open."""
    return [
        c for c in candles
        if (start is None or c.timestamp >= start) and (end is None or c.timestamp < end)
    ]


def exit_touch(position: Position, candle: Candle) -> tuple[float, str] | None:
    """(exit_price, reason) if the candle reaches the stop or target. Stop wins a tie."""
    if position.direction == Direction.LONG:
        stop_hit = candle.low <= position.stop_loss_price
        target_hit = candle.high >= position.take_profit_price
    else:
        stop_hit = candle.high >= position.stop_loss_price
        target_hit = candle.low <= position.take_profit_price
    if stop_hit:
        return position.stop_loss_price, "stop_loss"
    if target_hit:
        return position.take_profit_price, "take_profit"
    return None


class SimulationEngine:
    """Single-instrument replay; state is FLAT or OPEN.

    Parameters
    ----------
    source:
        Signal Source consulted while FLAT, at most ``max_signal_calls`` times.
    config:
        Warm-up, window size, confidence threshold, call budget and spacing.
    risk:
        RiskSizer parameters.
    sleep, clock:
        Throttle primitives; inject fakes to run without waiting.
    on_event:
        Optional callback ``(kind, payload)`` for signal/entry/exit/error events.
    """

    def __init__(
        self,
        source: SignalSource,
        config: SimulationConfig | None = None,
        *,
        risk: RiskConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_event: EventCallback | None = None,
    ) -> None:
        self.source = source
        self.config = config or SimulationConfig()
        self.risk = risk or RiskConfig()
        self._sleep = sleep
        self._clock = clock
        self._on_event = on_event

        self.balance = self.config.initial_balance
        self.position: Position | None = None
        self.trades: list[ClosedTrade] = []
        self.signal_calls = 0
        self.errors = 0
        self._budget_logged = False

    def _emit(self, kind: str, payload: dict) -> None:
        if self._on_event is not None:
            self._on_event(kind, payload)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _check_exit(self, candle: Candle) -> None:
        touch = exit_touch(self.position, candle)
        if touch is None:
            return
        price, reason = touch
        trade = self.position.close(price, candle.timestamp, reason)
        self.balance += trade.pnl
        self.trades.append(trade)
        self.position = None
        logger.info(
            "[%s] TRADE CLOSED %s entry=%.2f exit=%.2f pnl=%.2f (%s)",
            candle.timestamp.isoformat(), trade.side.value, trade.entry_price, price, trade.pnl, reason,
        )
        self._emit("exit", {"trade": trade, "reason": reason})

    def _history(self) -> list[ClosedTrade]:
        n = self.config.history_size
        return list(reversed(self.trades[-n:])) if n > 0 else []

    def _consider_entry(self, window: Sequence[Candle], candle: Candle) -> None:
        if self.signal_calls >= self.config.max_signal_calls:
            if not self._budget_logged:
                logger.warning(
                    "Signal call budget (%d) exhausted; no new entries", self.config.max_signal_calls,
                )
                self._budget_logged = True
            return

        self.signal_calls += 1
        started = self._clock()
        try:
            signal = self.source.generate(window, self._history())
            self._handle_signal(signal, candle)
        finally:
            remaining = self.config.min_call_interval_s - (self._clock() - started)
            if remaining > 0:
                self._sleep(remaining)

    def _handle_signal(self, signal: Signal, candle: Candle) -> None:
        ts = candle.timestamp.isoformat()
        self._emit("signal", {"signal": signal, "timestamp": candle.timestamp})
        if not signal.is_actionable or signal.confidence < self.config.min_confidence:
            logger.info(
                "[%s] SIGNAL REJECTED %s confidence=%.2f (threshold %.2f)",
                ts, signal.direction.value, signal.confidence, self.config.min_confidence,
            )
            return

        account = AccountState(
            balance=self.balance, last_price=candle.close, leverage=self.config.leverage,
        )
        params = size_trade(account, signal, self.risk)
        if params is None:
            logger.warning("[%s] TRADE BLOCKED %s: sizing rejected", ts, signal.direction.value)
            return

        self.position = Position(
            direction=signal.direction,
            entry_price=candle.close,
            entry_time=candle.timestamp,
            size=params.size,
            stop_loss_price=params.stop_loss_price,
            take_profit_price=params.take_profit_price,
            metadata={"reason": signal.reason, "confidence": signal.confidence},
        )
        logger.info(
            "[%s] TRADE PLACED %s size=%s entry=%.2f stop=%.2f target=%.2f",
            ts, signal.direction.value, params.size, candle.close,
            params.stop_loss_price, params.take_profit_price,
        )
        self._emit("entry", {"position": self.position, "signal": signal})

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, candles: Sequence[Candle]) -> SimulationResult:
        """Replay *candles*; raises InsufficientDataError before the loop when too short."""
        warmup = self.config.warmup
        if len(candles) < warmup:
            raise InsufficientDataError(
                f"Need at least {warmup} candles for warm-up, got {len(candles)}"
            )
        logger.info("Starting simulation over %d candles (warm-up %d)", len(candles), warmup)

        for i in range(warmup, len(candles)):
            candle = candles[i]
            window = candles[max(0, i - self.config.window_size):i]
            try:
                if self.position is not None:
                    self._check_exit(candle)
                if self.position is None:
                    self._consider_entry(window, candle)
            except Exception as exc:
                self.errors += 1
                logger.error("[%s] Simulation step failed: %s", candle.timestamp.isoformat(), exc)
                self._emit("error", {"timestamp": candle.timestamp, "error": str(exc)})

        if self.position is not None:
            logger.info(
                "Run ended with an open %s position from %s (not liquidated)",
                self.position.direction.value, self.position.entry_time.isoformat(),
            )

        return SimulationResult(
            initial_balance=self.config.initial_balance,
            final_balance=self.balance,
            trades=list(self.trades),
            signal_calls=self.signal_calls,
            errors=self.errors,
            open_position=self.position,
            stats=compute_stats(self.trades, self.config.initial_balance),
            start_time=candles[0].timestamp if candles else None,
            end_time=candles[-1].timestamp if candles else None,
        )


def run_simulation(
    candles: Sequence[Candle],
    source: SignalSource,
    config: SimulationConfig | None = None,
    *,
    risk: RiskConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    on_event: EventCallback | None = None,
) -> SimulationResult:
    """Replay *candles* through *source* and the RiskSizer on a fresh simulated account."""
    engine = SimulationEngine(source, config, risk=risk, sleep=sleep, clock=clock, on_event=on_event)
    return engine.run(candles)
