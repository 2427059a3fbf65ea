"""
Trading cycle driver: one decision per cycle, repeated at a fixed interval.

Per cycle:
  1. load the latest candle window (and push the last price to a paper venue)
  2. recovery pass: protect any open position that lacks exit orders
  3. if flat: ask the Signal Source, size through the RiskSizer, enter
  4. match the full fill history FIFO and append new closed trades to the ledger

Metrics are returned per cycle; nothing is stored globally.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Sequence

import click

from config.trading_config import TradingConfig
from execution.live_executor import LiveOrderExecutor
from execution.models import ExecutionState
from execution.venue import Venue, VenueError
from journal.writer import JournalWriter
from trade_core.contracts import AccountState, Candle, Fill, Signal
from trade_core.fill_matcher import last_closed_trades, match_fills
from trade_core.risk_sizer import reject_reason, size_trade
from trade_core.signal_source import SafeSignalSource, SignalSource

from cli.structured_log import StructuredEventLogger

logger = logging.getLogger("trader.scheduler")

CandleProvider = Callable[[], Sequence[Candle]]
PriceHook = Callable[[Candle], Sequence[Fill]]


def parse_tf_minutes(timeframe: str) -> int:
    """Convert a timeframe string like '3m' or '1h' to minutes."""
    tf = timeframe.strip().lower()
    if tf.endswith("m"):
        return int(tf[:-1])
    if tf.endswith("h"):
        return int(tf[:-1]) * 60
    if tf.endswith("d"):
        return int(tf[:-1]) * 1440
    raise ValueError(f"Unsupported timeframe: {timeframe!r} (use e.g. '3m', '1h')")


@dataclass
class CycleMetrics:
    """What one cycle saw and did."""

    started_at: datetime
    action: str = "hold"
    candles: int = 0
    direction: str | None = None
    confidence: float = 0.0
    execution_state: str | None = None
    trades_recorded: int = 0
    fills_seen: int = 0
    error: str | None = None
    duration_s: float = 0.0


@dataclass
class TradingCycle:
    """Wires candles, Signal Source, RiskSizer and executor for one instrument."""

    symbol: str
    candles: CandleProvider
    source: SignalSource
    venue: Venue
    executor: LiveOrderExecutor
    config: TradingConfig
    journal: JournalWriter | None = None
    events: StructuredEventLogger | None = None
    on_price: PriceHook | None = None
    window_size: int = 52
    history_size: int = 10
    _safe_source: SafeSignalSource = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._safe_source = SafeSignalSource(self.source)

    def run_once(self) -> CycleMetrics:
        """Run a single cycle. Venue errors are caught and reported in the metrics."""
        started = time.monotonic()
        metrics = CycleMetrics(started_at=datetime.now(timezone.utc))
        try:
            self._run(metrics)
        except VenueError as exc:
            metrics.action = "error"
            metrics.error = str(exc)
            logger.error("%s: cycle aborted by venue error: %s", self.symbol, exc)
            if self.events:
                self.events.error("venue error", str(exc))
        metrics.duration_s = time.monotonic() - started
        if self.journal:
            self.journal.cycle(
                self.symbol,
                action=metrics.action,
                direction=metrics.direction,
                confidence=metrics.confidence,
                execution_state=metrics.execution_state,
                trades_recorded=metrics.trades_recorded,
                error=metrics.error,
            )
        if self.events:
            self.events.cycle_complete(metrics.action, metrics.execution_state)
        return metrics

    def _run(self, metrics: CycleMetrics) -> None:
        window = list(self.candles())[-self.window_size:]
        metrics.candles = len(window)
        if self.events:
            self.events.cycle_start(len(window), window[-1].close if window else None)
        if not window:
            metrics.action = "no_data"
            logger.warning("%s: no candles available, skipping cycle", self.symbol)
            return

        if self.on_price is not None:
            for fill in self.on_price(window[-1]):
                if self.journal:
                    self.journal.fill(self.symbol, fill)

        recovery = self.executor.recover()
        if recovery.state == ExecutionState.EXIT_FAILED:
            metrics.execution_state = recovery.state.value
            if self.events:
                self.events.exit_orders_failed(recovery.error or "recovery failed")

        fills = self.venue.fill_history(self.symbol)
        metrics.fills_seen = len(fills)
        metrics.trades_recorded = self._record_trades(fills)

        if any(p.symbol == self.symbol for p in self.venue.get_open_positions()):
            metrics.action = "position_open"
            return

        history = last_closed_trades(fills, self.history_size)
        signal = self._safe_source.generate(window, history)
        metrics.direction = signal.direction.value
        metrics.confidence = signal.confidence
        if self.journal:
            self.journal.signal(self.symbol, signal)
        if self.events:
            self.events.signal_received(signal.direction.value, signal.confidence, signal.reason)

        if not signal.is_actionable or signal.confidence < self.config.execution.min_confidence:
            metrics.action = "hold"
            logger.info(
                "%s: no trade (%s, confidence %.1f < %.1f or HOLD)", self.symbol,
                signal.direction.value, signal.confidence, self.config.execution.min_confidence,
            )
            return

        self._enter(signal, window[-1].close, metrics)

    def _enter(self, signal: Signal, last_price: float, metrics: CycleMetrics) -> None:
        account = AccountState(
            balance=self.venue.get_balance(), last_price=last_price, leverage=self.config.leverage,
        )
        params = size_trade(account, signal, self.config.risk)
        if params is None:
            reason = reject_reason(account, signal, self.config.risk) or "sizing rejected"
            metrics.action = "size_rejected"
            if self.events:
                self.events.order_rejected(reason)
            return

        result = self.executor.enter_position(signal, params, last_price)
        metrics.execution_state = result.state.value
        metrics.action = {
            ExecutionState.EXIT_CONFIRMED: "entered",
            ExecutionState.EXIT_FAILED: "exit_failed",
            ExecutionState.ENTRY_TIMEOUT: "entry_timeout",
            ExecutionState.ENTRY_REJECTED: "entry_rejected",
        }.get(result.state, result.state.value.lower())
        if result.error:
            metrics.error = result.error

        if self.journal:
            self.journal.order(
                result.entry_order_id, self.symbol, result.state.value,
                direction=signal.direction.value, size=params.size,
                filled_size=result.filled_size, average_price=result.average_price,
                exit_order_ids=list(result.exit_order_ids), error=result.error,
            )
        if not self.events:
            return
        if result.entry_order_id:
            self.events.trade_submitted(
                signal.direction.value, params.size, params.stop_loss_price,
                params.take_profit_price, result.entry_order_id,
            )
        if result.state == ExecutionState.ENTRY_REJECTED:
            self.events.order_rejected(result.error or "entry rejected")
        if result.position is not None:
            self.events.entry_filled(result.filled_size, result.average_price)
        if result.state == ExecutionState.EXIT_CONFIRMED:
            self.events.exit_orders_placed(
                list(result.exit_order_ids),
                result.position.stop_loss_price, result.position.take_profit_price,
            )
        elif result.state == ExecutionState.EXIT_FAILED:
            self.events.exit_orders_failed(result.error or "exit batch failed")

    def _record_trades(self, fills: Sequence[Fill]) -> int:
        if not self.journal:
            return 0
        written = 0
        for trade in match_fills(fills):
            if self.journal.trade(self.symbol, trade):
                written += 1
                if self.events:
                    self.events.trade_closed(trade.side.value, trade.size, trade.pnl, trade.exit_reason)
        return written


def run_loop(
    cycle: TradingCycle,
    interval_s: float,
    *,
    max_cycles: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
    on_cycle: Callable[[CycleMetrics], None] | None = None,
) -> list[CycleMetrics]:
    """
    Run cycles every *interval_s* seconds until interrupted or *max_cycles* is reached.
    Ctrl+C lets the in-flight cycle finish its step and returns the collected metrics.
    """
    history: list[CycleMetrics] = []
    click.echo(f"Trading loop started: {cycle.symbol} every {interval_s:.0f}s  |  Ctrl+C to stop\n")
    try:
        while max_cycles is None or len(history) < max_cycles:
            metrics = cycle.run_once()
            history.append(metrics)
            if on_cycle:
                on_cycle(metrics)
            if max_cycles is not None and len(history) >= max_cycles:
                break
            wait = max(0.0, interval_s - metrics.duration_s)
            if wait > 0:
                sleep(wait)
    except KeyboardInterrupt:
        click.echo(f"\n\nShutting down after {len(history)} cycle(s). Goodbye.")
    if cycle.events:
        cycle.events.shutdown(len(history))
    return history
