"""
Human-readable terminal output for backtests, cycles and PnL reports.

Every CLI command uses these formatters. The ledger receives the same data.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from trade_core.contracts import ClosedTrade, Position
from trade_core.stats import TradeStats

if TYPE_CHECKING:
    from backtest.runner import SimulationResult
    from cli.scheduler import CycleMetrics
    from execution.models import ExecutionResult, VenuePosition


def _fmt_pf(pf: float | None) -> str:
    return "N/A" if pf is None else f"{pf:.2f}"


def format_stats(stats: TradeStats) -> list[str]:
    return [
        f"Trades       : {stats.trade_count} (W:{stats.win_count} / L:{stats.loss_count})",
        f"Total P/L    : ${stats.total_pnl:+,.2f}",
        f"Win rate     : {stats.win_rate:.1%}",
        f"Profit factor: {_fmt_pf(stats.profit_factor)}",
        f"Avg win/loss : ${stats.average_win:,.2f} / ${stats.average_loss:,.2f}",
        f"Max drawdown : {stats.max_drawdown:.2%} (${stats.max_drawdown_abs:,.2f})",
        f"Max streaks  : {stats.max_consecutive_wins} wins / {stats.max_consecutive_losses} losses",
    ]


def format_trade_lines(trades: Sequence[ClosedTrade]) -> list[str]:
    lines: list[str] = []
    for i, t in enumerate(trades, 1):
        reason = f" ({t.exit_reason})" if t.exit_reason else ""
        lines.append(f"  Trade #{i}: {t.side.value} {t.size} | entry {t.entry_price:.2f} @ {t.entry_time.isoformat()}")
        lines.append(f"            exit  {t.exit_price:.2f} @ {t.exit_time.isoformat()} | PnL ${t.pnl:+.2f}{reason}")
    return lines


def format_open_position(pos: Position) -> str:
    return (
        f"{pos.direction.value} {pos.size} @ {pos.entry_price:.2f} "
        f"(stop {pos.stop_loss_price:.2f}, target {pos.take_profit_price:.2f})"
    )


def format_backtest_summary(result: SimulationResult, symbol: str, timeframe: str) -> str:
    """Format simulation result summary."""
    lines = [f"=== Backtest: {symbol} {timeframe} ==="]
    if result.start_time and result.end_time:
        lines.append(f"Period       : {result.start_time.isoformat()} -> {result.end_time.isoformat()}")
    lines += [
        f"Initial bal. : ${result.initial_balance:,.2f}",
        f"Final bal.   : ${result.final_balance:,.2f}",
        f"Return       : {result.total_return_pct:+.2f}%",
        f"Signal calls : {result.signal_calls}",
        f"Step errors  : {result.errors}",
    ]
    lines += format_stats(result.stats)
    if result.open_position is not None:
        lines.append(f"Open position: {format_open_position(result.open_position)} (not liquidated)")
    if result.trades:
        lines.append("")
        lines += format_trade_lines(result.trades)
    lines.append("===")
    return "\n".join(lines)


def format_execution_result(result: ExecutionResult) -> str:
    path = " -> ".join(s.value for s in result.transitions) or result.state.value
    lines = [f"  Execution : {path}"]
    if result.entry_order_id:
        lines.append(f"  Entry     : order {result.entry_order_id}, filled {result.filled_size}"
                     + (f" @ {result.average_price:.2f}" if result.average_price is not None else ""))
    if result.position is not None:
        lines.append(f"  Position  : {format_open_position(result.position)}")
    if result.exit_order_ids:
        lines.append(f"  Exits     : {', '.join(result.exit_order_ids)}")
    if result.error:
        lines.append(f"  Error     : {result.error}")
    return "\n".join(lines)


def format_cycle(metrics: CycleMetrics) -> str:
    sig = f"{metrics.direction} ({metrics.confidence:.0f})" if metrics.direction else "-"
    line = f"[{metrics.started_at:%Y-%m-%d %H:%M:%S}] {metrics.action:<16} signal={sig}"
    if metrics.execution_state:
        line += f" state={metrics.execution_state}"
    if metrics.trades_recorded:
        line += f" trades_recorded={metrics.trades_recorded}"
    if metrics.error:
        line += f" error={metrics.error}"
    return line


def format_account(
    positions: Sequence[VenuePosition],
    balance: float,
) -> str:
    lines = [
        "=== Account Status ===",
        f"Balance      : ${balance:,.2f}",
    ]
    if positions:
        for p in positions:
            lines.append(f"Position     : {p.symbol} {p.direction.value} {p.size} @ avg {p.entry_price:.2f}")
    else:
        lines.append("Position     : flat (no open position)")
    lines.append("===")
    return "\n".join(lines)


def format_pnl_report(trades: Sequence[ClosedTrade], stats: TradeStats, symbol: str) -> str:
    lines = [f"=== Realized PnL: {symbol} ==="]
    lines += format_stats(stats)
    if trades:
        lines.append("")
        lines += format_trade_lines(trades)
    lines.append("===")
    return "\n".join(lines)
