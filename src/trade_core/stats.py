"""
Summary statistics over closed trades: PnL, win rate, profit factor,
drawdown and streaks. Shared by the simulation summary and the live PnL report.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from trade_core.contracts import ClosedTrade


@dataclass(frozen=True)
class TradeStats:
    trade_count: int
    win_count: int
    loss_count: int
    total_pnl: float
    gross_profit: float
    gross_loss: float
    win_rate: float                  # fraction 0..1
    profit_factor: float | None      # None when there are no losing trades
    average_win: float
    average_loss: float
    max_drawdown: float              # fraction of peak equity 0..1
    max_drawdown_abs: float
    max_consecutive_wins: int
    max_consecutive_losses: int


def equity_curve(trades: Sequence[ClosedTrade], initial_balance: float) -> list[float]:
    """Balance after each trade, starting with the initial balance."""
    curve = [initial_balance]
    for t in trades:
        curve.append(curve[-1] + t.pnl)
    return curve


def max_drawdown(curve: Sequence[float]) -> tuple[float, float]:
    """Largest peak-to-trough decline as (fraction of peak, absolute amount)."""
    peak = None
    worst_frac = 0.0
    worst_abs = 0.0
    for value in curve:
        if peak is None or value > peak:
            peak = value
        decline = peak - value
        if decline > worst_abs:
            worst_abs = decline
        if peak > 0 and decline / peak > worst_frac:
            worst_frac = decline / peak
    return worst_frac, worst_abs


def max_streak(trades: Sequence[ClosedTrade], *, wins: bool) -> int:
    """Longest run of consecutive winning (or losing) trades. Breakeven breaks a run."""
    best = current = 0
    for t in trades:
        hit = t.pnl > 0 if wins else t.pnl < 0
        current = current + 1 if hit else 0
        best = max(best, current)
    return best


def compute_stats(trades: Sequence[ClosedTrade], initial_balance: float = 0.0) -> TradeStats:
    """Compute summary statistics for trades in chronological order."""
    winners = [t.pnl for t in trades if t.pnl > 0]
    losers = [t.pnl for t in trades if t.pnl < 0]
    gross_profit = sum(winners)
    gross_loss = sum(losers)
    dd_frac, dd_abs = max_drawdown(equity_curve(trades, initial_balance))

    return TradeStats(
        trade_count=len(trades),
        win_count=len(winners),
        loss_count=len(losers),
        total_pnl=sum(t.pnl for t in trades),
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        win_rate=len(winners) / len(trades) if trades else 0.0,
        profit_factor=gross_profit / abs(gross_loss) if gross_loss else None,
        average_win=gross_profit / len(winners) if winners else 0.0,
        average_loss=gross_loss / len(losers) if losers else 0.0,
        max_drawdown=dd_frac,
        max_drawdown_abs=dd_abs,
        max_consecutive_wins=max_streak(trades, wins=True),
        max_consecutive_losses=max_streak(trades, wins=False),
    )
