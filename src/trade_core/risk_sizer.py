"""
Risk Sizer: Signal + AccountState + RiskConfig -> TradeParameters (or reject).

The single risk boundary of the system. Every path that opens a position,
live or simulated, sizes through ``size_trade``.

Sizing:
    risk_capital    = balance * risk_fraction
    raw_size        = risk_capital / stop_loss_distance
    margin_cap_size = (balance * leverage / last_price) * margin_safety_factor
    size            = min(raw_size, margin_cap_size), floored to size_precision

Hard rejects: non-positive balance/price/leverage, HOLD, non-positive stop or
target distance, size below min_size, required margin (with buffer) above balance.
"""

from __future__ import annotations

import logging
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from config.trading_config import RiskConfig
from trade_core.contracts import AccountState, Direction, Signal, TradeParameters

logger = logging.getLogger("trader.risk")


def floor_to_precision(value: float, precision: int) -> float:
    """Round *value* down to ``precision`` decimals. Never inflates a quantity."""
    quantum = Decimal(1).scaleb(-precision)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_DOWN))


def round_to_increment(price: float, increment: float) -> float:
    """Round *price* to the nearest multiple of ``increment`` (half up)."""
    step = Decimal(str(increment))
    steps = (Decimal(str(price)) / step).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return float(steps * step)


def _compute_size(account: AccountState, signal: Signal, config: RiskConfig) -> float:
    risk_capital = account.balance * config.risk_fraction
    raw_size = risk_capital / signal.stop_loss_distance
    margin_cap_size = (account.balance * account.leverage / account.last_price) * config.margin_safety_factor
    return floor_to_precision(min(raw_size, margin_cap_size), config.size_precision)


def required_margin(size: float, account: AccountState, config: RiskConfig) -> float:
    """Margin needed to hold *size* at ``last_price``, including the buffer surcharge."""
    return (size * account.last_price / account.leverage) * (1 + config.margin_buffer)


def _exit_levels(reference_price: float, signal: Signal, config: RiskConfig) -> tuple[float, float]:
    """Absolute (stop, target) around the reference price for the signal's direction."""
    if signal.direction == Direction.LONG:
        stop = reference_price - signal.stop_loss_distance
        target = reference_price + signal.take_profit_distance
    else:
        stop = reference_price + signal.stop_loss_distance
        target = reference_price - signal.take_profit_distance
    return (
        round_to_increment(stop, config.price_increment),
        round_to_increment(target, config.price_increment),
    )


def reject_reason(
    account: AccountState,
    signal: Signal,
    config: RiskConfig | None = None,
) -> str | None:
    """Return why ``size_trade`` would reject, or None if it would size the trade."""
    config = config or RiskConfig()

    if account.balance <= 0:
        return f"Invalid account balance ({account.balance})"
    if account.last_price <= 0:
        return f"Invalid last price ({account.last_price})"
    if account.leverage <= 0:
        return f"Invalid leverage ({account.leverage})"
    if signal.direction == Direction.HOLD:
        return "Signal is HOLD"
    if signal.stop_loss_distance <= 0:
        return f"Invalid stop-loss distance ({signal.stop_loss_distance})"
    if signal.take_profit_distance <= 0:
        return f"Invalid take-profit distance ({signal.take_profit_distance})"

    size = _compute_size(account, signal, config)
    if size < config.min_size:
        return f"Size too small ({size:.{config.size_precision}f} < {config.min_size})"

    margin = required_margin(size, account, config)
    if margin > account.balance:
        return f"Insufficient funds (required {margin:.2f}, available {account.balance:.2f})"

    stop, target = _exit_levels(account.last_price, signal, config)
    if signal.direction == Direction.LONG and not (stop < account.last_price < target):
        return f"Exit levels collapsed after rounding (stop {stop}, target {target})"
    if signal.direction == Direction.SHORT and not (target < account.last_price < stop):
        return f"Exit levels collapsed after rounding (stop {stop}, target {target})"
    return None


def size_trade(
    account: AccountState,
    signal: Signal,
    config: RiskConfig | None = None,
) -> TradeParameters | None:
    """Size a trade from the signal's stop distance and the account's risk budget.

    Parameters
    ----------
    account:
        Balance, last trade price (the entry reference) and leverage.
    signal:
        LONG or SHORT signal with positive stop/target distances.
    config:
        Risk parameters. Defaults to ``RiskConfig()`` (2% risk, 0.95 margin cap).

    Returns
    -------
    TradeParameters | None
        Size and absolute stop/target prices, or None when rejected.
    """
    config = config or RiskConfig()
    reason = reject_reason(account, signal, config)
    if reason is not None:
        logger.warning("Trade rejected: %s", reason)
        return None

    size = _compute_size(account, signal, config)
    stop, target = _exit_levels(account.last_price, signal, config)
    params = TradeParameters(size=size, stop_loss_price=stop, take_profit_price=target)
    logger.info(
        "Sized %s: size=%s stop=%s target=%s (balance=%.2f, price=%s)",
        signal.direction.value, params.size, params.stop_loss_price,
        params.take_profit_price, account.balance, account.last_price,
    )
    return params
