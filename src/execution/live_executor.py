"""
Live order executor: two-phase state machine against a Venue.

    IDLE -> ENTRY_SUBMITTED -> ENTRY_FILLED  -> EXIT_SUBMITTED -> EXIT_CONFIRMED
                            -> ENTRY_REJECTED                 -> EXIT_FAILED
                            -> ENTRY_TIMEOUT

Phase 1 submits an aggressive entry (limit through the last price, or market)
and polls recent fills until the order is covered or the timeout elapses.
Phase 2 submits one reduce-only batch: a stop-limit and a take-profit limit,
both sized to the confirmed fill.

The executor never cancels on timeout and never retries a submission; those
decisions belong to the caller. ``recover`` is safe to call on every cycle:
it reads venue state first and only submits the exit legs that are missing.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from config.trading_config import ExecutionParams, RiskConfig
from execution.exit_plans import ExitPlan, ExitPlanStore
from execution.models import (
    ExecutionResult,
    ExecutionState,
    OrderSpec,
    OrderTag,
    OrderType,
    VenueOrder,
    VenuePosition,
)
from execution.venue import TransientVenueError, Venue, VenueError
from trade_core.contracts import (
    Direction,
    Fill,
    Position,
    Signal,
    TradeParameters,
    entry_side,
)
from trade_core.errors import ValidationError
from trade_core.risk_sizer import round_to_increment

logger = logging.getLogger("trader.executor")

_EPS = 1e-9


def entry_limit_price(direction: Direction, last_price: float, slippage: float, increment: float) -> float:
    """Aggressive limit a slippage buffer through the last price."""
    factor = 1 + slippage if direction == Direction.LONG else 1 - slippage
    return round_to_increment(last_price * factor, increment)


def stop_limit_price(direction: Direction, stop_price: float, slippage: float, increment: float) -> float:
    """Limit price behind a stop trigger. Closing a long sells, so the limit sits below."""
    factor = 1 - slippage if direction == Direction.LONG else 1 + slippage
    return round_to_increment(stop_price * factor, increment)


class LiveOrderExecutor:
    """Drive entry and protective exits for a single instrument on a Venue.

    Parameters
    ----------
    venue:
        Venue adapter (live exchange or paper).
    symbol:
        The one instrument this executor manages.
    params:
        Entry order type, slippage buffers, poll interval and fill timeout.
    risk:
        Used for the price increment when rounding order prices.
    plans:
        Where the exit plan of each entry is persisted so a restarted process
        can still place the protective exits. Without it, recovery only knows
        the levels this instance confirmed.
    clock, sleep:
        Injected for deterministic tests. ``clock`` must be monotonic seconds.
    """

    def __init__(
        self,
        venue: Venue,
        symbol: str,
        *,
        params: ExecutionParams | None = None,
        risk: RiskConfig | None = None,
        plans: ExitPlanStore | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._venue = venue
        self._symbol = symbol
        self._params = params or ExecutionParams()
        self._risk = risk or RiskConfig()
        self._plans = plans
        self._clock = clock
        self._sleep = sleep
        self._state = ExecutionState.IDLE
        self._position: Position | None = None

    @property
    def state(self) -> ExecutionState:
        return self._state

    @property
    def position(self) -> Position | None:
        """Last position this executor confirmed, if any."""
        return self._position

    def _transition(self, result: ExecutionResult, state: ExecutionState) -> None:
        logger.info("%s: %s -> %s", self._symbol, self._state.value, state.value)
        self._state = state
        result.state = state
        result.transitions.append(state)

    # ------------------------------------------------------------------
    # Phase 1: entry
    # ------------------------------------------------------------------

    def _entry_spec(self, signal: Signal, params: TradeParameters, last_price: float) -> OrderSpec:
        side = entry_side(signal.direction)
        if self._params.entry_order_type == "market":
            return OrderSpec(self._symbol, side, params.size, OrderType.MARKET, OrderTag.ENTRY)
        price = entry_limit_price(
            signal.direction, last_price, self._params.entry_slippage, self._risk.price_increment,
        )
        return OrderSpec(self._symbol, side, params.size, OrderType.LIMIT, OrderTag.ENTRY, limit_price=price)

    def enter_position(self, signal: Signal, params: TradeParameters, last_price: float) -> ExecutionResult:
        """Submit the entry, await the fill, then place the protective exits.

        Raises ValidationError for a HOLD signal. Every venue outcome is
        reported through the returned ExecutionResult.
        """
        if not signal.is_actionable:
            raise ValidationError("Cannot enter a position on a HOLD signal")

        self._state = ExecutionState.IDLE
        result = ExecutionResult()

        try:
            open_positions = [p for p in self._venue.get_open_positions() if p.symbol == self._symbol]
        except VenueError as exc:
            result.error = f"Could not read open positions: {exc}"
            logger.error("%s: %s", self._symbol, result.error)
            self._transition(result, ExecutionState.ENTRY_REJECTED)
            return result
        if open_positions:
            result.error = "Position already open"
            logger.warning("%s: entry skipped, position already open", self._symbol)
            self._transition(result, ExecutionState.ENTRY_REJECTED)
            return result

        spec = self._entry_spec(signal, params, last_price)
        try:
            ack = self._venue.submit_entry_order(spec)
        except VenueError as exc:
            result.error = f"Entry order failed: {exc}"
            logger.error("%s: %s", self._symbol, result.error)
            self._transition(result, ExecutionState.ENTRY_REJECTED)
            return result
        if not ack.order_id:
            result.error = f"Entry order returned no order id (status={ack.status})"
            logger.error("%s: %s", self._symbol, result.error)
            self._transition(result, ExecutionState.ENTRY_REJECTED)
            return result

        result.entry_order_id = ack.order_id
        self._transition(result, ExecutionState.ENTRY_SUBMITTED)
        logger.info(
            "%s: entry %s %s %s @ %s (order %s)", self._symbol, spec.order_type.value,
            spec.side.value, spec.size, spec.limit_price or "market", ack.order_id,
        )
        plan = ExitPlan(
            symbol=self._symbol,
            direction=signal.direction,
            stop_loss_distance=signal.stop_loss_distance,
            take_profit_distance=signal.take_profit_distance,
            entry_order_id=ack.order_id,
            created_at=datetime.now(timezone.utc),
        )
        self._save_plan(plan)

        fills, poll_error = self._await_fill(ack.order_id, params.size)
        filled = sum(f.size for f in fills)
        result.filled_size = filled
        if fills:
            result.average_price = sum(f.size * f.price for f in fills) / filled

        if filled < params.size - _EPS:
            if poll_error is not None:
                result.error = f"Fill confirmation failed: {poll_error} (filled {filled} of {params.size})"
            else:
                result.error = f"Entry not filled within {self._params.fill_timeout_s:.0f}s (filled {filled} of {params.size})"
            logger.warning("%s: %s", self._symbol, result.error)
            self._transition(result, ExecutionState.ENTRY_TIMEOUT)
            return result

        self._transition(result, ExecutionState.ENTRY_FILLED)
        position = self._position_from_fill(signal, params, result.average_price, filled, fills[-1])
        self._position = position
        self._save_plan(replace(plan, stop_loss_price=position.stop_loss_price, take_profit_price=position.take_profit_price))
        result.position = position
        return self._submit_exits(position, result)

    def _save_plan(self, plan: ExitPlan) -> None:
        if self._plans is not None:
            self._plans.save(plan)

    def _await_fill(self, order_id: str, size: float) -> tuple[list[Fill], VenueError | None]:
        """Poll recent fills until ``order_id`` is covered or the timeout elapses.

        Transient poll failures are retried within the timeout; any other
        venue error stops polling and is returned with the fills seen so far.
        """
        start = self._clock()
        fills: list[Fill] = []
        while True:
            try:
                fills = [f for f in self._venue.poll_recent_fills() if f.order_id == order_id]
            except TransientVenueError as exc:
                logger.warning("%s: fill poll failed, retrying: %s", self._symbol, exc)
            except VenueError as exc:
                logger.error("%s: fill poll failed, giving up on confirmation: %s", self._symbol, exc)
                return sorted(fills, key=lambda f: f.timestamp), exc
            if sum(f.size for f in fills) >= size - _EPS:
                return sorted(fills, key=lambda f: f.timestamp), None
            if self._clock() - start >= self._params.fill_timeout_s:
                return sorted(fills, key=lambda f: f.timestamp), None
            self._sleep(self._params.poll_interval_s)

    def _position_from_fill(
        self,
        signal: Signal,
        params: TradeParameters,
        average_price: float,
        size: float,
        last_fill: Fill,
    ) -> Position:
        """Re-anchor stop and target on the actual average fill price."""
        inc = self._risk.price_increment
        if signal.direction == Direction.LONG:
            stop = average_price - signal.stop_loss_distance
            target = average_price + signal.take_profit_distance
        else:
            stop = average_price + signal.stop_loss_distance
            target = average_price - signal.take_profit_distance
        return Position(
            direction=signal.direction,
            entry_price=average_price,
            entry_time=last_fill.timestamp,
            size=size,
            stop_loss_price=round_to_increment(stop, inc),
            take_profit_price=round_to_increment(target, inc),
            metadata={"planned_stop": params.stop_loss_price, "planned_target": params.take_profit_price},
        )

    # ------------------------------------------------------------------
    # Phase 2: protective exits
    # ------------------------------------------------------------------

    def exit_specs(self, position: Position) -> list[OrderSpec]:
        """Reduce-only stop-limit and take-profit limit, opposite the entry side."""
        close_side = entry_side(position.direction).opposite
        stop_limit = stop_limit_price(
            position.direction, position.stop_loss_price,
            self._params.stop_slippage, self._risk.price_increment,
        )
        return [
            OrderSpec(
                self._symbol, close_side, position.size, OrderType.STOP, OrderTag.STOP_LOSS,
                limit_price=stop_limit, stop_price=position.stop_loss_price, reduce_only=True,
            ),
            OrderSpec(
                self._symbol, close_side, position.size, OrderType.LIMIT, OrderTag.TAKE_PROFIT,
                limit_price=position.take_profit_price, reduce_only=True,
            ),
        ]

    def place_exit_orders(self, position: Position) -> ExecutionResult:
        """Submit the protective batch for a confirmed position."""
        result = ExecutionResult(position=position, filled_size=position.size, average_price=position.entry_price)
        return self._submit_exits(position, result)

    def _submit_exits(
        self,
        position: Position,
        result: ExecutionResult,
        specs: list[OrderSpec] | None = None,
    ) -> ExecutionResult:
        specs = specs if specs is not None else self.exit_specs(position)
        self._transition(result, ExecutionState.EXIT_SUBMITTED)
        result.exits_submitted = True
        try:
            ack = self._venue.submit_exit_batch(specs)
        except VenueError as exc:
            result.error = f"Exit orders failed: {exc}"
            logger.error("%s: %s; position left unmanaged until recovery", self._symbol, result.error)
            self._transition(result, ExecutionState.EXIT_FAILED)
            return result

        result.exit_order_ids = ack.order_ids
        logger.info(
            "%s: exits placed stop=%s target=%s size=%s (orders %s)", self._symbol,
            position.stop_loss_price, position.take_profit_price, position.size, ", ".join(ack.order_ids),
        )
        self._transition(result, ExecutionState.EXIT_CONFIRMED)
        return result

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def _recovery_position(
        self,
        venue_pos: VenuePosition,
        stop_loss_distance: float | None,
        take_profit_distance: float | None,
    ) -> Position:
        """Exit levels for a venue position: persisted plan, then this instance, then supplied distances."""
        inc = self._risk.price_increment
        plan = self._plans.get(self._symbol) if self._plans is not None else None
        known = self._position
        entry_time = datetime.now(timezone.utc)
        if plan is not None and plan.direction == venue_pos.direction:
            if plan.has_levels:
                stop, target = plan.stop_loss_price, plan.take_profit_price
            else:
                stop, target = plan.levels_from(venue_pos.entry_price)
            entry_time = plan.created_at
        elif known is not None and known.direction == venue_pos.direction:
            stop, target = known.stop_loss_price, known.take_profit_price
            entry_time = known.entry_time
        elif stop_loss_distance and take_profit_distance and stop_loss_distance > 0 and take_profit_distance > 0:
            sign = 1.0 if venue_pos.direction == Direction.LONG else -1.0
            stop = venue_pos.entry_price - sign * stop_loss_distance
            target = venue_pos.entry_price + sign * take_profit_distance
        else:
            raise ValidationError("No exit levels known for the open position")
        return Position(
            direction=venue_pos.direction,
            entry_price=venue_pos.entry_price,
            entry_time=entry_time,
            size=venue_pos.size,
            stop_loss_price=round_to_increment(stop, inc),
            take_profit_price=round_to_increment(target, inc),
        )

    @staticmethod
    def _covered(orders: list[VenueOrder], tag: OrderTag) -> float:
        return sum(o.size for o in orders if o.tag == tag)

    def recover(
        self,
        stop_loss_distance: float | None = None,
        take_profit_distance: float | None = None,
    ) -> ExecutionResult:
        """Place missing exits for a venue-reported open position, at most once.

        Venue state is read before anything is submitted: exit legs already
        resting (reduce-only, this symbol) are left alone, and only the
        uncovered remainder of each leg is sent. A flat venue or a fully
        covered position is a no-op. Once flat with no entry order resting,
        the persisted exit plan is dropped.
        """
        result = ExecutionResult()
        try:
            positions = [p for p in self._venue.get_open_positions() if p.symbol == self._symbol]
            open_orders = [o for o in self._venue.get_open_orders() if o.symbol == self._symbol]
        except VenueError as exc:
            result.error = f"Could not read venue state: {exc}"
            logger.error("%s: recovery skipped: %s", self._symbol, exc)
            return result
        orders = [o for o in open_orders if o.reduce_only]

        if not positions:
            logger.info("%s: flat, nothing to recover", self._symbol)
            self._state = ExecutionState.IDLE
            resting_entry = any(o.tag == OrderTag.ENTRY for o in open_orders)
            if self._plans is not None and not resting_entry and self._plans.clear(self._symbol):
                logger.info("%s: exit plan cleared", self._symbol)
            return result

        venue_pos = positions[0]
        result.filled_size = venue_pos.size
        result.average_price = venue_pos.entry_price
        stop_gap = venue_pos.size - self._covered(orders, OrderTag.STOP_LOSS)
        target_gap = venue_pos.size - self._covered(orders, OrderTag.TAKE_PROFIT)
        if stop_gap <= _EPS and target_gap <= _EPS:
            logger.info("%s: exit orders already in place", self._symbol)
            self._transition(result, ExecutionState.EXIT_CONFIRMED)
            result.exit_order_ids = tuple(o.order_id for o in orders)
            return result

        try:
            position = self._recovery_position(venue_pos, stop_loss_distance, take_profit_distance)
        except ValidationError as exc:
            result.error = str(exc)
            logger.error("%s: cannot recover exits: %s", self._symbol, exc)
            self._transition(result, ExecutionState.EXIT_FAILED)
            return result

        result.position = position
        stop_spec, target_spec = self.exit_specs(position)
        specs = []
        if stop_gap > _EPS:
            specs.append(replace(stop_spec, size=stop_gap))
        if target_gap > _EPS:
            specs.append(replace(target_spec, size=target_gap))
        logger.warning("%s: open position without full exit cover, placing %d leg(s)", self._symbol, len(specs))
        return self._submit_exits(position, result, specs)
