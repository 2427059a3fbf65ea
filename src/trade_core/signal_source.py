"""
Signal Sources: candle window + closed-trade history -> Signal.

The predictive source is an external collaborator. This module defines the
protocol and three adapters:

- ``BreakoutSignalSource``: deterministic channel-midline breakout, used for
  offline backtests and as a reference source.
- ``CompletionSignalSource``: builds an indicator prompt and hands it to any
  text-completion callable (e.g. an LLM endpoint); the answer goes through
  the strict signal parser.
- ``SafeSignalSource``: wraps any source so that an exception becomes HOLD.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.request
from dataclasses import asdict
from typing import Callable, Protocol, Sequence

from trade_core.contracts import Candle, ClosedTrade, Direction, Signal
from trade_core.indicators import channel_midline, compute_atr, momentum_pct, sma
from trade_core.signal_parser import parse_signal_or_hold

logger = logging.getLogger("trader.signal")


class SignalSource(Protocol):
    """Protocol for Signal Sources. Seconds-scale latency; may fail."""

    def generate(self, window: Sequence[Candle], history: Sequence[ClosedTrade]) -> Signal:
        ...


class SafeSignalSource:
    """Fail-safe wrapper: any error from the wrapped source becomes HOLD."""

    def __init__(self, source: SignalSource) -> None:
        self._source = source

    def generate(self, window: Sequence[Candle], history: Sequence[ClosedTrade]) -> Signal:
        if not window:
            logger.error("Received an empty candle window")
            return Signal.hold("No OHLC")
        try:
            signal = self._source.generate(window, history)
        except Exception as exc:
            logger.error("Signal source failed: %s", exc)
            return Signal.hold(f"Source error: {exc}")
        if not isinstance(signal, Signal):
            logger.error("Signal source returned %r, expected Signal", type(signal).__name__)
            return Signal.hold("Malformed signal")
        return signal


# ---------------------------------------------------------------------------
# Deterministic breakout source
# ---------------------------------------------------------------------------


class BreakoutSignalSource:
    """Breakout of the prior ``period`` candles' midline, with a price buffer.

    LONG when the current high clears ``midline + buffer``; SHORT when the
    current low breaks ``midline - buffer``; if both, the close decides.
    Stop and target distances are ATR multiples.
    """

    def __init__(
        self,
        period: int = 21,
        buffer_pct: float = 0.0015,
        atr_period: int = 14,
        stop_atr_multiple: float = 2.0,
        target_atr_multiple: float = 3.0,
    ) -> None:
        self.period = period
        self.buffer_pct = buffer_pct
        self.atr_period = atr_period
        self.stop_atr_multiple = stop_atr_multiple
        self.target_atr_multiple = target_atr_multiple

    def generate(self, window: Sequence[Candle], history: Sequence[ClosedTrade]) -> Signal:
        if len(window) < self.period + 1:
            return Signal.hold(f"Need {self.period + 1} candles, got {len(window)}")

        current = window[-1]
        mid = channel_midline(window[-self.period - 1:-1])
        buffer = current.close * self.buffer_pct
        bullish = current.high > mid + buffer
        bearish = current.low < mid - buffer
        if bullish and bearish:
            bullish, bearish = current.close >= mid, current.close < mid
        if not (bullish or bearish):
            return Signal.hold("Inside channel")

        atr = compute_atr(window, self.atr_period)
        if atr <= 0:
            return Signal.hold("Zero volatility")

        direction = Direction.LONG if bullish else Direction.SHORT
        strength = abs(current.close - mid) / atr
        return Signal(
            direction=direction,
            confidence=min(100.0, 50.0 + strength * 25.0),
            stop_loss_distance=atr * self.stop_atr_multiple,
            take_profit_distance=atr * self.target_atr_multiple,
            reason=f"{direction.value} breakout of {self.period}-candle midline {mid:.2f} (ATR {atr:.2f})",
        )


# ---------------------------------------------------------------------------
# Text-completion source
# ---------------------------------------------------------------------------


def _trade_record(trade: ClosedTrade) -> dict:
    record = asdict(trade)
    record["side"] = trade.side.value
    record["entry_time"] = trade.entry_time.isoformat()
    record["exit_time"] = trade.exit_time.isoformat()
    return record


def build_prompt(
    window: Sequence[Candle],
    history: Sequence[ClosedTrade],
    timeframe: str = "3 minute",
    max_candles: int = 52,
) -> str:
    """Prompt with the recent candles, SMA/momentum/ATR indicators and last trades."""
    candles = list(window)[-max_candles:]
    closes = [c.close for c in candles]
    latest = closes[-1]
    atr_pct = compute_atr(candles, 14) / latest * 100 if latest else 0.0
    ohlc = [
        {"open": c.open, "high": c.high, "low": c.low, "close": c.close,
         "volume": c.volume, "time": c.timestamp.isoformat()}
        for c in candles
    ]
    return (
        f"Based on the {timeframe} timeframe OHLC data and the indicators below, generate a signal JSON "
        'object including "signal" (LONG, SHORT or HOLD), "confidence" (confluence from 0 to 100), '
        '"stop_loss_distance_in_usd" (distance from the current price to the stop loss), '
        '"take_profit_distance_in_usd" (distance to the take profit) and "reason" (an explanation '
        "of the decision).\n\n"
        f"OHLC Data for {timeframe}: {json.dumps(ohlc)}\n"
        "Indicators:\n"
        f"- lastClose={latest}\n"
        f"- 20SMA={sma(closes, 20):.2f}\n"
        f"- momentum={momentum_pct(candles, 20):.2f}%\n"
        f"- 14ATR={atr_pct:.2f}%\n"
        f"- last10Trades={json.dumps([_trade_record(t) for t in history])}\n"
    )


class CompletionSignalSource:
    """Signal Source backed by a text-completion callable ``prompt -> text``.

    The call is retried up to ``max_attempts`` times with ``retry_delay_s``
    between attempts; exhausting them, or an unparseable answer, yields HOLD.
    """

    def __init__(
        self,
        complete: Callable[[str], str],
        *,
        timeframe: str = "3 minute",
        max_attempts: int = 4,
        retry_delay_s: float = 61.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._complete = complete
        self.timeframe = timeframe
        self.max_attempts = max_attempts
        self.retry_delay_s = retry_delay_s
        self._sleep = sleep

    def _call_with_retry(self, prompt: str) -> str | None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                text = self._complete(prompt)
                if not text:
                    raise ValueError("Empty response")
                return text
            except Exception as exc:
                logger.error("Completion call failed on attempt %d of %d: %s", attempt, self.max_attempts, exc)
                if attempt < self.max_attempts:
                    self._sleep(self.retry_delay_s)
        return None

    def generate(self, window: Sequence[Candle], history: Sequence[ClosedTrade]) -> Signal:
        if not window:
            return Signal.hold("No OHLC")
        prompt = build_prompt(window, history, self.timeframe)
        logger.info("Requesting signal for %s timeframe (%d candles)", self.timeframe, len(window))
        text = self._call_with_retry(prompt)
        if text is None:
            return Signal.hold("API Error")
        return parse_signal_or_hold(text)


def http_completion(url: str, *, timeout: float = 60.0) -> Callable[[str], str]:
    """Completion callable that POSTs ``{"prompt": ...}`` to *url*.

    The endpoint may answer with ``{"text": ...}`` or with plain text.
    """

    def complete(prompt: str) -> str:
        data = json.dumps({"prompt": prompt}).encode("utf-8")
        req = urllib.request.Request(
            url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            body = resp.read().decode("utf-8")
        try:
            decoded = json.loads(body)
        except json.JSONDecodeError:
            return body
        if isinstance(decoded, dict) and isinstance(decoded.get("text"), str):
            return decoded["text"]
        return body

    return complete
