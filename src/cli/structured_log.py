"""
Structured JSON event logger for container observability.

Emits one JSON object per line to stderr. Events are designed to be
parsed by log aggregators (Grafana Loki, CloudWatch, ELK).

Optional webhook: when configured, trade-level events (trade_submitted,
entry_filled, order_rejected, trade_closed, error) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.error
import urllib.request
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("trader.events")

ALERT_EVENTS = frozenset({
    "trade_submitted",
    "entry_filled",
    "order_rejected",
    "exit_orders_failed",
    "trade_closed",
    "error",
})


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    def __init__(
        self,
        symbol: str,
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
    ) -> None:
        self._symbol = symbol
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "symbol": self._symbol,
            **fields,
        }
        if self._enabled:
            self._stream.write(json.dumps(record) + "\n")
            self._stream.flush()

        if self._webhook_url and event_type in ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        data = json.dumps(record).encode("utf-8")
        req = urllib.request.Request(
            self._webhook_url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=5):
                pass
        except (urllib.error.URLError, OSError) as exc:
            logger.warning("Webhook POST failed: %s", exc)

    def cycle_start(self, candles: int, last_close: float | None) -> dict:
        return self._emit("cycle_start", candles=candles, last_close=last_close)

    def signal_received(self, direction: str, confidence: float, reason: str) -> dict:
        return self._emit(
            "signal_received",
            direction=direction,
            confidence=confidence,
            reason=reason,
        )

    def trade_submitted(
        self,
        direction: str,
        size: float,
        stop: float,
        target: float,
        order_id: str | None = None,
    ) -> dict:
        return self._emit(
            "trade_submitted",
            direction=direction,
            size=size,
            stop=stop,
            target=target,
            order_id=order_id,
        )

    def entry_filled(self, size: float, price: float) -> dict:
        return self._emit("entry_filled", size=size, price=price)

    def exit_orders_placed(self, order_ids: list[str], stop: float, target: float) -> dict:
        return self._emit("exit_orders_placed", order_ids=order_ids, stop=stop, target=target)

    def exit_orders_failed(self, reason: str) -> dict:
        return self._emit("exit_orders_failed", reason=reason)

    def order_rejected(self, reason: str) -> dict:
        return self._emit("order_rejected", reason=reason)

    def trade_closed(self, side: str, size: float, pnl: float, exit_reason: str | None = None) -> dict:
        return self._emit(
            "trade_closed",
            side=side,
            size=size,
            pnl=round(pnl, 2),
            exit_reason=exit_reason,
        )

    def cycle_complete(self, action: str, state: str | None = None) -> dict:
        return self._emit("cycle_complete", action=action, state=state)

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)

    def shutdown(self, cycles: int) -> dict:
        return self._emit("shutdown", cycles=cycles)
