"""
Signal parser: Signal Source text -> validated Signal.

The Signal Source answers in loosely formatted text that should contain one
JSON object:

    {"signal": "LONG", "confidence": 72, "stop_loss_distance_in_usd": 150,
     "take_profit_distance_in_usd": 400, "reason": "..."}

The first decodable ``{...}`` object is extracted and validated against
``SIGNAL_SCHEMA``. Anything that fails becomes a fail-safe HOLD with zero
confidence; a malformed answer never propagates as a crash.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import jsonschema

from trade_core.contracts import Direction, Signal
from trade_core.errors import SignalParseError, ValidationError

logger = logging.getLogger("trader.signal")

_DECODER = json.JSONDecoder()

_POSITIVE = {"type": "number", "exclusiveMinimum": 0}

SIGNAL_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["signal", "confidence"],
    "properties": {
        "signal": {"type": "string", "enum": ["LONG", "SHORT", "HOLD"]},
        "confidence": {"type": "number", "minimum": 0, "maximum": 100},
        "stop_loss_distance_in_usd": {"type": "number"},
        "take_profit_distance_in_usd": {"type": "number"},
        "reason": {"type": "string"},
    },
    # Directional signals must carry positive exit distances.
    "if": {"properties": {"signal": {"enum": ["LONG", "SHORT"]}}},
    "then": {
        "required": ["stop_loss_distance_in_usd", "take_profit_distance_in_usd"],
        "properties": {
            "stop_loss_distance_in_usd": _POSITIVE,
            "take_profit_distance_in_usd": _POSITIVE,
        },
    },
}


def extract_json(text: str) -> dict[str, Any]:
    """Decode the first JSON object embedded in free text."""
    if not isinstance(text, str) or not text.strip():
        raise SignalParseError("Empty response")
    start = text.find("{")
    if start < 0:
        raise SignalParseError("No JSON object found in response")
    first_error = None
    while start >= 0:
        try:
            payload, _ = _DECODER.raw_decode(text, start)
            return payload
        except json.JSONDecodeError as exc:
            first_error = first_error or exc
        start = text.find("{", start + 1)
    raise SignalParseError(f"Response is not valid JSON: {first_error.msg}")


def signal_from_payload(payload: dict[str, Any]) -> Signal:
    """Validate a decoded payload and build a Signal. Raises SignalParseError."""
    data = dict(payload)
    if isinstance(data.get("signal"), str):
        data["signal"] = data["signal"].strip().upper()
    try:
        jsonschema.validate(instance=data, schema=SIGNAL_SCHEMA)
    except jsonschema.ValidationError as exc:
        raise SignalParseError(f"Signal failed validation: {exc.message}") from exc

    try:
        return Signal(
            direction=Direction(data["signal"]),
            confidence=float(data["confidence"]),
            stop_loss_distance=float(data.get("stop_loss_distance_in_usd", 0.0)),
            take_profit_distance=float(data.get("take_profit_distance_in_usd", 0.0)),
            reason=str(data.get("reason", "")),
        )
    except ValidationError as exc:
        raise SignalParseError(f"Signal failed validation: {exc}") from exc


def parse_signal(text: str) -> Signal:
    """Parse Signal Source text strictly. Raises SignalParseError."""
    return signal_from_payload(extract_json(text))


def parse_signal_or_hold(text: str) -> Signal:
    """Parse Signal Source text; any failure yields a fail-safe HOLD."""
    try:
        return parse_signal(text)
    except SignalParseError as exc:
        logger.error("Unusable signal response (%s). Raw text: %r", exc, text[:500] if isinstance(text, str) else text)
        return Signal.hold(f"Parse error: {exc}")
