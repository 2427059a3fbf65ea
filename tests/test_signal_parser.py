"""Tests for Signal Source text parsing: extraction, schema validation, fail-safe HOLD."""

import pytest

from trade_core.contracts import Direction
from trade_core.errors import SignalParseError
from trade_core.signal_parser import extract_json, parse_signal, parse_signal_or_hold

VALID = (
    'Here is my analysis.\n```json\n{"signal": "LONG", "confidence": 72, '
    '"stop_loss_distance_in_usd": 150, "take_profit_distance_in_usd": 400, '
    '"reason": "higher lows"}\n```'
)


def test_parses_json_embedded_in_text() -> None:
    signal = parse_signal(VALID)
    assert signal.direction == Direction.LONG
    assert signal.confidence == 72.0
    assert signal.stop_loss_distance == 150.0
    assert signal.take_profit_distance == 400.0
    assert signal.reason == "higher lows"


def test_direction_is_case_insensitive() -> None:
    signal = parse_signal('{"signal": " short ", "confidence": 40, '
                          '"stop_loss_distance_in_usd": 10, "take_profit_distance_in_usd": 20}')
    assert signal.direction == Direction.SHORT


def test_hold_without_distances_is_valid() -> None:
    signal = parse_signal('{"signal": "HOLD", "confidence": 10, "reason": "chop"}')
    assert signal.direction == Direction.HOLD
    assert signal.stop_loss_distance == 0.0


@pytest.mark.parametrize(
    "text",
    [
        "",
        "no json here",
        "{not: valid json}",
        "[1, 2, 3]",
        '{"signal": "BUY", "confidence": 50}',
        '{"signal": "LONG", "confidence": 150, "stop_loss_distance_in_usd": 1, "take_profit_distance_in_usd": 1}',
        '{"signal": "LONG", "confidence": 50}',
        '{"signal": "LONG", "confidence": 50, "stop_loss_distance_in_usd": 0, "take_profit_distance_in_usd": 10}',
        '{"signal": "SHORT", "confidence": 50, "stop_loss_distance_in_usd": 5, "take_profit_distance_in_usd": -1}',
        '{"confidence": 50}',
    ],
)
def test_malformed_responses(text: str) -> None:
    with pytest.raises(SignalParseError):
        parse_signal(text)
    fallback = parse_signal_or_hold(text)
    assert fallback.direction == Direction.HOLD
    assert fallback.confidence == 0.0
    assert fallback.reason.startswith("Parse error")


def test_extract_json_rejects_non_object() -> None:
    with pytest.raises(SignalParseError, match="not valid JSON|not an object|No JSON"):
        extract_json("[]")


def test_first_object_wins_over_trailing_braces() -> None:
    text = (
        '{"signal": "LONG", "confidence": 60, "stop_loss_distance_in_usd": 50, '
        '"take_profit_distance_in_usd": 120} note: {x} and {"signal": "SHORT"}'
    )
    signal = parse_signal(text)
    assert signal.direction == Direction.LONG
    assert signal.take_profit_distance == 120.0


def test_skips_undecodable_braces_before_the_object() -> None:
    text = 'Setup {bullish}: {"signal": "HOLD", "confidence": 5, "reason": "wait"}'
    assert extract_json(text)["reason"] == "wait"


def test_hold_with_negative_distance_is_a_parse_error() -> None:
    text = '{"signal": "HOLD", "confidence": 5, "stop_loss_distance_in_usd": -3}'
    with pytest.raises(SignalParseError, match="negative"):
        parse_signal(text)
    assert parse_signal_or_hold(text).reason.startswith("Parse error")
