"""Tests for structured JSON event logger."""

import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from cli.structured_log import ALERT_EVENTS, StructuredEventLogger


@pytest.fixture
def buf() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(buf: io.StringIO) -> StructuredEventLogger:
    return StructuredEventLogger("BTC/USD", enabled=True, stream=buf)


class TestEmit:
    """Basic event emission and format."""

    def test_cycle_start_json(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.cycle_start(candles=52, last_close=50_012.5)
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "cycle_start"
        assert record["symbol"] == "BTC/USD"
        assert record["candles"] == 52
        assert record["last_close"] == 50_012.5
        assert "ts" in record

    def test_signal_received(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.signal_received(direction="SHORT", confidence=64.0, reason="lower highs")
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "signal_received"
        assert record["direction"] == "SHORT"
        assert record["confidence"] == 64.0

    def test_trade_submitted(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.trade_submitted(direction="LONG", size=1.9, stop=49_900.0, target=50_300.0, order_id="ord-1")
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "trade_submitted"
        assert record["size"] == 1.9
        assert record["stop"] == 49_900.0
        assert record["target"] == 50_300.0
        assert record["order_id"] == "ord-1"

    def test_exit_orders(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.exit_orders_placed(["s-1", "t-1"], stop=49_900.0, target=50_300.0)
        logger.exit_orders_failed(reason="batch refused")
        placed, failed = (json.loads(line) for line in buf.getvalue().strip().split("\n"))
        assert placed["order_ids"] == ["s-1", "t-1"]
        assert failed["event"] == "exit_orders_failed"
        assert failed["reason"] == "batch refused"

    def test_trade_closed_rounds_pnl(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.trade_closed(side="LONG", size=1.9, pnl=569.99999, exit_reason="take_profit")
        record = json.loads(buf.getvalue().strip())
        assert record["pnl"] == 570.0
        assert record["exit_reason"] == "take_profit"

    def test_order_rejected(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.order_rejected(reason="Insufficient funds")
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "order_rejected"
        assert record["reason"] == "Insufficient funds"

    def test_error_event(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.error(message="DB locked", detail="OperationalError")
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "error"
        assert record["message"] == "DB locked"
        assert record["detail"] == "OperationalError"

    def test_shutdown(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.shutdown(cycles=42)
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "shutdown"
        assert record["cycles"] == 42


class TestDisabled:
    """When structured_logs=False, nothing is written to stream."""

    def test_no_output_when_disabled(self, buf: io.StringIO) -> None:
        logger = StructuredEventLogger("BTC/USD", enabled=False, stream=buf)
        logger.cycle_start(candles=5, last_close=None)
        logger.signal_received(direction="HOLD", confidence=0.0, reason="")
        logger.trade_submitted(direction="LONG", size=1, stop=99, target=104)
        logger.shutdown(cycles=1)
        assert buf.getvalue() == ""


class TestMultipleEvents:
    """Multiple events produce multiple JSON lines."""

    def test_newline_delimited(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.cycle_start(candles=0, last_close=None)
        logger.cycle_complete(action="no_data")
        lines = buf.getvalue().strip().split("\n")
        assert len(lines) == 2
        assert json.loads(lines[0])["event"] == "cycle_start"
        assert json.loads(lines[1])["action"] == "no_data"


class TestWebhook:
    """Only alert-level events are POSTed; failures are logged, not raised."""

    def test_alert_events_posted(self, buf: io.StringIO) -> None:
        logger = StructuredEventLogger("BTC/USD", stream=buf, webhook_url="http://hooks.local/x")
        with patch("cli.structured_log.urllib.request.urlopen") as urlopen:
            urlopen.return_value.__enter__.return_value = MagicMock()
            logger.cycle_start(candles=1, last_close=1.0)
            logger.order_rejected(reason="no margin")
        assert urlopen.call_count == 1
        request = urlopen.call_args[0][0]
        assert json.loads(request.data)["event"] == "order_rejected"
        assert "order_rejected" in ALERT_EVENTS

    def test_webhook_failure_is_swallowed(self, buf: io.StringIO) -> None:
        logger = StructuredEventLogger("BTC/USD", stream=buf, webhook_url="http://hooks.local/x")
        with patch(
            "cli.structured_log.urllib.request.urlopen",
            side_effect=urllib.error.URLError("unreachable"),
        ):
            record = logger.error(message="boom")
        assert record["event"] == "error"
        assert json.loads(buf.getvalue().strip())["message"] == "boom"


class TestReturnValue:
    """Each method returns the record dict for testability."""

    def test_returns_record(self, logger: StructuredEventLogger) -> None:
        record = logger.cycle_start(candles=3, last_close=1.0)
        assert isinstance(record, dict)
        assert record["event"] == "cycle_start"
        assert record["symbol"] == "BTC/USD"
        assert record["candles"] == 3
