"""Tests for the trade ledger: append-only records and closed-trade dedupe."""

import json
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from journal import JournalWriter, trade_key
from trade_core.contracts import Direction, Fill, Side, Signal


def test_journal_writer_append_only(make_trade) -> None:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".jsonl", delete=False) as f:
        path = Path(f.name)
    try:
        j = JournalWriter(path)
        j.signal("BTC/USD", Signal(Direction.LONG, 70.0, 150.0, 400.0, "higher lows"), mode="live")
        j.trade("BTC/USD", make_trade(20.0))
        with open(path) as f:
            lines = f.readlines()
        assert len(lines) == 2
        r0 = json.loads(lines[0])
        assert r0["event"] == "signal"
        assert r0["direction"] == "LONG"
        assert r0["reason"] == "higher lows"
        assert r0["mode"] == "live"
        assert "ts_utc" in r0
        r1 = json.loads(lines[1])
        assert r1["event"] == "trade"
        assert r1["pnl"] == 20.0
        assert r1["side"] == "LONG"
        assert r1["key"] == trade_key(make_trade(20.0))
    finally:
        path.unlink(missing_ok=True)


def test_duplicate_trade_not_written_twice(tmp_path: Path, make_trade) -> None:
    path = tmp_path / "ledger.jsonl"
    j = JournalWriter(path)
    assert j.trade("BTC/USD", make_trade(5.0))
    assert not j.trade("BTC/USD", make_trade(5.0))
    assert j.trade("BTC/USD", make_trade(5.0, minute=10))
    assert len(j.read_events("trade")) == 2


def test_dedupe_survives_restart(tmp_path: Path, make_trade) -> None:
    path = tmp_path / "ledger.jsonl"
    JournalWriter(path).trade("BTC/USD", make_trade(-3.0))
    reopened = JournalWriter(path)
    assert not reopened.trade("BTC/USD", make_trade(-3.0))
    assert len(reopened.read_events("trade")) == 1


def test_order_fill_and_cycle_records(tmp_path: Path) -> None:
    j = JournalWriter(tmp_path / "ledger.jsonl")
    ts = datetime(2025, 7, 2, 0, 3, tzinfo=timezone.utc)
    j.order("ord-1", "BTC/USD", "EXIT_CONFIRMED", exit_order_ids=("a", "b"))
    j.fill("BTC/USD", Fill(Side.SELL, 0.5, 50_100.0, ts, order_id="ord-1", fill_id="f-1"))
    j.cycle("BTC/USD", action="hold", candles=52)

    order, fill, cycle = j.read_events()
    assert order["state"] == "EXIT_CONFIRMED"
    assert order["exit_order_ids"] == ["a", "b"]
    assert fill["side"] == "sell"
    assert fill["fill_time"] == ts.isoformat()
    assert cycle["action"] == "hold"
    assert j.read_events("fill") == [fill]


def test_echo_stdout(tmp_path: Path, capsys) -> None:
    JournalWriter(tmp_path / "ledger.jsonl", echo_stdout=True).cycle("BTC/USD", action="no_data")
    assert '"event": "cycle"' in capsys.readouterr().out


def test_read_events_missing_file(tmp_path: Path) -> None:
    assert JournalWriter(tmp_path / "nothing.jsonl").read_events() == []
