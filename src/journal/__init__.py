"""Append-only trade ledger (JSON lines)."""

from journal.writer import JournalWriter, trade_key

__all__ = ["JournalWriter", "trade_key"]
