"""
Venue adapter protocol and the error taxonomy of the exchange boundary.

Submission errors are surfaced, never retried (duplicate-order risk).
TransientVenueError is retried only inside the bounded fill-confirmation poll.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from execution.models import OrderAck, OrderSpec, VenueOrder, VenuePosition
from trade_core.contracts import Fill


class VenueError(Exception):
    """Base class for venue failures."""


class TransientVenueError(VenueError):
    """Network failure or rate limit; safe to retry for read-only calls."""


class OrderRejectedError(VenueError):
    """The venue refused an order or returned an unusable response."""


class Venue(Protocol):
    """Protocol for venue adapters. Implement per exchange (or paper)."""

    def submit_entry_order(self, spec: OrderSpec) -> OrderAck:
        ...

    def poll_recent_fills(self) -> list[Fill]:
        """Recent fills across symbols, oldest first. May be a bounded window."""
        ...

    def fill_history(self, symbol: str) -> list[Fill]:
        """Every fill for ``symbol``, oldest first. FIFO matching needs the full history."""
        ...

    def submit_exit_batch(self, specs: Sequence[OrderSpec]) -> OrderAck:
        """Submit all specs atomically: either all rest or none do."""
        ...

    def get_open_positions(self) -> list[VenuePosition]:
        ...

    def get_open_orders(self) -> list[VenueOrder]:
        ...

    def get_balance(self) -> float:
        ...
