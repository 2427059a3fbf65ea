"""
Execution: Signal + TradeParameters -> venue orders, fill confirmation, protective exits.
Paper venue is restart-safe (SQLite). No live capital without a venue adapter.
"""

from execution.exit_plans import ExitPlan, ExitPlanStore
from execution.live_executor import LiveOrderExecutor
from execution.models import (
    ExecutionResult,
    ExecutionState,
    OrderAck,
    OrderSpec,
    OrderTag,
    OrderType,
    VenueOrder,
    VenuePosition,
)
from execution.paper_venue import PaperVenue
from execution.venue import OrderRejectedError, TransientVenueError, Venue, VenueError

__all__ = [
    "ExecutionResult",
    "ExecutionState",
    "ExitPlan",
    "ExitPlanStore",
    "LiveOrderExecutor",
    "OrderAck",
    "OrderRejectedError",
    "OrderSpec",
    "OrderTag",
    "OrderType",
    "PaperVenue",
    "TransientVenueError",
    "Venue",
    "VenueError",
    "VenueOrder",
    "VenuePosition",
]
