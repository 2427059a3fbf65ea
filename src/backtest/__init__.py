"""
Backtest engine: replay candles, call the Signal Source, size via the RiskSizer, simulate exits, metrics.
"""

from backtest.runner import SimulationEngine, SimulationResult, filter_candles, run_simulation

__all__ = ["SimulationEngine", "SimulationResult", "filter_candles", "run_simulation"]
