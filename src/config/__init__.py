"""
Configuration loaders.

App config:      reads config.yaml, resolves env vars for secrets.
Trading config:  reads trading.default.json (or override), validates against JSON Schema.
"""

from config.loader import (
    AlertingConfig,
    AppConfig,
    BacktestConfig,
    DataConfig,
    ExecutionConfig,
    JournalConfig,
    SignalConfig,
    load_config,
)
from config.trading_config import (
    ConfigError,
    ExecutionParams,
    RiskConfig,
    SimulationConfig,
    TradingConfig,
    load_trading_config,
)

__all__ = [
    # App config (YAML)
    "AlertingConfig",
    "AppConfig",
    "BacktestConfig",
    "DataConfig",
    "ExecutionConfig",
    "JournalConfig",
    "SignalConfig",
    "load_config",
    # Trading config (JSON + schema)
    "ConfigError",
    "ExecutionParams",
    "RiskConfig",
    "SimulationConfig",
    "TradingConfig",
    "load_trading_config",
]
