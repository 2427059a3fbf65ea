"""
Config loader: YAML file -> frozen dataclass tree.

API secrets resolved from environment variables (APCA_API_KEY_ID, APCA_API_SECRET_KEY).
Config file holds only non-secret values. Trading parameters (risk, execution
timing, simulation) live in the JSON trading config, see config.trading_config.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from config.trading_config import ConfigError

_SIGNAL_SOURCES = ("breakout", "completion")
_DATA_SOURCES = ("alpaca", "csv")


@dataclass(frozen=True)
class DataConfig:
    source: str = "alpaca"                     # "alpaca" | "csv"
    candle_store_path: str = "data/candles.db"
    csv_path: str = ""
    base_timeframe: str = ""                   # fetch at this timeframe and aggregate up
    aggregate_factor: int = 1
    api_key: str = ""
    api_secret: str = ""


@dataclass(frozen=True)
class SignalConfig:
    source: str = "breakout"                   # "breakout" | "completion"
    completion_url: str = ""
    timeframe_label: str = "3 minute"
    max_attempts: int = 4
    retry_delay_s: float = 61.0
    breakout_period: int = 21
    breakout_buffer_pct: float = 0.0015


@dataclass(frozen=True)
class BacktestConfig:
    start: str = ""                            # ISO date, inclusive
    end: str = ""                              # ISO date, exclusive
    throttle: bool = True                      # honour min_call_interval_s between signal calls


@dataclass(frozen=True)
class ExecutionConfig:
    state_path: str = "data/paper_state.db"
    initial_balance: float = 10_000.0
    trading_config_path: str = ""              # empty: docs/config/trading.default.json


@dataclass(frozen=True)
class JournalConfig:
    path: str = "data/ledger.jsonl"
    echo_stdout: bool = False


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class AppConfig:
    symbol: str
    timeframe: str
    data: DataConfig = field(default_factory=DataConfig)
    signal: SignalConfig = field(default_factory=SignalConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    journal: JournalConfig = field(default_factory=JournalConfig)
    alerting: AlertingConfig = field(default_factory=AlertingConfig)


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping, got {type(value).__name__}")
    return value


def _choice(value: str, allowed: tuple[str, ...], key: str) -> str:
    if value not in allowed:
        raise ConfigError(f"{key} must be one of {list(allowed)}, got {value!r}")
    return value


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """
    Load configuration from a YAML file.

    API keys are resolved from environment variables:
      - APCA_API_KEY_ID
      - APCA_API_SECRET_KEY
    These follow Alpaca's standard env var names.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Malformed YAML in {config_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    d_raw = _section(raw, "data")
    data_cfg = DataConfig(
        source=_choice(str(d_raw.get("source", "alpaca")), _DATA_SOURCES, "data.source"),
        candle_store_path=str(d_raw.get("candle_store_path", "data/candles.db")),
        csv_path=str(d_raw.get("csv_path", "")),
        base_timeframe=str(d_raw.get("base_timeframe", "")),
        aggregate_factor=int(d_raw.get("aggregate_factor", 1)),
        api_key=os.environ.get("APCA_API_KEY_ID", ""),
        api_secret=os.environ.get("APCA_API_SECRET_KEY", ""),
    )
    if data_cfg.aggregate_factor < 1:
        raise ConfigError(f"data.aggregate_factor must be >= 1, got {data_cfg.aggregate_factor}")

    s_raw = _section(raw, "signal")
    signal_cfg = SignalConfig(
        source=_choice(str(s_raw.get("source", "breakout")), _SIGNAL_SOURCES, "signal.source"),
        completion_url=str(s_raw.get("completion_url", "")),
        timeframe_label=str(s_raw.get("timeframe_label", "3 minute")),
        max_attempts=int(s_raw.get("max_attempts", 4)),
        retry_delay_s=float(s_raw.get("retry_delay_s", 61.0)),
        breakout_period=int(s_raw.get("breakout_period", 21)),
        breakout_buffer_pct=float(s_raw.get("breakout_buffer_pct", 0.0015)),
    )
    if signal_cfg.source == "completion" and not signal_cfg.completion_url:
        raise ConfigError("signal.completion_url is required when signal.source is 'completion'")

    bt_raw = _section(raw, "backtest")
    bt_cfg = BacktestConfig(
        start=str(bt_raw.get("start", "") or ""),
        end=str(bt_raw.get("end", "") or ""),
        throttle=bool(bt_raw.get("throttle", True)),
    )

    ex_raw = _section(raw, "execution")
    ex_cfg = ExecutionConfig(
        state_path=str(ex_raw.get("state_path", "data/paper_state.db")),
        initial_balance=float(ex_raw.get("initial_balance", 10_000)),
        trading_config_path=str(ex_raw.get("trading_config_path", "") or ""),
    )

    j_raw = _section(raw, "journal")
    j_cfg = JournalConfig(
        path=str(j_raw.get("path", "data/ledger.jsonl")),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = _section(raw, "alerting")
    a_cfg = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=str(a_raw.get("webhook_url", "") or ""),
    )

    return AppConfig(
        symbol=str(raw.get("symbol", "BTC/USD")),
        timeframe=str(raw.get("timeframe", "3m")),
        data=data_cfg,
        signal=signal_cfg,
        backtest=bt_cfg,
        execution=ex_cfg,
        journal=j_cfg,
        alerting=a_cfg,
    )
