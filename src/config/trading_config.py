"""
Trading config loader: JSON file -> frozen dataclass tree, validated against JSON Schema.

Default values:      docs/config/trading.default.json
Schema:              docs/config/trading_config.schema.json

Per-symbol overrides: place a partial JSON file named ``trading.{SYMBOL}.json``
next to the default config (e.g. ``docs/config/trading.XBTUSD.json``; any ``/``
in the symbol is dropped). Only the keys you want to override need to be
present; they are deep-merged on top of the base config before schema
validation.

Usage:
    from config.trading_config import load_trading_config
    cfg = load_trading_config()                        # loads default
    cfg = load_trading_config(symbol="XBTUSD")         # merges trading.XBTUSD.json if present
    cfg.risk.risk_fraction  # -> 0.02
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema

logger = logging.getLogger("trader.config")

# ---------------------------------------------------------------------------
# Project root detection (walk up from this file to find pyproject.toml)
# ---------------------------------------------------------------------------


def _find_project_root() -> Path:
    """Walk up from this file looking for pyproject.toml.

    When installed as a package the file won't exist; fall back to CWD.
    """
    candidate = Path(__file__).resolve().parent
    for _ in range(10):
        if (candidate / "pyproject.toml").exists():
            return candidate
        parent = candidate.parent
        if parent == candidate:
            break
        candidate = parent
    return Path.cwd()


_PROJECT_ROOT = _find_project_root()

DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "docs" / "config" / "trading.default.json"
DEFAULT_SCHEMA_PATH = _PROJECT_ROOT / "docs" / "config" / "trading_config.schema.json"


# ---------------------------------------------------------------------------
# Frozen dataclass tree, mirrors trading.default.json structure exactly
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskConfig:
    """Sizing parameters for the RiskSizer."""
    risk_fraction: float = 0.02
    margin_safety_factor: float = 0.95
    margin_buffer: float = 0.01      # surcharge on required margin (0.01 - 0.40)
    min_size: float = 0.0001
    size_precision: int = 4          # decimals kept on the order quantity
    price_increment: float = 1.0     # stop/target rounding step


@dataclass(frozen=True)
class ExecutionParams:
    """Live executor timing and pricing."""
    entry_order_type: str = "limit"  # "limit" | "market"
    entry_slippage: float = 0.001    # aggressive limit offset through last price
    stop_slippage: float = 0.01      # stop trigger -> stop limit offset
    poll_interval_s: float = 5.0
    fill_timeout_s: float = 60.0
    min_confidence: float = 25.0
    cycle_interval_s: float = 180.0


@dataclass(frozen=True)
class SimulationConfig:
    """Backtest replay parameters."""
    initial_balance: float = 10_000.0
    leverage: float = 10.0
    warmup: int = 52
    window_size: int = 52
    min_confidence: float = 0.0
    max_signal_calls: int = 20
    min_call_interval_s: float = 10.0
    history_size: int = 10


@dataclass(frozen=True)
class TradingConfig:
    """Top-level trading configuration."""
    version: str
    leverage: float = 10.0
    risk: RiskConfig = field(default_factory=RiskConfig)
    execution: ExecutionParams = field(default_factory=ExecutionParams)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)


# ---------------------------------------------------------------------------
# Deep merge for per-symbol overrides
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overrides* into a copy of *base*.

    - Dict values are merged recursively (override keys win).
    - Non-dict values in overrides replace the base value.
    - Keys in base that are absent from overrides are preserved.
    """
    merged = dict(base)
    for key, val in overrides.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(val, dict):
            merged[key] = _deep_merge(merged[key], val)
        else:
            merged[key] = val
    return merged


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when trading config loading or validation fails."""


def _validate_schema(data: dict[str, Any], schema_path: Path) -> None:
    """Validate *data* against the JSON Schema at *schema_path*."""
    if not schema_path.exists():
        raise ConfigError(f"Schema file not found: {schema_path}")
    with open(schema_path) as f:
        schema = json.load(f)
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        raise ConfigError(f"Trading config validation failed: {exc.message}") from exc


def _build_config(data: dict[str, Any]) -> TradingConfig:
    """Convert a raw dict (already validated) into the frozen dataclass tree."""
    risk_raw = data.get("risk", {})
    ex_raw = data.get("execution", {})
    sim_raw = data.get("simulation", {})
    leverage = float(data.get("leverage", 10.0))

    return TradingConfig(
        version=data["version"],
        leverage=leverage,
        risk=RiskConfig(
            risk_fraction=risk_raw.get("risk_fraction", 0.02),
            margin_safety_factor=risk_raw.get("margin_safety_factor", 0.95),
            margin_buffer=risk_raw.get("margin_buffer", 0.01),
            min_size=risk_raw.get("min_size", 0.0001),
            size_precision=risk_raw.get("size_precision", 4),
            price_increment=risk_raw.get("price_increment", 1.0),
        ),
        execution=ExecutionParams(
            entry_order_type=ex_raw.get("entry_order_type", "limit"),
            entry_slippage=ex_raw.get("entry_slippage", 0.001),
            stop_slippage=ex_raw.get("stop_slippage", 0.01),
            poll_interval_s=ex_raw.get("poll_interval_s", 5.0),
            fill_timeout_s=ex_raw.get("fill_timeout_s", 60.0),
            min_confidence=ex_raw.get("min_confidence", 25.0),
            cycle_interval_s=ex_raw.get("cycle_interval_s", 180.0),
        ),
        simulation=SimulationConfig(
            initial_balance=sim_raw.get("initial_balance", 10_000.0),
            leverage=sim_raw.get("leverage", leverage),
            warmup=sim_raw.get("warmup", 52),
            window_size=sim_raw.get("window_size", 52),
            min_confidence=sim_raw.get("min_confidence", 0.0),
            max_signal_calls=sim_raw.get("max_signal_calls", 20),
            min_call_interval_s=sim_raw.get("min_call_interval_s", 10.0),
            history_size=sim_raw.get("history_size", 10),
        ),
    )


def load_trading_config(
    config_path: str | Path | None = None,
    schema_path: str | Path | None = None,
    symbol: str | None = None,
) -> TradingConfig:
    """Load and validate trading configuration.

    Parameters
    ----------
    config_path:
        Path to a trading JSON config file.  Defaults to ``docs/config/trading.default.json``.
    schema_path:
        Path to the JSON Schema file.  Defaults to ``docs/config/trading_config.schema.json``.
    symbol:
        Optional instrument symbol.  When provided, the loader looks for
        ``trading.{SYMBOL}.json`` in the same directory as the base config
        and deep-merges it before validation.  A missing override is not an error.

    Raises
    ------
    ConfigError
        If the file is missing, unparseable, or fails schema validation.
    """
    cfg_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    sch_path = Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH

    if not cfg_path.exists():
        raise ConfigError(f"Trading config file not found: {cfg_path}")

    try:
        with open(cfg_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Trading config is not valid JSON: {exc}") from exc

    if symbol:
        override_path = cfg_path.parent / f"trading.{symbol.upper().replace('/', '')}.json"
        if override_path.exists():
            try:
                with open(override_path) as f:
                    overrides = json.load(f)
            except json.JSONDecodeError as exc:
                raise ConfigError(
                    f"Per-symbol config {override_path.name} is not valid JSON: {exc}"
                ) from exc
            data = _deep_merge(data, overrides)
            logger.info("Loaded per-symbol config: %s", override_path.name)
        else:
            logger.debug("No per-symbol config found at %s, using defaults", override_path)

    _validate_schema(data, sch_path)

    return _build_config(data)
