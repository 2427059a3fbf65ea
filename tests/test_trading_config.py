"""Tests for the JSON trading config: defaults, schema validation, per-symbol overrides."""

import json
import shutil
from pathlib import Path

import pytest

from config.trading_config import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_SCHEMA_PATH,
    ConfigError,
    ExecutionParams,
    RiskConfig,
    SimulationConfig,
    load_trading_config,
)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    shutil.copy(DEFAULT_CONFIG_PATH, tmp_path / "trading.default.json")
    return tmp_path


def _load(config_dir: Path, **kwargs):
    return load_trading_config(config_dir / "trading.default.json", DEFAULT_SCHEMA_PATH, **kwargs)


def test_default_file_matches_dataclass_defaults() -> None:
    cfg = load_trading_config()
    assert cfg.leverage == 10
    assert cfg.risk == RiskConfig()
    assert cfg.execution == ExecutionParams()
    assert cfg.simulation == SimulationConfig()


def test_per_symbol_override_merges(config_dir: Path) -> None:
    (config_dir / "trading.ETHUSD.json").write_text(
        json.dumps({"risk": {"price_increment": 0.1}, "execution": {"entry_order_type": "market"}})
    )
    cfg = _load(config_dir, symbol="ETH/USD")
    assert cfg.risk.price_increment == 0.1
    assert cfg.risk.risk_fraction == 0.02
    assert cfg.execution.entry_order_type == "market"
    assert cfg.execution.fill_timeout_s == 60


def test_missing_override_uses_base(config_dir: Path) -> None:
    assert _load(config_dir, symbol="SOL/USD").risk == RiskConfig()


@pytest.mark.parametrize(
    "override",
    [
        {"risk": {"risk_fraction": 1.5}},
        {"risk": {"margin_buffer": -0.1}},
        {"execution": {"entry_order_type": "iceberg"}},
        {"simulation": {"warmup": 0}},
        {"risk": {"unknown_knob": 1}},
    ],
)
def test_schema_rejects_bad_values(config_dir: Path, override: dict) -> None:
    (config_dir / "trading.BTCUSD.json").write_text(json.dumps(override))
    with pytest.raises(ConfigError, match="validation failed"):
        _load(config_dir, symbol="BTC/USD")


def test_unreadable_files(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_trading_config(tmp_path / "absent.json")
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ConfigError, match="not valid JSON"):
        load_trading_config(broken)
