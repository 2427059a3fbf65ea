"""
CLI entry point: trader ingest | backtest | trade | pnl | health.

Every command loads config from --config (default config.yaml) and the
trading parameters from the JSON trading config, prints a human-readable
summary and writes to the ledger.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timedelta, timezone

import click
from dotenv import load_dotenv

from config import AppConfig, ConfigError, TradingConfig, load_config, load_trading_config

load_dotenv()

logger = logging.getLogger("trader")


def _setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    ts = datetime.fromisoformat(value)
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)


def _load_app_config(ctx: click.Context) -> AppConfig:
    try:
        return load_config(ctx.obj["config_path"])
    except (FileNotFoundError, ConfigError) as exc:
        raise click.ClickException(str(exc)) from exc


def _load_trading(cfg: AppConfig) -> TradingConfig:
    try:
        return load_trading_config(cfg.execution.trading_config_path or None, symbol=cfg.symbol)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _build_source(cfg: AppConfig):
    from trade_core.signal_source import BreakoutSignalSource, CompletionSignalSource, http_completion

    if cfg.signal.source == "completion":
        return CompletionSignalSource(
            http_completion(cfg.signal.completion_url),
            timeframe=cfg.signal.timeframe_label,
            max_attempts=cfg.signal.max_attempts,
            retry_delay_s=cfg.signal.retry_delay_s,
        )
    return BreakoutSignalSource(
        period=cfg.signal.breakout_period,
        buffer_pct=cfg.signal.breakout_buffer_pct,
    )


def _load_candles(cfg: AppConfig, csv_path: str | None = None, since=None, until=None):
    """Candles from CSV (aggregated when configured) or from the candle store."""
    from data import CandleStore, aggregate_candles, load_candles_csv

    path = csv_path or (cfg.data.csv_path if cfg.data.source == "csv" else "")
    if path:
        candles = load_candles_csv(path, symbol=cfg.symbol)
        if cfg.data.aggregate_factor > 1:
            candles = aggregate_candles(candles, cfg.data.aggregate_factor)
        return candles
    store = CandleStore(cfg.data.candle_store_path)
    return store.get_candles(cfg.symbol, cfg.timeframe, since=since, until=until)


def _fetch_into_store(cfg: AppConfig, start: datetime, end: datetime, timeframe: str | None = None) -> tuple[int, list]:
    """Fetch from Alpaca (aggregating from the base timeframe when set) and upsert into the store."""
    from data import CandleStore, aggregate_candles, get_alpaca_fetcher

    tf = timeframe or cfg.timeframe
    fetch_tf = cfg.data.base_timeframe or tf
    fetcher = get_alpaca_fetcher(cfg.data.api_key, cfg.data.api_secret)
    result = fetcher.fetch(cfg.symbol, fetch_tf, start=start, end=end)
    candles = result.candles
    if cfg.data.base_timeframe and cfg.data.aggregate_factor > 1:
        candles = aggregate_candles(candles, cfg.data.aggregate_factor)
    store = CandleStore(cfg.data.candle_store_path)
    if candles:
        store.write_candles(cfg.symbol, tf, candles)
    return store.count_candles(cfg.symbol, tf), candles


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_path: str, verbose: bool) -> None:
    """signal-trader: risk-sized entries, protective exits, FIFO PnL and candle backtests."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- trader ingest ----------


@cli.command()
@click.option("--days", default=3, type=int, help="Number of calendar days to fetch.")
@click.option("--start", "start_str", default=None, help="Start date (ISO, e.g. 2025-07-02).")
@click.option("--end", "end_str", default=None, help="End date (ISO, e.g. 2025-08-01).")
@click.option("--timeframe", "tf_override", default=None, help="Override timeframe (e.g. 1m, 1h).")
@click.pass_context
def ingest(ctx: click.Context, days: int, start_str: str | None, end_str: str | None, tf_override: str | None) -> None:
    """Fetch crypto candles from Alpaca and store locally."""
    cfg = _load_app_config(ctx)
    tf = tf_override or cfg.timeframe
    end_dt = _parse_date(end_str) or datetime.now(timezone.utc)
    start_dt = _parse_date(start_str) or end_dt - timedelta(days=days)

    click.echo(f"Fetching {cfg.symbol} {tf} candles from {start_dt.date()} to {end_dt.date()} ...")
    total, candles = _fetch_into_store(cfg, start_dt, end_dt, tf)
    if candles:
        click.echo(f"Stored {len(candles)} candles in {cfg.data.candle_store_path}")
        click.echo(f"  Range: {candles[0].timestamp.isoformat()} -> {candles[-1].timestamp.isoformat()}")
        click.echo(f"  Total {tf} candles in store: {total}")
    else:
        click.echo("No candles returned. Check symbol, timeframe and date range.")


# ---------- trader backtest ----------


@cli.command()
@click.option("--csv", "csv_path", default=None, type=click.Path(exists=True, dir_okay=False), help="Candle CSV (overrides the store).")
@click.option("--start", "start_str", default=None, help="Start date filter (ISO, inclusive).")
@click.option("--end", "end_str", default=None, help="End date filter (ISO, exclusive).")
@click.option("--no-throttle", is_flag=True, default=False, help="Do not sleep between signal calls.")
@click.pass_context
def backtest(ctx: click.Context, csv_path: str | None, start_str: str | None, end_str: str | None, no_throttle: bool) -> None:
    """Replay candles through the Signal Source and RiskSizer and print the summary."""
    cfg = _load_app_config(ctx)
    trading = _load_trading(cfg)
    from backtest import filter_candles, run_simulation
    from cli.output import format_backtest_summary
    from journal import JournalWriter
    from trade_core.errors import InsufficientDataError

    start = _parse_date(start_str or cfg.backtest.start)
    end = _parse_date(end_str or cfg.backtest.end)
    candles = filter_candles(_load_candles(cfg, csv_path, start, end), start, end)
    if not candles:
        click.echo("No candles to replay. Run 'trader ingest' or pass --csv.")
        return

    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)

    def on_event(event_type: str, payload: dict) -> None:
        if event_type == "exit":
            journal.trade(cfg.symbol, payload["trade"], mode="backtest")
        elif event_type == "signal":
            journal.signal(cfg.symbol, payload["signal"], mode="backtest", candle_time=payload["timestamp"])

    throttle = cfg.backtest.throttle and not no_throttle
    extra = {} if throttle else {"sleep": lambda _s: None}
    click.echo(f"Running backtest: {cfg.symbol} {cfg.timeframe}, {len(candles)} candles ...")
    try:
        result = run_simulation(
            candles,
            _build_source(cfg),
            trading.simulation,
            risk=trading.risk,
            on_event=on_event,
            **extra,
        )
    except InsufficientDataError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(format_backtest_summary(result, cfg.symbol, cfg.timeframe))


# ---------- trader trade ----------


def _build_cycle(cfg: AppConfig, trading: TradingConfig):
    from cli.scheduler import TradingCycle
    from cli.structured_log import StructuredEventLogger
    from data import CandleStore
    from execution import ExitPlanStore, LiveOrderExecutor, PaperVenue
    from journal import JournalWriter

    venue = PaperVenue(cfg.execution.state_path, initial_balance=cfg.execution.initial_balance)
    executor = LiveOrderExecutor(
        venue, cfg.symbol, params=trading.execution, risk=trading.risk,
        plans=ExitPlanStore(cfg.execution.state_path),
    )
    window = trading.simulation.window_size

    def candles():
        if cfg.data.source == "csv":
            return _load_candles(cfg)[-window:]
        end = datetime.now(timezone.utc)
        _fetch_into_store(cfg, end - timedelta(days=1), end)
        return CandleStore(cfg.data.candle_store_path).get_last_candles(cfg.symbol, cfg.timeframe, window)

    return TradingCycle(
        symbol=cfg.symbol,
        candles=candles,
        source=_build_source(cfg),
        venue=venue,
        executor=executor,
        config=trading,
        journal=JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout),
        events=StructuredEventLogger(
            cfg.symbol,
            enabled=cfg.alerting.structured_logs,
            webhook_url=cfg.alerting.webhook_url,
        ),
        on_price=lambda c: venue.update_price(cfg.symbol, c.close),
        window_size=window,
        history_size=trading.simulation.history_size,
    )


@cli.command()
@click.option("--loop", "loop", is_flag=True, default=False, help="Run a cycle every cycle interval until Ctrl+C.")
@click.option("--max-cycles", default=None, type=int, help="Stop the loop after N cycles.")
@click.pass_context
def trade(ctx: click.Context, loop: bool, max_cycles: int | None) -> None:
    """Run one trading cycle (or a loop) against the paper venue."""
    cfg = _load_app_config(ctx)
    trading = _load_trading(cfg)
    from cli.output import format_cycle
    from cli.scheduler import run_loop

    cycle = _build_cycle(cfg, trading)
    if loop:
        run_loop(
            cycle,
            trading.execution.cycle_interval_s,
            max_cycles=max_cycles,
            on_cycle=lambda m: click.echo(format_cycle(m)),
        )
        return
    click.echo(format_cycle(cycle.run_once()))


# ---------- trader pnl ----------


@cli.command()
@click.option("--since", "since_str", default=None, help="Only trades closed at or after this time (ISO).")
@click.option("--last", "last_n", default=None, type=int, help="Only list the last N trades.")
@click.pass_context
def pnl(ctx: click.Context, since_str: str | None, last_n: int | None) -> None:
    """FIFO-match paper fills into closed trades and show realized PnL."""
    cfg = _load_app_config(ctx)
    from cli.output import format_account, format_pnl_report
    from execution import PaperVenue
    from trade_core.fill_matcher import match_fills
    from trade_core.stats import compute_stats

    venue = PaperVenue(cfg.execution.state_path, initial_balance=cfg.execution.initial_balance)
    since = _parse_date(since_str)
    # Match the whole history so a window start never splits a round trip.
    trades = [t for t in match_fills(venue.fill_history(cfg.symbol)) if since is None or t.exit_time >= since]
    stats = compute_stats(trades, cfg.execution.initial_balance)
    shown = trades[-last_n:] if last_n else trades
    click.echo(format_account(venue.get_open_positions(), venue.get_balance()))
    click.echo(format_pnl_report(shown, stats, cfg.symbol))


# ---------- trader health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check system health: config, trading config, candle store.

    Exit code 0 = healthy, 1 = unhealthy. Designed for Docker HEALTHCHECK.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded ({cfg.symbol} {cfg.timeframe})"))
    except (FileNotFoundError, ConfigError) as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        trading = load_trading_config(cfg.execution.trading_config_path or None, symbol=cfg.symbol)
        checks.append(("trading_config", True, f"validated (v{trading.version}, leverage {trading.leverage:g})"))
    except ConfigError as e:
        checks.append(("trading_config", False, str(e)))

    if cfg.data.source == "csv":
        from pathlib import Path

        ok = bool(cfg.data.csv_path) and Path(cfg.data.csv_path).exists()
        checks.append(("candles", ok, f"csv {cfg.data.csv_path or '(not set)'}"))
    else:
        from data import CandleStore

        count = CandleStore(cfg.data.candle_store_path).count_candles(cfg.symbol, cfg.timeframe)
        if count > 0:
            checks.append(("candles", True, f"{count} {cfg.timeframe} candles"))
        else:
            checks.append(("candles", False, f"no {cfg.timeframe} candles for {cfg.symbol}"))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
