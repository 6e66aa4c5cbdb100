#!/usr/bin/env python3
"""
Autotrader CLI: live | backtest
Usage:
  python main.py live [--config config.yaml]
  python main.py backtest [--config config.yaml] [--symbol LTCUSDT]
"""

from __future__ import annotations
import argparse
import logging
import signal
import sys
import threading
from datetime import timedelta
from pathlib import Path
from typing import Optional

import pandas as pd

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autotrader.backtesting.engine import BacktestEngine
from autotrader.core.config import Config, load_config
from autotrader.core.errors import ConfigurationError, ConnectivityError
from autotrader.core.logger import setup_logging
from autotrader.data.store import SqliteBarStore
from autotrader.engine.scheduler import FixedInterval, Scheduler, WallClockAligned
from autotrader.engine.trader import TradingEngine
from autotrader.execution.binance_futures import BinanceFuturesClient
from autotrader.risk.gate import EntryGate
from autotrader.risk.manager import RiskManager
from autotrader.risk.monitor import build_monitor
from autotrader.risk.sizing import build_sizing_policy
from autotrader.strategies import build_strategy
from autotrader.utils.telegram import make_notifier, send_telegram

logger = logging.getLogger("autotrader")

EXIT_CONFIG_ERROR = 2


def build_components(config: Config, symbol_info: Optional[dict] = None):
    """Fresh strategy, gate, risk manager and monitor; nothing is shared between symbols."""
    strategy = build_strategy(config)
    gate = EntryGate(
        cooldown=timedelta(minutes=config.cooldown_minutes),
        max_open_positions=config.max_open_positions,
        minute_multiple=config.entry_minute_multiple,
    )
    risk = RiskManager(
        policy=build_sizing_policy(config.sizing_policy, config.base_volume, config.max_volume),
        take_profit=config.take_profit,
        stop_loss=config.stop_loss,
        use_spread=config.use_spread,
        scale_targets=config.scale_targets,
        price_tick=config.price_tick,
        symbol_info=symbol_info,
        volume_step=config.volume_step,
    )
    monitor = build_monitor(
        fixed_targets=config.monitor_fixed_targets,
        trailing_fraction=config.trailing_fraction,
        aggregate_profit_target=config.aggregate_profit_target,
        profit_floor=config.profit_floor,
        profit_ceiling=config.profit_ceiling,
    )
    return strategy, gate, risk, monitor


def build_cadence(config: Config):
    if config.schedule_mode == "interval":
        return FixedInterval(config.interval_seconds)
    return WallClockAligned(config.align_minutes)


def _load(config_path: Optional[Path]) -> Config:
    config = load_config(config_path, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    return config


def _utc(value) -> Optional[pd.Timestamp]:
    if value in (None, ""):
        return None
    ts = pd.Timestamp(value)
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


def run_backtest(config_path: Optional[Path], symbol: Optional[str] = None) -> int:
    """Replay stored bars (fetching them first if the store is empty and keys are set)."""
    config = _load(config_path)
    symbol = (symbol or config.symbols[0]).upper()
    store = SqliteBarStore(str(config.db_path), symbol, config.timeframe)
    start, end = _utc(config.backtest_start), _utc(config.backtest_end)
    bars = store.query_bars(
        start=start.to_pydatetime() if start is not None else None,
        end=end.to_pydatetime() if end is not None else None,
    )
    if not bars:
        if not config.binance_api_key or not config.binance_api_secret:
            logger.error("No stored %s %s bars and no API keys to fetch them. Set BINANCE_API_KEY/SECRET in .env",
                         symbol, config.timeframe)
            return 1
        client = BinanceFuturesClient(config.binance_api_key, config.binance_api_secret, testnet=config.use_testnet)
        try:
            fetched = client.get_historical_bars(
                symbol, config.timeframe,
                since=start.to_pydatetime() if start is not None else None,
                limit=1500,
            )
        except ConnectivityError as e:
            logger.error("Could not fetch bars: %s", e)
            return 1
        logger.info("Fetched %d bars, %d new in store", len(fetched), store.save_bars(fetched))
        bars = [b for b in fetched if end is None or b.time <= end.to_pydatetime()]

    strategy, gate, risk, monitor = build_components(config)
    engine = BacktestEngine(
        strategy=strategy,
        risk_manager=risk,
        monitor=monitor,
        gate=gate,
        timeframe=config.timeframe,
        spread=config.backtest_spread,
        initial_capital=config.backtest_initial_capital,
        attach_mode=config.attach_mode,
        history_limit=config.history_limit,
    )
    result = engine.run(bars, symbol=symbol)
    m = result.metrics
    if m:
        print("\n--- Backtest Results ---")
        print(f"Bars replayed: {len(bars)}")
        print(f"Total trades: {m.total_trades} (wins: {m.winning_trades}, losses: {m.losing_trades})")
        print(f"Total pnl: {m.total_pnl:.4f}")
        print(f"Total return: {m.total_return_pct:.2f}%")
        print(f"Sharpe ratio: {m.sharpe_ratio:.2f}")
        print(f"Sortino ratio: {m.sortino_ratio:.2f}")
        print(f"Max drawdown: {m.max_drawdown_pct:.2f}%")
        print(f"Win rate: {m.win_rate*100:.1f}%")
        print(f"Profit factor: {m.profit_factor:.2f}")
        print(f"Expectancy: {m.expectancy:.4f}/trade")
        for reason, count in sorted(m.exit_reasons.items()):
            print(f"  {reason}: {count}")
    return 0


def run_live(config_path: Optional[Path]) -> int:
    """One scheduler thread per symbol; Ctrl-C / SIGTERM stops all of them."""
    config = _load(config_path)
    if not config.binance_api_key or not config.binance_api_secret:
        logger.error("Missing BINANCE_API_KEY or BINANCE_API_SECRET in .env")
        return 1
    client = BinanceFuturesClient(
        config.binance_api_key,
        config.binance_api_secret,
        testnet=config.use_testnet,
    )
    stop = threading.Event()
    threads = []
    for symbol in config.symbols:
        client.set_leverage(symbol, config.leverage)
        try:
            symbol_info = client.get_symbol_info(symbol)
        except ConnectivityError as e:
            logger.warning("%s: no exchange info (%s), using default filters", symbol, e)
            symbol_info = None
        strategy, gate, risk, monitor = build_components(config, symbol_info)
        engine = TradingEngine(
            symbol=symbol,
            timeframe=config.timeframe,
            strategy=strategy,
            client=client,
            store=SqliteBarStore(str(config.db_path), symbol, config.timeframe),
            gate=gate,
            risk=risk,
            monitor=monitor,
            attach_mode=config.attach_mode,
            history_limit=config.history_limit,
            notify=make_notifier(config.telegram_bot_token, config.telegram_chat_id, prefix=f"[{symbol}] "),
        )
        scheduler = Scheduler(
            engine.run_cycle,
            build_cadence(config),
            name=symbol,
            stop_event=stop,
            base_backoff_seconds=config.base_backoff_seconds,
            max_backoff_seconds=config.max_backoff_seconds,
        )
        threads.append(threading.Thread(target=scheduler.run, name=f"scheduler-{symbol}", daemon=True))

    def _shutdown(signum, frame):
        logger.info("Signal %s received, stopping", signum)
        stop.set()

    signal.signal(signal.SIGTERM, _shutdown)
    send_telegram(
        f"Autotrader starting | {', '.join(config.symbols)} | {config.strategy_name} | "
        f"testnet={config.use_testnet} | leverage={config.leverage}x",
        config.telegram_bot_token,
        config.telegram_chat_id,
    )
    for t in threads:
        t.start()
    try:
        while not stop.is_set():
            stop.wait(1.0)
    except KeyboardInterrupt:
        logger.info("Shutdown by user")
        stop.set()
    for t in threads:
        t.join(timeout=30)
    send_telegram("Autotrader stopped.", config.telegram_bot_token, config.telegram_chat_id)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Autotrader CLI")
    parser.add_argument("mode", choices=["live", "backtest"], help="Run live or replay a backtest")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--symbol", default=None, help="Backtest symbol (default: first configured)")
    args = parser.parse_args()
    try:
        if args.mode == "backtest":
            return run_backtest(args.config, args.symbol)
        return run_live(args.config)
    except ConfigurationError as e:
        setup_logging()
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())
