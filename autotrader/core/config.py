"""
Load configuration from config.yaml and .env. API keys only from env.
Any value that does not parse is a ConfigurationError: the bot must not
start trading with an ambiguous configuration.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, List, Optional

import yaml
from dotenv import load_dotenv

from autotrader.core.errors import ConfigurationError

STRATEGIES = (
    "ema_trend", "ema_stack", "multi_timeframe", "bollinger_rsi",
    "rsi_reversal", "momentum", "alternating",
)
SIZING_POLICIES = ("flat", "martingale", "dalembert")
SCHEDULE_MODES = ("interval", "aligned")
ATTACH_MODES = ("order", "modify")


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def _to_int(key: str, value: Any) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key}: expected an integer, got {value!r}")


def _to_float(key: str, value: Any) -> float:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key}: expected a number, got {value!r}")


def _to_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "on"):
        return True
    if text in ("false", "0", "no", "off", ""):
        return False
    raise ConfigurationError(f"{key}: expected a boolean, got {value!r}")


def _to_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v).strip() for v in value]


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns a validated Config."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"{path}: {e}")

    # Env overrides (for secrets and overrides)
    def env(key: str, default: Any = "") -> str:
        value = os.getenv(key)
        return default if value is None else value.strip()

    def env_bool(key: str, default: Any = False) -> bool:
        return _to_bool(key, env(key, default))

    def env_int(key: str, default: Any = 0) -> int:
        return _to_int(key, env(key, default))

    def env_float(key: str, default: Any = 0.0) -> float:
        return _to_float(key, env(key, default))

    def env_list(key: str, default: Any = None) -> List[str]:
        value = os.getenv(key)
        return _to_list(default if value is None else value)

    api = data.get("api", {}) or {}
    strategy = data.get("strategy", {}) or {}
    entry = data.get("entry", {}) or {}
    sizing = data.get("sizing", {}) or {}
    exits = data.get("exits", {}) or {}
    schedule = data.get("schedule", {}) or {}
    storage = data.get("storage", {}) or {}
    telegram = data.get("telegram", {}) or {}
    logging_cfg = data.get("logging", {}) or {}
    backtest = data.get("backtest", {}) or {}

    use_testnet = env_bool("USE_TESTNET", api.get("use_testnet", True))
    # Dedicated testnet/mainnet keys so both can live in .env and USE_TESTNET switches
    if use_testnet:
        api_key = env("BINANCE_TESTNET_API_KEY") or env("BINANCE_API_KEY")
        api_secret = env("BINANCE_TESTNET_API_SECRET") or env("BINANCE_API_SECRET")
    else:
        api_key = env("BINANCE_MAINNET_API_KEY") or env("BINANCE_API_KEY")
        api_secret = env("BINANCE_MAINNET_API_SECRET") or env("BINANCE_API_SECRET")

    symbols = env_list("SYMBOLS", strategy.get("symbols") or [strategy.get("symbol", "LTCUSDT")])

    config = Config(
        # API (env only; never put keys in config.yaml)
        binance_api_key=api_key,
        binance_api_secret=api_secret,
        use_testnet=use_testnet,
        leverage=env_int("LEVERAGE", api.get("leverage", 5)),
        # Strategy
        symbols=[s.upper() for s in symbols],
        timeframe=env("TIMEFRAME", strategy.get("timeframe", "5m")),
        strategy_name=env("STRATEGY", strategy.get("name", "ema_trend")).lower(),
        history_limit=env_int("HISTORY_LIMIT", strategy.get("history_limit", 300)),
        ema_periods=[_to_int("ema_periods", p) for p in env_list("EMA_PERIODS", strategy.get("ema_periods", [50]))],
        pullback_ema=env_int("PULLBACK_EMA", strategy.get("pullback_ema", 0)),
        pullback_threshold=env_float("PULLBACK_THRESHOLD", strategy.get("pullback_threshold", 0.0)),
        ema_fast=env_int("EMA_FAST", strategy.get("ema_fast", 8)),
        ema_medium=env_int("EMA_MEDIUM", strategy.get("ema_medium", 21)),
        ema_slow=env_int("EMA_SLOW", strategy.get("ema_slow", 55)),
        require_cross=env_bool("REQUIRE_CROSS", strategy.get("require_cross", False)),
        confirm_timeframes=env_list("CONFIRM_TIMEFRAMES", strategy.get("confirm_timeframes", ["1m", "5m"])),
        mtf_lookback=env_int("MTF_LOOKBACK", strategy.get("mtf_lookback", 5)),
        require_bos=env_bool("REQUIRE_BOS", strategy.get("require_bos", True)),
        bos_window=env_int("BOS_WINDOW", strategy.get("bos_window", 10)),
        bb_period=env_int("BB_PERIOD", strategy.get("bb_period", 20)),
        bb_std=env_float("BB_STD", strategy.get("bb_std", 2.0)),
        rsi_period=env_int("RSI_PERIOD", strategy.get("rsi_period", 14)),
        rsi_oversold=env_float("RSI_OVERSOLD", strategy.get("rsi_oversold", 30.0)),
        rsi_overbought=env_float("RSI_OVERBOUGHT", strategy.get("rsi_overbought", 70.0)),
        trend_lookback=env_int("TREND_LOOKBACK", strategy.get("trend_lookback", 200)),
        require_trend=env_bool("REQUIRE_TREND", strategy.get("require_trend", True)),
        # Entry gate
        cooldown_minutes=env_float("COOLDOWN_MINUTES", entry.get("cooldown_minutes", 5.0)),
        max_open_positions=env_int("MAX_OPEN_POSITIONS", entry.get("max_open_positions", 2)),
        entry_minute_multiple=env_int("ENTRY_MINUTE_MULTIPLE", entry.get("minute_multiple", 5)),
        # Sizing
        sizing_policy=env("SIZING_POLICY", sizing.get("policy", "flat")).lower(),
        base_volume=env_float("BASE_VOLUME", sizing.get("base_volume", 0.01)),
        max_volume=env_float("MAX_VOLUME", sizing.get("max_volume", 0.0)),
        scale_targets=env_bool("SCALE_TARGETS", sizing.get("scale_targets", False)),
        volume_step=env_float("VOLUME_STEP", sizing.get("volume_step", 0.01)),
        # Exits
        take_profit=env_float("TAKE_PROFIT", exits.get("take_profit", 0.190)),
        stop_loss=env_float("STOP_LOSS", exits.get("stop_loss", 0.090)),
        use_spread=env_bool("USE_SPREAD", exits.get("use_spread", True)),
        attach_mode=env("ATTACH_MODE", exits.get("attach_mode", "order")).lower(),
        price_tick=env_float("PRICE_TICK", exits.get("price_tick", 0.001)),
        monitor_fixed_targets=env_bool("MONITOR_FIXED_TARGETS", exits.get("monitor_fixed_targets", True)),
        trailing_fraction=env_float("TRAILING_FRACTION", exits.get("trailing_fraction", 0.0)),
        aggregate_profit_target=env_float("AGGREGATE_PROFIT_TARGET", exits.get("aggregate_profit_target", 0.0)),
        profit_floor=_optional_float("profit_floor", exits.get("profit_floor")),
        profit_ceiling=_optional_float("profit_ceiling", exits.get("profit_ceiling")),
        # Schedule
        schedule_mode=env("SCHEDULE_MODE", schedule.get("mode", "aligned")).lower(),
        interval_seconds=env_float("INTERVAL_SECONDS", schedule.get("interval_seconds", 60.0)),
        align_minutes=env_int("ALIGN_MINUTES", schedule.get("align_minutes", 5)),
        base_backoff_seconds=env_float("BASE_BACKOFF_SECONDS", schedule.get("base_backoff_seconds", 5.0)),
        max_backoff_seconds=env_float("MAX_BACKOFF_SECONDS", schedule.get("max_backoff_seconds", 300.0)),
        # Storage
        db_path=Path(env("BAR_DB_PATH", storage.get("db_path", "data/bars.sqlite3"))),
        # Telegram
        telegram_bot_token=env("TELEGRAM_BOT_TOKEN", telegram.get("bot_token", "")),
        telegram_chat_id=env("TELEGRAM_CHAT_ID", telegram.get("chat_id", "")),
        # Logging
        log_level=logging_cfg.get("level", "INFO"),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "autotrader.log"),
        # Backtest
        backtest_start=backtest.get("start_date"),
        backtest_end=backtest.get("end_date"),
        backtest_spread=_to_float("backtest.spread", backtest.get("spread", 0.003)),
        backtest_initial_capital=_to_float("backtest.initial_capital", backtest.get("initial_capital", 10000.0)),
    )
    config.validate()
    return config


def _optional_float(key: str, value: Any) -> Optional[float]:
    env_value = os.getenv(key.upper())
    if env_value is not None and env_value.strip():
        value = env_value
    if value is None or value == "":
        return None
    return _to_float(key, value)


class Config:
    """Unified configuration. Read-only once constructed; build a new one to change it."""

    __slots__ = (
        "_frozen",
        "binance_api_key", "binance_api_secret", "use_testnet", "leverage",
        "symbols", "timeframe", "strategy_name", "history_limit",
        "ema_periods", "pullback_ema", "pullback_threshold",
        "ema_fast", "ema_medium", "ema_slow", "require_cross",
        "confirm_timeframes", "mtf_lookback", "require_bos", "bos_window",
        "bb_period", "bb_std", "rsi_period", "rsi_oversold", "rsi_overbought",
        "trend_lookback", "require_trend",
        "cooldown_minutes", "max_open_positions", "entry_minute_multiple",
        "sizing_policy", "base_volume", "max_volume", "scale_targets", "volume_step",
        "take_profit", "stop_loss", "use_spread", "attach_mode", "price_tick",
        "monitor_fixed_targets", "trailing_fraction", "aggregate_profit_target",
        "profit_floor", "profit_ceiling",
        "schedule_mode", "interval_seconds", "align_minutes",
        "base_backoff_seconds", "max_backoff_seconds",
        "db_path",
        "telegram_bot_token", "telegram_chat_id",
        "log_level", "log_dir", "log_file",
        "backtest_start", "backtest_end", "backtest_spread", "backtest_initial_capital",
    )

    def __init__(
        self,
        binance_api_key: str = "",
        binance_api_secret: str = "",
        use_testnet: bool = True,
        leverage: int = 5,
        symbols: Optional[List[str]] = None,
        timeframe: str = "5m",
        strategy_name: str = "ema_trend",
        history_limit: int = 300,
        ema_periods: Optional[List[int]] = None,
        pullback_ema: int = 0,
        pullback_threshold: float = 0.0,
        ema_fast: int = 8,
        ema_medium: int = 21,
        ema_slow: int = 55,
        require_cross: bool = False,
        confirm_timeframes: Optional[List[str]] = None,
        mtf_lookback: int = 5,
        require_bos: bool = True,
        bos_window: int = 10,
        bb_period: int = 20,
        bb_std: float = 2.0,
        rsi_period: int = 14,
        rsi_oversold: float = 30.0,
        rsi_overbought: float = 70.0,
        trend_lookback: int = 200,
        require_trend: bool = True,
        cooldown_minutes: float = 5.0,
        max_open_positions: int = 2,
        entry_minute_multiple: int = 5,
        sizing_policy: str = "flat",
        base_volume: float = 0.01,
        max_volume: float = 0.0,
        scale_targets: bool = False,
        volume_step: float = 0.01,
        take_profit: float = 0.190,
        stop_loss: float = 0.090,
        use_spread: bool = True,
        attach_mode: str = "order",
        price_tick: float = 0.001,
        monitor_fixed_targets: bool = True,
        trailing_fraction: float = 0.0,
        aggregate_profit_target: float = 0.0,
        profit_floor: Optional[float] = None,
        profit_ceiling: Optional[float] = None,
        schedule_mode: str = "aligned",
        interval_seconds: float = 60.0,
        align_minutes: int = 5,
        base_backoff_seconds: float = 5.0,
        max_backoff_seconds: float = 300.0,
        db_path: Optional[Path] = None,
        telegram_bot_token: str = "",
        telegram_chat_id: str = "",
        log_level: str = "INFO",
        log_dir: Optional[Path] = None,
        log_file: str = "autotrader.log",
        backtest_start: Optional[str] = None,
        backtest_end: Optional[str] = None,
        backtest_spread: float = 0.003,
        backtest_initial_capital: float = 10000.0,
    ):
        self.binance_api_key = binance_api_key
        self.binance_api_secret = binance_api_secret
        self.use_testnet = use_testnet
        self.leverage = leverage
        self.symbols = list(symbols) if symbols else ["LTCUSDT"]
        self.timeframe = timeframe
        self.strategy_name = strategy_name
        self.history_limit = history_limit
        self.ema_periods = list(ema_periods) if ema_periods else [50]
        self.pullback_ema = pullback_ema
        self.pullback_threshold = pullback_threshold
        self.ema_fast = ema_fast
        self.ema_medium = ema_medium
        self.ema_slow = ema_slow
        self.require_cross = require_cross
        self.confirm_timeframes = list(confirm_timeframes) if confirm_timeframes else ["1m", "5m"]
        self.mtf_lookback = mtf_lookback
        self.require_bos = require_bos
        self.bos_window = bos_window
        self.bb_period = bb_period
        self.bb_std = bb_std
        self.rsi_period = rsi_period
        self.rsi_oversold = rsi_oversold
        self.rsi_overbought = rsi_overbought
        self.trend_lookback = trend_lookback
        self.require_trend = require_trend
        self.cooldown_minutes = cooldown_minutes
        self.max_open_positions = max_open_positions
        self.entry_minute_multiple = entry_minute_multiple
        self.sizing_policy = sizing_policy
        self.base_volume = base_volume
        self.max_volume = max_volume
        self.scale_targets = scale_targets
        self.volume_step = volume_step
        self.take_profit = take_profit
        self.stop_loss = stop_loss
        self.use_spread = use_spread
        self.attach_mode = attach_mode
        self.price_tick = price_tick
        self.monitor_fixed_targets = monitor_fixed_targets
        self.trailing_fraction = trailing_fraction
        self.aggregate_profit_target = aggregate_profit_target
        self.profit_floor = profit_floor
        self.profit_ceiling = profit_ceiling
        self.schedule_mode = schedule_mode
        self.interval_seconds = interval_seconds
        self.align_minutes = align_minutes
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.db_path = Path(db_path) if db_path else Path("data/bars.sqlite3")
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file
        self.backtest_start = backtest_start
        self.backtest_end = backtest_end
        self.backtest_spread = backtest_spread
        self.backtest_initial_capital = backtest_initial_capital
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError(f"Config is read-only, cannot set {name!r}")
        object.__setattr__(self, name, value)

    def validate(self) -> None:
        """Raise ConfigurationError on names or values the bot cannot act on."""
        if self.strategy_name not in STRATEGIES:
            raise ConfigurationError(f"unknown strategy {self.strategy_name!r}; choose from {STRATEGIES}")
        if self.sizing_policy not in SIZING_POLICIES:
            raise ConfigurationError(f"unknown sizing policy {self.sizing_policy!r}; choose from {SIZING_POLICIES}")
        if self.schedule_mode not in SCHEDULE_MODES:
            raise ConfigurationError(f"unknown schedule mode {self.schedule_mode!r}; choose from {SCHEDULE_MODES}")
        if self.attach_mode not in ATTACH_MODES:
            raise ConfigurationError(f"unknown attach mode {self.attach_mode!r}; choose from {ATTACH_MODES}")
        if not self.symbols:
            raise ConfigurationError("at least one symbol is required")
        periods = list(self.ema_periods) + [
            self.ema_fast, self.ema_medium, self.ema_slow, self.bb_period,
            self.mtf_lookback, self.bos_window, self.trend_lookback, self.history_limit,
        ]
        if any(p <= 0 for p in periods):
            raise ConfigurationError("indicator periods and windows must be positive")
        if self.rsi_period < 2:
            raise ConfigurationError("rsi_period must be at least 2")
        if self.base_volume <= 0:
            raise ConfigurationError("base_volume must be positive")
        if self.max_volume and self.max_volume < self.base_volume:
            raise ConfigurationError("max_volume must be 0 (no cap) or >= base_volume")
        if self.take_profit < 0 or self.stop_loss < 0:
            raise ConfigurationError("take_profit and stop_loss must be non-negative distances")
        if self.max_open_positions < 1:
            raise ConfigurationError("max_open_positions must be at least 1")
        if self.entry_minute_multiple < 0 or self.align_minutes < 1:
            raise ConfigurationError("minute multiples must be positive (0 disables the entry alignment gate)")
        if self.interval_seconds <= 0:
            raise ConfigurationError("interval_seconds must be positive")
        if not 0.0 <= self.trailing_fraction < 1.0:
            raise ConfigurationError("trailing_fraction must be in [0, 1)")
