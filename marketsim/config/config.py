"""
Configuration management for the market simulator.

Every numeric input consumed by the simulation core lives in a dataclass
that validates itself on construction, so a bad value fails here with a
ValueError instead of deep inside a bar loop. Percent-valued fields keep
the user-facing unit (0.04 means 0.04%); the rate properties convert.

YAML files are loaded with load_config(); logging settings come from the
environment (optionally a .env file).
"""

import math
import os
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

from .constants import (
    DEFAULT_SEED,
    DEFAULT_START_PRICE,
    DEFAULT_VOLATILITY_PCT,
    DEFAULT_BIAS_PCT,
    DEFAULT_SWITCH_PCT,
    DEFAULT_TICK_SIZE,
    DEFAULT_BASE_VOLUME,
    MARKET_MODELS,
    DEFAULT_BOOK_LEVELS,
    DEFAULT_BASE_DEPTH,
    DEFAULT_LAMBDA_BID,
    DEFAULT_LAMBDA_ASK,
    DEFAULT_LAMBDA_LIQUIDITY,
    DEFAULT_SIZE_XM,
    DEFAULT_SIZE_ALPHA,
    DEFAULT_SIZE_CAP,
    DEFAULT_AVG_SPREAD_TICKS,
    DEFAULT_PRICE_IMPACT,
    DEFAULT_BAR_SECONDS,
    TRADING_MODES,
    SIZE_MODES,
    IMPACT_MODES,
    DEFAULT_LEVERAGE,
    DEFAULT_MAKER_FEE_PCT,
    DEFAULT_TAKER_FEE_PCT,
    DEFAULT_SLIPPAGE_PCT,
    DEFAULT_MAINTENANCE_MARGIN_PCT,
    DEFAULT_INITIAL_BALANCE,
    DEFAULT_SIZE_VALUE,
    DEFAULT_MAX_POSITIONS,
    DEFAULT_MAX_DRAWDOWN_PCT,
    DEFAULT_MAX_SINGLE_POSITION_PCT,
    DEFAULT_MAX_LEVERAGE_EXPOSURE_PCT,
    DEFAULT_CANDLES,
)


def _require_finite(name: str, value: float):
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number, got {value!r}")


def _require_positive(name: str, value: float):
    _require_finite(name, value)
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")


def _require_non_negative(name: str, value: float):
    _require_finite(name, value)
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")


# ─────────────────────────────────────────────────────────────────────────────
# Market
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class MarketConfig:
    """
    Price generator settings.

    Attributes:
        seed: Integer seed; the same seed reproduces the same bars
        start_price: First open
        volatility_pct: Baseline per-tick volatility in percent (regime model only)
        bias_pct: Drift bias in percent (signed)
        switch_pct: Per-tick probability (percent) of an early regime switch (regime model only)
        tick_size: Minimum price increment
        base_volume: Volume scale for the regime model
        model: "regime" (GARCH regime switching) or "order_flow" (LOB driven)
    """
    seed: int = DEFAULT_SEED
    start_price: float = DEFAULT_START_PRICE
    volatility_pct: float = DEFAULT_VOLATILITY_PCT
    bias_pct: float = DEFAULT_BIAS_PCT
    switch_pct: float = DEFAULT_SWITCH_PCT
    tick_size: float = DEFAULT_TICK_SIZE
    base_volume: float = DEFAULT_BASE_VOLUME
    model: str = "regime"

    def __post_init__(self):
        """Validate market settings."""
        if not isinstance(self.seed, int) or isinstance(self.seed, bool):
            raise ValueError(f"seed must be an integer, got {self.seed!r}")
        _require_positive("start_price", self.start_price)
        _require_positive("tick_size", self.tick_size)
        _require_non_negative("volatility_pct", self.volatility_pct)
        _require_finite("bias_pct", self.bias_pct)
        _require_non_negative("base_volume", self.base_volume)
        _require_non_negative("switch_pct", self.switch_pct)
        if self.switch_pct > 100:
            raise ValueError(f"switch_pct must be within [0, 100], got {self.switch_pct}")
        if self.tick_size >= self.start_price:
            raise ValueError(
                f"tick_size ({self.tick_size}) must be smaller than start_price ({self.start_price})"
            )
        if self.model not in MARKET_MODELS:
            raise ValueError(f"model must be one of {MARKET_MODELS}, got '{self.model}'")

    @property
    def base_vol(self) -> float:
        """Baseline volatility as a decimal."""
        return self.volatility_pct / 100.0

    @property
    def bias(self) -> float:
        """Drift bias as a decimal."""
        return self.bias_pct / 100.0

    @property
    def switch_prob(self) -> float:
        """Per-tick switch probability as a decimal."""
        return self.switch_pct / 100.0


@dataclass
class OrderFlowConfig:
    """Microstructure parameters for the order-flow driven market."""
    lambda_bid: float = DEFAULT_LAMBDA_BID
    lambda_ask: float = DEFAULT_LAMBDA_ASK
    lambda_liquidity: float = DEFAULT_LAMBDA_LIQUIDITY
    size_xm: float = DEFAULT_SIZE_XM
    size_alpha: float = DEFAULT_SIZE_ALPHA
    size_cap: float = DEFAULT_SIZE_CAP
    avg_spread_ticks: int = DEFAULT_AVG_SPREAD_TICKS
    price_impact: float = DEFAULT_PRICE_IMPACT
    bar_seconds: float = DEFAULT_BAR_SECONDS
    book_levels: int = DEFAULT_BOOK_LEVELS
    base_depth: float = DEFAULT_BASE_DEPTH

    def __post_init__(self):
        """Validate microstructure settings."""
        for name in ("lambda_bid", "lambda_ask", "lambda_liquidity", "price_impact"):
            _require_non_negative(name, getattr(self, name))
        if self.lambda_bid + self.lambda_ask + self.lambda_liquidity <= 0:
            raise ValueError("At least one arrival rate must be positive")
        for name in ("size_xm", "size_alpha", "size_cap", "bar_seconds", "base_depth"):
            _require_positive(name, getattr(self, name))
        if self.size_cap < self.size_xm:
            raise ValueError(f"size_cap ({self.size_cap}) must be >= size_xm ({self.size_xm})")
        if not isinstance(self.book_levels, int) or self.book_levels < 1:
            raise ValueError(f"book_levels must be a positive integer, got {self.book_levels!r}")
        if not isinstance(self.avg_spread_ticks, int) or self.avg_spread_ticks < 1:
            raise ValueError(
                f"avg_spread_ticks must be a positive integer, got {self.avg_spread_ticks!r}"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Trading
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class TradingConfig:
    """
    Account, cost and default exit settings for the trading engine.

    Fee, slippage, maintenance and exit fields are in percent.
    """
    mode: str = "futures"
    leverage: float = DEFAULT_LEVERAGE
    maker_fee_pct: float = DEFAULT_MAKER_FEE_PCT
    taker_fee_pct: float = DEFAULT_TAKER_FEE_PCT
    slippage_pct: float = DEFAULT_SLIPPAGE_PCT
    maintenance_margin_pct: float = DEFAULT_MAINTENANCE_MARGIN_PCT
    initial_balance: float = DEFAULT_INITIAL_BALANCE

    # Default exits applied when an intent does not set its own (0 = off)
    stop_loss_pct: float = 0.0
    take_profit_pct: float = 0.0
    trailing_stop_pct: float = 0.0

    # Fraction of every entry that actually fills, in percent
    partial_fill_pct: float = 100.0

    # Size used when an intent has no explicit size
    size_mode: str = "fixed"  # "fixed" (quote amount) or "percent" (of equity)
    size_value: float = DEFAULT_SIZE_VALUE

    # Market impact added on top of slippage
    impact_mode: str = "disabled"  # "disabled" or "sqrt"
    impact_factor: float = 0.1
    max_impact_bps: float = 100.0

    def __post_init__(self):
        """Validate trading settings."""
        if self.mode not in TRADING_MODES:
            raise ValueError(f"mode must be one of {TRADING_MODES}, got '{self.mode}'")
        _require_positive("leverage", self.leverage)
        if self.mode == "futures" and self.leverage < 1:
            raise ValueError(f"futures leverage must be >= 1, got {self.leverage}")
        _require_positive("initial_balance", self.initial_balance)
        for name in (
            "maker_fee_pct", "taker_fee_pct", "slippage_pct", "maintenance_margin_pct",
            "stop_loss_pct", "take_profit_pct", "trailing_stop_pct",
            "impact_factor", "max_impact_bps", "size_value",
        ):
            _require_non_negative(name, getattr(self, name))
        if self.maintenance_margin_pct >= 100:
            raise ValueError(
                f"maintenance_margin_pct must be < 100, got {self.maintenance_margin_pct}"
            )
        if self.mode == "futures" and self.maintenance_rate >= 1.0 / self.leverage:
            raise ValueError(
                "maintenance margin must be below initial margin "
                f"({self.maintenance_margin_pct}% >= {100.0 / self.leverage:.4f}%)"
            )
        for name in ("stop_loss_pct", "take_profit_pct", "trailing_stop_pct"):
            if getattr(self, name) >= 100:
                raise ValueError(f"{name} must be < 100, got {getattr(self, name)}")
        _require_positive("partial_fill_pct", self.partial_fill_pct)
        if self.partial_fill_pct > 100:
            raise ValueError(f"partial_fill_pct must be within (0, 100], got {self.partial_fill_pct}")
        if self.size_mode not in SIZE_MODES:
            raise ValueError(f"size_mode must be one of {SIZE_MODES}, got '{self.size_mode}'")
        if self.impact_mode not in IMPACT_MODES:
            raise ValueError(f"impact_mode must be one of {IMPACT_MODES}, got '{self.impact_mode}'")

    @property
    def is_futures(self) -> bool:
        return self.mode == "futures"

    @property
    def maker_fee_rate(self) -> float:
        return self.maker_fee_pct / 100.0

    @property
    def taker_fee_rate(self) -> float:
        return self.taker_fee_pct / 100.0

    @property
    def slippage_rate(self) -> float:
        return self.slippage_pct / 100.0

    @property
    def maintenance_rate(self) -> float:
        return self.maintenance_margin_pct / 100.0

    @property
    def partial_fill_ratio(self) -> float:
        return self.partial_fill_pct / 100.0


# ─────────────────────────────────────────────────────────────────────────────
# Risk limits
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class RiskLimits:
    """
    Pre-trade risk limits.

    Disabled by default; the runner only consults them when enabled.
    """
    enabled: bool = False
    max_positions: int = DEFAULT_MAX_POSITIONS
    max_drawdown_pct: float = DEFAULT_MAX_DRAWDOWN_PCT
    max_single_position_pct: float = DEFAULT_MAX_SINGLE_POSITION_PCT
    max_leverage_exposure_pct: float = DEFAULT_MAX_LEVERAGE_EXPOSURE_PCT

    def __post_init__(self):
        """Validate limits."""
        if not isinstance(self.max_positions, int) or self.max_positions < 1:
            raise ValueError(f"max_positions must be a positive integer, got {self.max_positions!r}")
        for name in ("max_drawdown_pct", "max_single_position_pct", "max_leverage_exposure_pct"):
            _require_positive(name, getattr(self, name))


# ─────────────────────────────────────────────────────────────────────────────
# Aggregate config + loader
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class SimConfig:
    """Complete configuration for one simulation run."""
    market: MarketConfig = field(default_factory=MarketConfig)
    order_flow: OrderFlowConfig = field(default_factory=OrderFlowConfig)
    trading: TradingConfig = field(default_factory=TradingConfig)
    risk: RiskLimits = field(default_factory=RiskLimits)
    candles: int = DEFAULT_CANDLES

    def __post_init__(self):
        if not isinstance(self.candles, int) or self.candles < 1:
            raise ValueError(f"candles must be a positive integer, got {self.candles!r}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_SECTIONS = {
    "market": MarketConfig,
    "order_flow": OrderFlowConfig,
    "trading": TradingConfig,
    "risk": RiskLimits,
}


def _build_section(cls, data: Optional[Dict[str, Any]], section: str):
    """Construct one config dataclass from a mapping, rejecting unknown keys."""
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"Config section '{section}' must be a mapping, got {type(data).__name__}")
    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {unknown}. Allowed: {sorted(allowed)}")
    return cls(**data)


def config_from_dict(raw: Optional[Dict[str, Any]]) -> SimConfig:
    """
    Build a SimConfig from a plain dict (e.g. parsed YAML).

    Args:
        raw: Mapping with optional market/order_flow/trading/risk/candles keys

    Returns:
        Validated SimConfig

    Raises:
        ValueError: On unknown keys or invalid values
    """
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config root must be a mapping, got {type(raw).__name__}")
    unknown = sorted(set(raw) - set(_SECTIONS) - {"candles"})
    if unknown:
        raise ValueError(f"Unknown top-level config keys: {unknown}")

    sections = {name: _build_section(cls, raw.get(name), name) for name, cls in _SECTIONS.items()}
    return SimConfig(candles=raw.get("candles", DEFAULT_CANDLES), **sections)


def load_config(path: Union[str, Path]) -> SimConfig:
    """
    Load a simulation configuration from YAML.

    Args:
        path: Path to a .yml/.yaml file

    Returns:
        Validated SimConfig

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the config is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    return config_from_dict(raw)


def load_env(env_file: str = ".env") -> None:
    """Load environment overrides from a .env file when present."""
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path, override=True)


def get_log_settings() -> Tuple[Optional[str], str]:
    """
    Logging settings from the environment.

    Returns:
        (log_dir or None, log_level)
    """
    log_dir = os.getenv("MARKETSIM_LOG_DIR") or None
    log_level = os.getenv("MARKETSIM_LOG_LEVEL", "WARNING").upper()
    return log_dir, log_level
