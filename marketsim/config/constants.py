"""
Centralized constants for the market simulator.

Default values mirror the reference market: a 100.00 instrument quoted in
0.01 ticks, 2% baseline volatility, 10x futures with 0.02%/0.04% maker/taker
fees, 0.05% slippage and 0.5% maintenance margin on a 10,000 account.
"""

from typing import List


# ==================== Market ====================

DEFAULT_SEED = 42
DEFAULT_START_PRICE = 100.0
DEFAULT_VOLATILITY_PCT = 2.0
DEFAULT_BIAS_PCT = 0.0
DEFAULT_SWITCH_PCT = 5.0
DEFAULT_TICK_SIZE = 0.01
DEFAULT_BASE_VOLUME = 1000.0

MARKET_MODELS: List[str] = ["regime", "order_flow"]


# ==================== Order Book ====================

DEFAULT_BOOK_LEVELS = 24
DEFAULT_BASE_DEPTH = 60.0
# Quantity at or below this is treated as drained
QTY_EPSILON = 1e-9


# ==================== Order Flow ====================

DEFAULT_LAMBDA_BID = 0.85  # events/sec
DEFAULT_LAMBDA_ASK = 0.83
DEFAULT_LAMBDA_LIQUIDITY = 0.18
DEFAULT_SIZE_XM = 3.0
DEFAULT_SIZE_ALPHA = 1.55
DEFAULT_SIZE_CAP = 150.0
DEFAULT_AVG_SPREAD_TICKS = 2
DEFAULT_PRICE_IMPACT = 0.00009
DEFAULT_BAR_SECONDS = 60.0


# ==================== Trading ====================

TRADING_MODES: List[str] = ["spot", "futures"]
SIZE_MODES: List[str] = ["fixed", "percent"]
IMPACT_MODES: List[str] = ["disabled", "sqrt"]

DEFAULT_LEVERAGE = 10.0
DEFAULT_MAKER_FEE_PCT = 0.02
DEFAULT_TAKER_FEE_PCT = 0.04
DEFAULT_SLIPPAGE_PCT = 0.05
DEFAULT_MAINTENANCE_MARGIN_PCT = 0.5
DEFAULT_INITIAL_BALANCE = 10000.0
DEFAULT_SIZE_VALUE = 1000.0


# ==================== Risk ====================

DEFAULT_MAX_POSITIONS = 10
DEFAULT_MAX_DRAWDOWN_PCT = 25.0
DEFAULT_MAX_SINGLE_POSITION_PCT = 50.0
DEFAULT_MAX_LEVERAGE_EXPOSURE_PCT = 100.0
DEFAULT_KELLY_CAP = 0.5
DEFAULT_VOL_DAMPING = 0.7

# Drawdown throttle: (drawdown strictly above, size multiplier), checked in order
DRAWDOWN_THROTTLE_STEPS = (
    (0.20, 0.25),
    (0.15, 0.50),
    (0.10, 0.75),
)
# Drawdown above this halts trading and flattens the book
DRAWDOWN_HALT = 0.22


# ==================== Backtest ====================

DEFAULT_CANDLES = 500
STRATEGY_NAMES: List[str] = ["ema", "arm", "rules"]
OUTPUT_FORMATS: List[str] = ["text", "json", "csv"]
