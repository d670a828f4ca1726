"""
Simulated market: order book, seeded RNG and bar generators.

Public API:
- OrderBook: Price-priority limit order book
- RegimeSimulator: GARCH-style regime-switching bars
- OrderFlowSimulator: Bars built from order-book matching
- TickSimulator, CandleAggregator: Tick prints and time-slot candles
- RollupBucket, rollup_bars: Higher-timeframe aggregation
- create_simulator: Build the configured bar generator
"""

from typing import Optional

from ..config.config import MarketConfig, OrderFlowConfig
from .types import (
    Side,
    BookSide,
    Regime,
    REGIME_NAMES,
    BookFill,
    TopOfBook,
    MarketOrderResult,
    LimitOrderResult,
    Bar,
    Tick,
)
from .rng import Mulberry32
from .order_book import OrderBook
from .regimes import RegimeParams, RegimeState, DEFAULT_REGIMES, DEFAULT_TRANSITIONS
from .base import BaseMarketSimulator, history_fingerprint
from .regime_simulator import RegimeSimulator
from .order_flow_simulator import OrderFlowSimulator, classify_regime
from .tick_simulator import TickSimulator
from .candle_aggregator import CandleAggregator
from .rollup import RollupBucket, rollup_bars


def create_simulator(
    market: Optional[MarketConfig] = None,
    flow: Optional[OrderFlowConfig] = None,
) -> BaseMarketSimulator:
    """
    Build the bar generator selected by market.model.

    Args:
        market: Market configuration ("regime" or "order_flow" model)
        flow: Microstructure parameters (order-flow model only)

    Returns:
        RegimeSimulator or OrderFlowSimulator
    """
    market = market or MarketConfig()
    if market.model == "order_flow":
        return OrderFlowSimulator(market, flow)
    return RegimeSimulator(market)


__all__ = [
    # Types
    "Side",
    "BookSide",
    "Regime",
    "REGIME_NAMES",
    "BookFill",
    "TopOfBook",
    "MarketOrderResult",
    "LimitOrderResult",
    "Bar",
    "Tick",
    # Engines
    "Mulberry32",
    "OrderBook",
    "RegimeParams",
    "RegimeState",
    "DEFAULT_REGIMES",
    "DEFAULT_TRANSITIONS",
    "BaseMarketSimulator",
    "history_fingerprint",
    "RegimeSimulator",
    "OrderFlowSimulator",
    "classify_regime",
    "TickSimulator",
    "CandleAggregator",
    "RollupBucket",
    "rollup_bars",
    "create_simulator",
]
