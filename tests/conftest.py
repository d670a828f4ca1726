"""
Shared fixtures for marketsim tests.
"""

from typing import Optional

import pytest

from marketsim.config import MarketConfig, SimConfig, TradingConfig
from marketsim.market import Bar, OrderBook, Regime
from marketsim.sim import TradingEngine


def make_bar(
    index: int,
    close: float,
    high: Optional[float] = None,
    low: Optional[float] = None,
    open_: Optional[float] = None,
    volume: float = 1000.0,
) -> Bar:
    """Build a valid bar; high/low default to the open/close envelope."""
    open_ = close if open_ is None else open_
    high = max(open_, close) if high is None else high
    low = min(open_, close) if low is None else low
    return Bar(
        index=index,
        open=open_,
        high=high,
        low=low,
        close=close,
        volume=volume,
        regime=Regime.SIDEWAYS,
        timestamp_ms=index * 60_000,
    )


@pytest.fixture
def bar_factory():
    """The make_bar helper as a fixture."""
    return make_bar


@pytest.fixture
def book() -> OrderBook:
    """Freshly seeded book around 100.00."""
    return OrderBook(tick_size=0.01, start_price=100.0)


@pytest.fixture
def engine() -> TradingEngine:
    """Futures engine with default costs (10x, 0.04% taker, 0.05% slippage)."""
    return TradingEngine(TradingConfig())


@pytest.fixture
def frictionless_engine() -> TradingEngine:
    """Futures engine with no slippage; taker fee still 0.04%."""
    return TradingEngine(TradingConfig(slippage_pct=0.0))


@pytest.fixture
def small_config() -> SimConfig:
    """Short, seeded run for runner tests."""
    return SimConfig(market=MarketConfig(seed=42), candles=200)
