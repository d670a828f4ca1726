"""
marketsim: deterministic, seedable market simulation core.

- market: order book, regime-switching and order-flow bar generators
- sim: position/margin lifecycle engine
- risk: sizing helpers and pre-trade checks
- strategies: strategy contract and bundled strategies
- backtest: runner, metrics and export
"""

__version__ = "0.1.0"

from .config import SimConfig, MarketConfig, OrderFlowConfig, TradingConfig, RiskLimits, load_config
from .utils import get_logger, setup_logger
from .market import OrderBook, RegimeSimulator, OrderFlowSimulator, create_simulator, Bar, Regime
from .sim import TradingEngine, OpenOrder, CloseOrder, Side, Direction
from .strategies import Strategy, StrategySnapshot, create_strategy, list_strategies
from .backtest import BacktestRunner, BacktestResult, PerformanceMetrics, run_backtest

__all__ = [
    "__version__",
    # Config
    "SimConfig",
    "MarketConfig",
    "OrderFlowConfig",
    "TradingConfig",
    "RiskLimits",
    "load_config",
    # Logging
    "get_logger",
    "setup_logger",
    # Market
    "OrderBook",
    "RegimeSimulator",
    "OrderFlowSimulator",
    "create_simulator",
    "Bar",
    "Regime",
    # Trading
    "TradingEngine",
    "OpenOrder",
    "CloseOrder",
    "Side",
    "Direction",
    # Strategies
    "Strategy",
    "StrategySnapshot",
    "create_strategy",
    "list_strategies",
    # Backtest
    "BacktestRunner",
    "BacktestResult",
    "PerformanceMetrics",
    "run_backtest",
]
