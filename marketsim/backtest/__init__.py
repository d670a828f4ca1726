"""
Backtesting: runner, result types, performance metrics and export.

Usage:
    from marketsim.backtest import BacktestRunner
    from marketsim.strategies import create_strategy

    result = BacktestRunner(config, create_strategy("ema")).run()
    print(result.metrics.sharpe)
"""

from .types import PerformanceMetrics, BacktestResult
from .metrics import compute_performance_metrics, risk_of_ruin, percentile
from .runner import BacktestRunner, run_backtest
from .export import bars_to_frame, trades_to_frame, equity_to_frame, export_csv

__all__ = [
    # Results
    "PerformanceMetrics",
    "BacktestResult",
    # Metrics
    "compute_performance_metrics",
    "risk_of_ruin",
    "percentile",
    # Runner
    "BacktestRunner",
    "run_backtest",
    # Export
    "bars_to_frame",
    "trades_to_frame",
    "equity_to_frame",
    "export_csv",
]
