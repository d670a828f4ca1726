"""
Backtest result types.

- PerformanceMetrics: strategy-level statistics (computed by metrics.compute_performance_metrics)
- BacktestResult: everything one run produced
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from ..market.types import Bar
from ..sim.metrics import ExecutionMetricsSnapshot
from ..sim.types import ClosedTrade, LiquidationEvent, PositionView


@dataclass
class PerformanceMetrics:
    """
    Structured performance metrics.

    Ratios are fractions (0.12 = 12%) unless the name says otherwise.
    Trade statistics use net PnL (after entry and exit fees); a trade with
    net PnL <= 0 counts as a loss.
    """
    # Equity
    initial_balance: float = 0.0
    final_equity: float = 0.0
    total_return: float = 0.0
    total_fees: float = 0.0

    # Trade summary
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    expectancy: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    avg_r: float = 0.0
    kelly: float = 0.0
    liquidations: int = 0
    avg_trade_duration_bars: float = 0.0

    # Drawdown
    max_drawdown: float = 0.0
    max_drawdown_duration_bars: int = 0

    # Risk-adjusted
    sharpe: float = 0.0
    sortino: float = 0.0
    cagr: float = 0.0
    calmar: float = 0.0
    composite_score: float = 0.0

    # Time
    total_bars: int = 0
    exposed_bars: int = 0
    exposure: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BacktestResult:
    """
    Output of one BacktestRunner.run().

    Attributes:
        strategy: Strategy name
        seed: Market seed
        bars: Full bar history
        trades: Closed-trade ledger in exit order
        equity_history: One equity sample per bar
        liquidations: Liquidation events in order
        open_positions: Positions still open at the end
        metrics: Performance metrics
        execution: Execution cost metrics
        fingerprint: SHA-256 prefix of the bar history
        stopped_early: True when should_stop() ended the run
    """
    strategy: str
    seed: int
    bars: List[Bar] = field(default_factory=list)
    trades: List[ClosedTrade] = field(default_factory=list)
    equity_history: List[float] = field(default_factory=list)
    liquidations: List[LiquidationEvent] = field(default_factory=list)
    open_positions: List[PositionView] = field(default_factory=list)
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    execution: Optional[ExecutionMetricsSnapshot] = None
    fingerprint: str = ""
    stopped_early: bool = False

    @property
    def final_equity(self) -> float:
        return self.metrics.final_equity

    def summary(self) -> Dict[str, Any]:
        """Compact JSON-serializable summary (no bar or trade lists)."""
        return {
            "strategy": self.strategy,
            "seed": self.seed,
            "bars": len(self.bars),
            "fingerprint": self.fingerprint,
            "stopped_early": self.stopped_early,
            "open_positions": len(self.open_positions),
            "metrics": self.metrics.to_dict(),
            "execution": self.execution.to_dict() if self.execution else {},
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.summary()
        data["trades"] = [t.to_dict() for t in self.trades]
        data["liquidations"] = [e.to_dict() for e in self.liquidations]
        data["equity_history"] = list(self.equity_history)
        return data
