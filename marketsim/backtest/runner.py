"""
Backtest runner.

Replays a strategy against a freshly built market simulator and trading
engine. One runner owns one simulator and one engine; run() may be called
once per runner.

Per bar:
1. simulator.next()                  -> new bar
2. engine.update(bar)                -> stops / targets / trails / liquidations
3. strategy.on_liquidation(...)      -> once per liquidation event
4. strategy.on_bar(...)              -> order intents
5. risk policy                       -> vetoed intents are logged and dropped
6. engine.process_orders(bar)        -> intents fill at the bar close
7. should_stop()                     -> cooperative cancellation

After the last bar: strategy.on_finish(), then performance metrics.
"""

from typing import Callable, Optional

from ..config.config import SimConfig
from ..market import BaseMarketSimulator, create_simulator
from ..risk.policy import RiskPolicy, create_risk_policy
from ..sim.engine import TradingEngine
from ..sim.types import OpenOrder
from ..strategies.base import Strategy, StrategySnapshot
from ..utils.logger import get_logger
from .metrics import compute_performance_metrics
from .types import BacktestResult

logger = get_logger()


class BacktestRunner:
    """
    Drives one simulated backtest.

    Usage:
        runner = BacktestRunner(config, create_strategy("ema"))
        result = runner.run()
        print(result.metrics.total_return)
    """

    def __init__(
        self,
        config: Optional[SimConfig] = None,
        strategy: Optional[Strategy] = None,
        simulator: Optional[BaseMarketSimulator] = None,
        risk_policy: Optional[RiskPolicy] = None,
    ):
        if strategy is None:
            raise ValueError("BacktestRunner needs a strategy")
        self.config = config or SimConfig()
        self.strategy = strategy
        self.simulator = simulator or create_simulator(self.config.market, self.config.order_flow)
        self.engine = TradingEngine(self.config.trading)
        self.risk_policy = risk_policy or create_risk_policy(
            self.config.risk, is_futures=self.config.trading.is_futures
        )
        self._has_run = False

    def _snapshot(self, bar) -> StrategySnapshot:
        return StrategySnapshot.build(bar, tuple(self.simulator.history), self.engine.snapshot())

    def _submit_checked(self, intents, bar) -> int:
        """Pass intents through the risk policy; returns the number vetoed."""
        vetoed = 0
        initial_equity = self.config.trading.initial_balance
        for intent in intents or ():
            default_size = None
            if isinstance(intent, OpenOrder) and intent.size is None:
                default_size = self.engine.default_size(bar.close)
            decision = self.risk_policy.check(
                intent,
                self.engine.snapshot(),
                bar.close,
                initial_equity=initial_equity,
                default_size=default_size,
            )
            if not decision.allowed:
                vetoed += 1
                logger.risk(
                    "BLOCKED",
                    decision.message,
                    bar=bar.index,
                    veto=decision.veto_reason.value,
                    policy=self.risk_policy.name,
                )
                continue
            self.engine.submit(intent)
        return vetoed

    def run(self, should_stop: Optional[Callable[[], bool]] = None) -> BacktestResult:
        """
        Run the configured number of bars.

        Args:
            should_stop: Optional callable checked after every completed bar;
                returning True ends the run early

        Returns:
            BacktestResult with trades, equity history and metrics

        Raises:
            RuntimeError: If run() was already called on this runner
        """
        if self._has_run:
            raise RuntimeError("BacktestRunner.run() can only be called once; build a new runner")
        self._has_run = True

        seed = self.config.market.seed
        logger.info(
            f"Backtest start: strategy={self.strategy.name} seed={seed} "
            f"candles={self.config.candles} mode={self.config.trading.mode}"
        )

        state = None
        snapshot = None
        stopped_early = False
        vetoed = 0

        for i in range(self.config.candles):
            bar = self.simulator.next()
            events = self.engine.update(bar)

            snapshot = self._snapshot(bar)
            if i == 0:
                state = self.strategy.init(snapshot)

            for event in events:
                self.strategy.on_liquidation(snapshot, state, event)

            intents = self.strategy.on_bar(snapshot, state)
            vetoed += self._submit_checked(intents, bar)
            self.engine.process_orders(bar)

            if should_stop is not None and should_stop():
                stopped_early = i + 1 < self.config.candles
                if stopped_early:
                    logger.info(f"Backtest stopped early after {i + 1} bars")
                break

        if snapshot is not None:
            self.strategy.on_finish(self._snapshot(snapshot.bar), state)

        engine = self.engine
        metrics = compute_performance_metrics(
            trades=engine.closed_trades,
            equity_history=engine.equity_history,
            initial_balance=self.config.trading.initial_balance,
            total_fees=engine.total_fees,
            exposed_bars=engine.exposed_bars,
            total_bars=engine.total_bars,
        )

        result = BacktestResult(
            strategy=self.strategy.name,
            seed=seed,
            bars=list(self.simulator.history),
            trades=list(engine.closed_trades),
            equity_history=list(engine.equity_history),
            liquidations=list(engine.liquidations),
            open_positions=[p.view() for p in engine.positions],
            metrics=metrics,
            execution=engine.get_execution_metrics(),
            fingerprint=self.simulator.fingerprint(),
            stopped_early=stopped_early,
        )

        logger.info(
            f"Backtest done: bars={len(result.bars)} trades={metrics.total_trades} "
            f"liquidations={len(result.liquidations)} vetoed={vetoed} "
            f"return={metrics.total_return:.2%} max_dd={metrics.max_drawdown:.2%}"
        )
        return result


def run_backtest(
    config: Optional[SimConfig] = None,
    strategy: Optional[Strategy] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> BacktestResult:
    """Convenience wrapper: build a runner and run it."""
    return BacktestRunner(config, strategy).run(should_stop=should_stop)
