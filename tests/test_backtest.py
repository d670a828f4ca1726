"""
Tests for the backtest runner, performance metrics and exports.

Validates that:
1. The same config and strategy reproduce the same run
2. should_stop() ends a run early; run() is single-use
3. The risk policy vetoes intents before they reach the engine
4. Metrics use net PnL, cap degenerate ratios and never produce NaN
5. CSV exports have stable columns
"""

import dataclasses
import math
from typing import List

import pandas as pd
import pytest

from marketsim.backtest import (
    BacktestRunner,
    compute_performance_metrics,
    equity_to_frame,
    export_csv,
    percentile,
    risk_of_ruin,
    run_backtest,
    trades_to_frame,
)
from marketsim.backtest.export import EQUITY_COLUMNS, TRADE_COLUMNS
from marketsim.config import RiskLimits, SimConfig, TradingConfig
from marketsim.market import BaseMarketSimulator
from marketsim.sim import ClosedTrade, CloseOrder, Direction, ExitReason, OpenOrder, OrderIntent, Side
from marketsim.strategies import EmaCrossoverStrategy, Strategy, StrategySnapshot
from tests.conftest import make_bar


def make_trade(realized: float, fees: float = 1.0, entry_bar: int = 0, exit_bar: int = 4,
               reason: ExitReason = ExitReason.SIGNAL, stop_loss_pct: float = 0.0) -> ClosedTrade:
    return ClosedTrade(
        position_id=1,
        direction=Direction.LONG,
        entry_price=100.0,
        exit_price=100.0 + realized,
        size=1.0,
        realized_pnl=realized,
        fees=fees,
        entry_bar=entry_bar,
        exit_bar=exit_bar,
        reason=reason,
        stop_loss_pct=stop_loss_pct,
    )


class RecordingStrategy(Strategy):
    """Buys size 1 every bar and records the hooks it sees."""

    def __init__(self, close_at: int = -1):
        self.close_at = close_at
        self.calls: List[str] = []

    @property
    def name(self) -> str:
        return "recording"

    def init(self, snapshot: StrategySnapshot):
        self.calls.append("init")
        return {"bars": 0}

    def on_bar(self, snapshot: StrategySnapshot, state) -> List[OrderIntent]:
        state["bars"] += 1
        self.calls.append("bar")
        if snapshot.n - 1 == self.close_at:
            return [CloseOrder(side=Side.SELL)]
        return [OpenOrder(side=Side.BUY, size=1.0)]

    def on_finish(self, snapshot: StrategySnapshot, state) -> None:
        self.calls.append(f"finish:{state['bars']}")


class ScriptedSimulator(BaseMarketSimulator):
    """Replays a fixed list of closes."""

    def __init__(self, closes):
        super().__init__()
        self._closes = list(closes)

    def _next_bar(self):
        index = len(self.history)
        return make_bar(index, self._closes[index])


class LiquidationRecorder(Strategy):
    """Opens one long on the first bar and records hook order per bar."""

    def __init__(self):
        self.calls = []
        self.events = []

    @property
    def name(self) -> str:
        return "liquidation_recorder"

    def init(self, snapshot: StrategySnapshot):
        return None

    def on_bar(self, snapshot: StrategySnapshot, state) -> List[OrderIntent]:
        self.calls.append(("bar", snapshot.bar.index))
        if snapshot.bar.index == 0:
            return [OpenOrder(side=Side.BUY, size=1.0)]
        return []

    def on_liquidation(self, snapshot: StrategySnapshot, state, event=None) -> None:
        self.calls.append(("liq", snapshot.bar.index))
        self.events.append(event)


@pytest.fixture
def spot_config() -> SimConfig:
    """Unlevered spot account: no liquidations, no default exits."""
    return SimConfig(candles=20, trading=TradingConfig(mode="spot", leverage=1.0))


# ─────────────────────────────────────────────────────────────────────────────
# Runner
# ─────────────────────────────────────────────────────────────────────────────

class TestBacktestRunner:
    """Test the bar loop."""

    def test_deterministic_for_seed(self, small_config):
        a = run_backtest(small_config, EmaCrossoverStrategy())
        b = run_backtest(small_config, EmaCrossoverStrategy())
        assert a.fingerprint == b.fingerprint
        assert a.equity_history == b.equity_history
        assert [t.to_dict() for t in a.trades] == [t.to_dict() for t in b.trades]
        assert a.metrics == b.metrics

    def test_result_shape(self, small_config):
        result = run_backtest(small_config, EmaCrossoverStrategy())
        assert len(result.bars) == 200
        assert len(result.equity_history) == 200
        assert result.seed == 42
        assert result.strategy == "ema"
        assert result.metrics.total_trades == len(result.trades)
        assert result.final_equity == pytest.approx(result.equity_history[-1])
        assert not result.stopped_early
        for value in result.metrics.to_dict().values():
            assert not (isinstance(value, float) and math.isnan(value))

    def test_lifecycle_hooks(self, spot_config):
        strategy = RecordingStrategy()
        run_backtest(spot_config, strategy)
        assert strategy.calls[0] == "init"
        assert strategy.calls.count("init") == 1
        assert strategy.calls.count("bar") == 20
        assert strategy.calls[-1] == "finish:20"

    def test_liquidation_hook_runs_before_bar_hook(self):
        # 20x long from ~100 liquidates near 95.5; bar 2 trades down to 80
        config = SimConfig(candles=5, trading=TradingConfig(leverage=20.0))
        strategy = LiquidationRecorder()
        simulator = ScriptedSimulator([100.0, 100.0, 80.0, 80.0, 80.0])
        result = BacktestRunner(config, strategy, simulator=simulator).run()

        assert strategy.calls == [
            ("bar", 0), ("bar", 1), ("liq", 2), ("bar", 2), ("bar", 3), ("bar", 4),
        ]
        assert len(strategy.events) == 1
        event = strategy.events[0]
        assert event.bar_index == 2
        assert event.trade.reason == ExitReason.LIQUIDATION
        assert event.trade.realized_pnl == pytest.approx(-event.margin_lost)
        assert len(result.liquidations) == 1
        assert result.open_positions == []

    def test_close_intent_realizes_trades(self, spot_config):
        result = run_backtest(spot_config, RecordingStrategy(close_at=5))
        # bars 0-4 open five longs, bar 5 closes them, bars 6-19 open fourteen more
        assert len(result.trades) == 5
        assert all(t.reason == ExitReason.SIGNAL for t in result.trades)
        assert all(t.exit_bar == 5 for t in result.trades)
        assert len(result.open_positions) == 14

    def test_should_stop_ends_run(self, spot_config):
        calls = []

        def stop():
            calls.append(1)
            return len(calls) >= 7

        result = run_backtest(spot_config, RecordingStrategy(), should_stop=stop)
        assert result.stopped_early
        assert len(result.bars) == 7
        assert len(result.equity_history) == 7

    def test_stop_on_last_bar_is_not_early(self, spot_config):
        result = run_backtest(spot_config, RecordingStrategy(), should_stop=lambda: False)
        assert not result.stopped_early
        calls = []

        def stop_at_end():
            calls.append(1)
            return len(calls) == spot_config.candles

        assert not run_backtest(spot_config, RecordingStrategy(), should_stop=stop_at_end).stopped_early

    def test_run_is_single_use(self, spot_config):
        runner = BacktestRunner(spot_config, RecordingStrategy())
        runner.run()
        with pytest.raises(RuntimeError, match="only be called once"):
            runner.run()

    def test_strategy_required(self):
        with pytest.raises(ValueError, match="strategy"):
            BacktestRunner(SimConfig())

    def test_risk_policy_vetoes_entries(self, spot_config):
        unrestricted = run_backtest(spot_config, RecordingStrategy())
        assert len(unrestricted.open_positions) == 20

        limited = dataclasses.replace(spot_config, risk=RiskLimits(enabled=True, max_positions=1))
        restricted = run_backtest(limited, RecordingStrategy())
        assert len(restricted.open_positions) == 1
        assert restricted.fingerprint == unrestricted.fingerprint

    def test_order_flow_model_runs(self):
        config = SimConfig(candles=80)
        config.market = dataclasses.replace(config.market, model="order_flow")
        result = run_backtest(config, EmaCrossoverStrategy())
        assert len(result.bars) == 80
        assert all(bar.best_bid is not None for bar in result.bars)


# ─────────────────────────────────────────────────────────────────────────────
# Metrics
# ─────────────────────────────────────────────────────────────────────────────

class TestPerformanceMetrics:
    """Test pure metric computation."""

    def test_trade_statistics_use_net_pnl(self):
        # net: +10, -5, +20, +5
        trades = [make_trade(11.0), make_trade(-4.0), make_trade(21.0), make_trade(6.0)]
        m = compute_performance_metrics(trades, [10000.0, 10030.0], 10000.0, total_fees=4.0)

        assert m.total_trades == 4
        assert (m.wins, m.losses) == (3, 1)
        assert m.win_rate == pytest.approx(0.75)
        assert m.profit_factor == pytest.approx(7.0)
        assert m.avg_win == pytest.approx(35.0 / 3)
        assert m.avg_loss == pytest.approx(5.0)
        assert m.expectancy == pytest.approx(7.5)
        assert (m.max_consecutive_wins, m.max_consecutive_losses) == (2, 1)
        assert m.avg_trade_duration_bars == pytest.approx(4.0)

    def test_break_even_after_fees_is_a_loss(self):
        m = compute_performance_metrics([make_trade(1.0, fees=1.0)], [10000.0], 10000.0)
        assert m.losses == 1
        assert m.profit_factor == 0.0

    def test_profit_factor_capped_without_losses(self):
        m = compute_performance_metrics([make_trade(5.0), make_trade(3.0)], [10000.0], 10000.0)
        assert m.profit_factor == 999.0

    def test_avg_r_only_counts_trades_with_stops(self):
        # risk = 100 * 2% * 1 = 2, net = 4 -> 2R
        trades = [make_trade(5.0, stop_loss_pct=2.0), make_trade(50.0)]
        m = compute_performance_metrics(trades, [10000.0], 10000.0)
        assert m.avg_r == pytest.approx(2.0)

    def test_liquidations_counted(self):
        trades = [make_trade(-10.0, reason=ExitReason.LIQUIDATION), make_trade(5.0)]
        assert compute_performance_metrics(trades, [10000.0], 10000.0).liquidations == 1

    def test_drawdown_and_duration(self):
        m = compute_performance_metrics([], [100.0, 110.0, 99.0, 105.0, 121.0], 100.0)
        assert m.max_drawdown == pytest.approx(0.1)
        assert m.max_drawdown_duration_bars == 2

    def test_drawdown_measured_from_initial_balance(self):
        m = compute_performance_metrics([], [90.0, 95.0], 100.0)
        assert m.max_drawdown == pytest.approx(0.1)
        assert m.max_drawdown_duration_bars == 2

    def test_flat_equity_is_all_zero(self):
        m = compute_performance_metrics([], [100.0] * 10, 100.0)
        assert m.sharpe == 0.0
        assert m.sortino == 0.0
        assert m.max_drawdown == 0.0
        assert m.total_return == 0.0

    def test_empty_history(self):
        m = compute_performance_metrics([], [], 100.0)
        assert m.final_equity == 100.0
        assert m.total_bars == 0
        assert m.cagr == 0.0

    def test_sortino_capped_without_negative_returns(self):
        m = compute_performance_metrics([], [100.0, 101.0, 103.0, 104.0], 100.0)
        assert m.sortino == 100.0
        assert m.sharpe > 0

    def test_wipeout_cagr(self):
        m = compute_performance_metrics([], [50.0, 0.0], 100.0)
        assert m.cagr == -1.0
        assert m.total_return == pytest.approx(-1.0)

    def test_cagr_one_year(self):
        history = [100.0] * 251 + [110.0]
        m = compute_performance_metrics([], history, 100.0)
        assert m.cagr == pytest.approx(0.10)

    def test_exposure(self):
        m = compute_performance_metrics([], [100.0] * 10, 100.0, exposed_bars=4)
        assert m.exposure == pytest.approx(0.4)


class TestStatisticsHelpers:
    """Test risk_of_ruin and percentile."""

    def test_risk_of_ruin(self):
        assert risk_of_ruin(0.5, 1.0, 0.0) == 0.0
        assert risk_of_ruin(0.4, 1.0, 1.0) == 1.0
        # (0.4 / 0.6) ** ceil(1 / 0.5)
        assert risk_of_ruin(0.6, 1.0, 1.0) == pytest.approx((0.4 / 0.6) ** 2)

    @pytest.mark.parametrize("p,expected", [(0, 1.0), (50, 2.5), (100, 4.0), (25, 1.75)])
    def test_percentile(self, p, expected):
        assert percentile([4.0, 1.0, 3.0, 2.0], p) == pytest.approx(expected)

    def test_percentile_empty_raises(self):
        with pytest.raises(ValueError):
            percentile([], 50)


# ─────────────────────────────────────────────────────────────────────────────
# Export
# ─────────────────────────────────────────────────────────────────────────────

class TestExport:
    """Test DataFrame / CSV export."""

    def test_equity_frame_drawdown(self):
        df = equity_to_frame([100.0, 110.0, 99.0], 100.0)
        assert list(df.columns) == EQUITY_COLUMNS
        assert list(df["drawdown"]) == pytest.approx([0.0, 0.0, 0.1])

        below_start = equity_to_frame([90.0], 100.0)
        assert below_start["drawdown"].iloc[0] == pytest.approx(0.1)

    def test_trades_frame(self):
        df = trades_to_frame([make_trade(11.0, entry_bar=3, exit_bar=9)])
        assert list(df.columns) == TRADE_COLUMNS
        row = df.iloc[0]
        assert row["duration_bars"] == 6
        assert row["net_pnl"] == pytest.approx(10.0)
        assert row["reason"] == "signal"

    def test_empty_trades_frame_keeps_columns(self):
        assert list(trades_to_frame([]).columns) == TRADE_COLUMNS

    def test_export_csv(self, spot_config, tmp_path):
        result = run_backtest(spot_config, RecordingStrategy(close_at=5))
        paths = export_csv(result, tmp_path / "out")

        assert set(paths) == {"bars", "trades", "equity"}
        bars = pd.read_csv(paths["bars"])
        assert len(bars) == 20
        assert bars["close"].iloc[-1] == pytest.approx(result.bars[-1].close)
        assert len(pd.read_csv(paths["trades"])) == 5
        assert list(pd.read_csv(paths["equity"]).columns) == EQUITY_COLUMNS
