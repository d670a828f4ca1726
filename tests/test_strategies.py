"""
Tests for indicators, the rule strategy and the EMA crossover strategy.

Validates that:
1. Indicators are NaN during warmup and match hand-computed values
2. Rules fire only on defined values and respect per-side caps
3. The EMA strategy stays flat during warmup and sizes from ATR
4. The ARM strategy reads regimes and sizes through the risk helpers
5. The registry builds strategies by id and rejects unknown ids
"""

import math
from pathlib import Path

import numpy as np
import pytest

from marketsim.sim import AccountSnapshot, CloseOrder, Direction, OpenOrder, Side
from marketsim.sim.types import PositionView
from marketsim.strategies import (
    AdaptiveMomentumStrategy,
    EmaCrossoverStrategy,
    IndicatorSpec,
    Rule,
    RuleStrategy,
    RuleStrategyDefinition,
    StrategySnapshot,
    create_strategy,
    evaluate_rules,
    list_strategies,
    load_rule_strategy,
    rule_strategy_from_dict,
)
from marketsim.strategies.ema_crossover import NO_ENTRY
from marketsim.strategies.indicators import atr_last, ema, ema_last, return_volatility, rsi_last, sma
from tests.conftest import make_bar

RULES_EXAMPLE = Path(__file__).resolve().parent.parent / "configs" / "rules_example.yml"


def trend_bars(count: int, step: float = 0.1):
    """Bars drifting by step per bar with a constant 1.0 high-low range."""
    bars = []
    for i in range(count):
        close = 100.0 + step * i
        bars.append(make_bar(i, close, high=close + 0.5, low=close - 0.5))
    return tuple(bars)


def zigzag_bars(count: int, step: float = 0.1):
    """Trend of step per bar where moves alternate 4:-2 (x step); ATR stays 1.0."""
    bars = []
    for i in range(count):
        close = 100.0 + step * i + (3 * step if i % 2 else 0.0)
        bars.append(make_bar(i, close, high=close + 0.5, low=close - 0.5))
    return tuple(bars)


def position_view(direction: Direction, entry: float = 100.0) -> PositionView:
    return PositionView(
        position_id=1,
        direction=direction,
        entry_price=entry,
        size=1.0,
        notional=entry,
        margin=entry / 10.0,
        entry_fee=0.04,
        stop_loss_pct=0.0,
        take_profit_pct=0.0,
        trailing_stop_pct=0.0,
        trail_high=entry,
        trail_low=entry,
        entry_bar=0,
        liquidation_price=None,
        unrealized_pnl=0.0,
    )


def snapshot_for(history, equity=10000.0, positions=()):
    account = AccountSnapshot(
        balance=equity,
        equity=equity,
        margin_in_use=0.0,
        unrealized_pnl=0.0,
        total_fees=0.0,
        positions=tuple(positions),
    )
    return StrategySnapshot.build(history[-1], tuple(history), account)


# ─────────────────────────────────────────────────────────────────────────────
# Indicators
# ─────────────────────────────────────────────────────────────────────────────

class TestIndicators:
    """Test indicator primitives."""

    def test_ema_seeded_with_first_value(self):
        out = ema([2.0, 4.0, 4.0], 3)
        assert out[0] == 2.0
        assert out[1] == pytest.approx(3.0)
        assert out[2] == pytest.approx(3.5)

    def test_ema_period_one_is_identity(self):
        values = [1.0, 5.0, 2.0]
        assert list(ema(values, 1)) == values

    def test_ema_last_matches_window(self):
        values = np.arange(100, dtype=float)
        assert ema_last(values, 5) == pytest.approx(ema(values[-20:], 5)[-1])
        assert math.isnan(ema_last([], 5))

    def test_sma_warmup_is_nan(self):
        out = sma([1.0, 2.0, 3.0, 4.0], 2)
        assert math.isnan(out[0])
        assert list(out[1:]) == pytest.approx([1.5, 2.5, 3.5])
        assert np.isnan(sma([1.0], 3)).all()

    def test_atr_last(self):
        bars = trend_bars(20)
        assert atr_last(bars, 14) == pytest.approx(1.0)
        assert math.isnan(atr_last(bars[:10], 14))

    def test_rsi_last(self):
        zigzag = [b.close for b in zigzag_bars(30)]
        # 7 gains of 0.4 vs 7 losses of 0.2 over the last 14 changes
        assert rsi_last(zigzag, 14) == pytest.approx(200.0 / 3.0)
        assert rsi_last(np.arange(20, dtype=float), 14) == 100.0
        assert math.isnan(rsi_last([1.0, 2.0], 14))

    def test_return_volatility(self):
        assert return_volatility([100.0, 110.0, 99.0], 2) == pytest.approx(0.1)
        assert math.isnan(return_volatility([100.0, 110.0], 2))


# ─────────────────────────────────────────────────────────────────────────────
# Rules
# ─────────────────────────────────────────────────────────────────────────────

class TestRules:
    """Test rule validation and evaluation."""

    @pytest.fixture
    def series(self):
        return {
            "fast": np.array([1.0, 3.0, 4.0]),
            "slow": np.array([2.0, 2.0, 2.0]),
            "close": np.array([np.nan, 10.0, 9.0]),
        }

    def test_cross_needs_previous_bar(self, series):
        rule = Rule(type="cross", a="fast", b="slow", action="buy")
        assert evaluate_rules([rule], series, 0) == []
        assert evaluate_rules([rule], series, 1) == ["buy"]
        assert evaluate_rules([rule], series, 2) == []

    def test_comparisons_and_slopes(self, series):
        rules = [
            Rule(type="above", a="fast", b="slow", action="buy"),
            Rule(type="greater_than", a="close", value=9.5, action="sell"),
            Rule(type="slope_negative", a="close", action="close_long"),
            Rule(type="less_than", a="slow", b="fast", action="close_short"),
        ]
        assert evaluate_rules(rules, series, 1) == ["buy", "sell", "close_short"]
        assert evaluate_rules(rules, series, 2) == ["buy", "close_long", "close_short"]

    def test_undefined_values_do_not_fire(self, series):
        rule = Rule(type="greater_than", a="close", value=0.0, action="buy")
        assert evaluate_rules([rule], series, 0) == []
        slope = Rule(type="slope_positive", a="close", action="buy")
        assert evaluate_rules([slope], series, 1) == []

    @pytest.mark.parametrize("kwargs,match", [
        ({"type": "between", "a": "close", "action": "buy"}, "rule type"),
        ({"type": "above", "a": "close", "action": "hold"}, "rule action"),
        ({"type": "cross", "a": "close", "action": "buy"}, "operand 'b'"),
        ({"type": "less_than", "a": "close", "action": "buy"}, "'b' or 'value'"),
    ])
    def test_rule_validation(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            Rule(**kwargs)

    def test_definition_validation(self):
        with pytest.raises(ValueError, match="unknown series"):
            RuleStrategyDefinition(rules=[Rule(type="above", a="fast", b="close", action="buy")])
        with pytest.raises(ValueError, match="shadows"):
            RuleStrategyDefinition(indicators={"close": IndicatorSpec(type="ema", period=5)})
        with pytest.raises(ValueError, match="indicator type"):
            IndicatorSpec(type="rsi")

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ValueError, match="Unknown keys"):
            rule_strategy_from_dict({"name": "x", "leverage": 5})
        with pytest.raises(ValueError, match="Malformed"):
            rule_strategy_from_dict({"rules": [{"type": "above", "a": "close", "b": "open", "action": "buy", "when": 1}]})

    def test_load_example_file(self):
        definition = load_rule_strategy(RULES_EXAMPLE)
        assert definition.name == "ema_trend_rules"
        assert set(definition.indicators) == {"fast", "slow", "trend"}
        assert len(definition.rules) == 4
        assert definition.size == 5
        assert definition.stop_loss == 3.0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_rule_strategy(tmp_path / "missing.yml")

    def test_strategy_respects_side_cap(self):
        definition = RuleStrategyDefinition(
            rules=[Rule(type="greater_than", a="close", value=0.0, action="buy")],
            size=2.0,
            stop_loss=1.5,
        )
        strategy = RuleStrategy(definition)
        history = trend_bars(3)

        flat = snapshot_for(history)
        state = strategy.init(flat)
        intents = strategy.on_bar(flat, state)
        assert intents == [OpenOrder(side=Side.BUY, size=2.0, stop_loss=1.5)]

        holding = snapshot_for(history, positions=[position_view(Direction.LONG)])
        assert strategy.on_bar(holding, state) == []
        assert state["fired"] == 1

    def test_close_action_only_with_open_side(self):
        definition = RuleStrategyDefinition(
            rules=[Rule(type="slope_positive", a="close", action="close_long")],
        )
        strategy = RuleStrategy(definition)
        history = trend_bars(3)
        state = strategy.init(snapshot_for(history))

        assert strategy.on_bar(snapshot_for(history), state) == []
        holding = snapshot_for(history, positions=[position_view(Direction.LONG)])
        assert strategy.on_bar(holding, state) == [CloseOrder(side=Side.SELL)]

    def test_lookback_follows_longest_indicator(self):
        assert RuleStrategyDefinition().lookback == 5
        definition = RuleStrategyDefinition(indicators={
            "fast": IndicatorSpec(type="ema", period=5),
            "slow": IndicatorSpec(type="sma", period=30),
        })
        assert definition.lookback == 121

    def test_long_history_evaluates_trailing_window(self):
        definition = RuleStrategyDefinition(
            indicators={"avg": IndicatorSpec(type="sma", period=10)},
            rules=[Rule(type="above", a="close", b="avg", action="buy")],
            size=1.0,
        )
        strategy = RuleStrategy(definition)
        long_history = trend_bars(2000)
        snap = snapshot_for(long_history)
        assert strategy.on_bar(snap, strategy.init(snap)) == [OpenOrder(side=Side.BUY, size=1.0)]


# ─────────────────────────────────────────────────────────────────────────────
# EMA crossover
# ─────────────────────────────────────────────────────────────────────────────

class TestEmaCrossover:
    """Test the bundled EMA crossover strategy."""

    @pytest.fixture
    def strategy(self):
        return EmaCrossoverStrategy()

    @pytest.mark.parametrize("kwargs", [
        {"fast": 26, "slow": 12},
        {"fast": 12, "slow": 12},
        {"min_bars": 10, "atr_period": 14},
    ])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            EmaCrossoverStrategy(**kwargs)

    def test_flat_during_warmup(self, strategy):
        snap = snapshot_for(trend_bars(59))
        assert strategy.on_bar(snap, strategy.init(snap)) == []

    def test_uptrend_opens_long_sized_from_atr(self, strategy):
        snap = snapshot_for(trend_bars(60))
        state = strategy.init(snap)
        intents = strategy.on_bar(snap, state)

        assert len(intents) == 1
        order = intents[0]
        assert order.side == Side.BUY
        # 10000 * 1% / (2 x ATR 1.0)
        assert order.size == pytest.approx(50.0)
        assert order.stop_loss == pytest.approx(2.0 / snap.bar.close * 100.0)
        assert order.take_profit == pytest.approx(order.stop_loss * 2.0)
        assert state.last_entry_bar == 60

    def test_downtrend_opens_short(self, strategy):
        snap = snapshot_for(trend_bars(60, step=-0.1))
        intents = strategy.on_bar(snap, strategy.init(snap))
        assert intents[0].side == Side.SELL

    def test_cooldown_blocks_reentry(self, strategy):
        snap = snapshot_for(trend_bars(60))
        state = strategy.init(snap)
        state.last_entry_bar = 58
        assert strategy.on_bar(snap, state) == []

    def test_reversal_closes_long(self, strategy):
        snap = snapshot_for(trend_bars(60, step=-0.1), positions=[position_view(Direction.LONG)])
        intents = strategy.on_bar(snap, strategy.init(snap))
        assert intents == [CloseOrder(side=Side.SELL)]

    def test_drawdown_exit_flattens(self, strategy):
        history = trend_bars(60)
        state = strategy.init(snapshot_for(history))
        snap = snapshot_for(history, equity=7000.0, positions=[position_view(Direction.SHORT)])
        assert strategy.on_bar(snap, state) == [CloseOrder(side=Side.BUY)]

    def test_liquidation_clears_cooldown(self, strategy):
        snap = snapshot_for(trend_bars(60))
        state = strategy.init(snap)
        state.last_entry_bar = 59
        strategy.on_liquidation(snap, state)
        assert state.last_entry_bar == NO_ENTRY

    def test_drawdown_throttle_scales_entry(self, strategy):
        history = trend_bars(60)
        state = strategy.init(snapshot_for(history))
        # 12% below peak -> 0.75 multiplier
        intents = strategy.on_bar(snapshot_for(history, equity=8800.0), state)
        assert intents[0].size == pytest.approx(8800 * 0.01 * 0.75 / 2.0)


# ─────────────────────────────────────────────────────────────────────────────
# Adaptive regime momentum
# ─────────────────────────────────────────────────────────────────────────────

class TestAdaptiveMomentum:
    """Test the ARM strategy's market read, sizing and exits."""

    @pytest.fixture
    def strategy(self):
        return AdaptiveMomentumStrategy()

    @pytest.fixture
    def uptrend(self):
        return zigzag_bars(60)

    @pytest.mark.parametrize("kwargs", [
        {"fast": 26, "mid": 12},
        {"vol_fast": 50, "vol_slow": 20},
        {"min_bars": 50},
        {"max_pyramids": -1},
    ])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            AdaptiveMomentumStrategy(**kwargs)

    def test_flat_during_warmup(self, strategy):
        snap = snapshot_for(zigzag_bars(54))
        assert strategy.on_bar(snap, strategy.init(snap)) == []

    def test_reads_strong_uptrend(self, strategy, uptrend):
        read = strategy.read_market(snapshot_for(uptrend))
        assert read.trend == 1
        assert read.trending and read.strong
        assert not read.sideways and not read.volatile and not read.extreme
        assert read.rsi == pytest.approx(200.0 / 3.0)
        assert read.atr_pct == pytest.approx(1.0 / uptrend[-1].close)
        assert read.vol_ratio < 1.3

    def test_trend_entry_is_kelly_capped_scale_out(self, strategy, uptrend):
        snap = snapshot_for(uptrend)
        state = strategy.init(snap)
        intents = strategy.on_bar(snap, state)

        price = uptrend[-1].close
        # risk sizing gives 10000 * 1.5% / 2.0 = 75, above the Kelly bound
        kelly_bound = 10000 * 0.5 / price
        stop = 2.0 / price * 100.0
        assert [o.side for o in intents] == [Side.BUY, Side.BUY]
        assert intents[0].size == pytest.approx(kelly_bound * 1.25 * 0.6)
        assert intents[1].size == pytest.approx(kelly_bound * 1.25 * 0.4)
        assert intents[0].stop_loss == pytest.approx(stop)
        assert intents[0].take_profit == pytest.approx(stop * 3.0)
        assert intents[0].trailing_stop == 0.0
        assert intents[1].take_profit == 0.0
        assert intents[1].trailing_stop == pytest.approx(stop * 0.85)
        assert state.last_entry_bar == 60
        assert state.pyramid_count == 0

    def test_drawdown_throttle_scales_entry(self, uptrend):
        strategy = AdaptiveMomentumStrategy(kelly_cap=1.0)
        state = strategy.init(snapshot_for(uptrend))
        intents = strategy.on_bar(snapshot_for(uptrend, equity=8800.0), state)
        # 12% drawdown -> 0.75; Kelly bound 8800 / price is not binding
        assert sum(o.size for o in intents) == pytest.approx(8800 * 0.015 * 0.75 / 2.0 * 1.25)

    def test_kelly_statistics_tighten_bound(self, uptrend):
        # b = 2, kelly = (0.5 * 2 - 0.5) / 2 = 0.25
        strategy = AdaptiveMomentumStrategy(kelly_win_rate=0.5, kelly_avg_win=200.0, kelly_avg_loss=100.0)
        snap = snapshot_for(uptrend)
        intents = strategy.on_bar(snap, strategy.init(snap))
        assert sum(o.size for o in intents) == pytest.approx(10000 * 0.25 / uptrend[-1].close * 1.25)

    def test_halt_flattens(self, strategy, uptrend):
        state = strategy.init(snapshot_for(uptrend))
        snap = snapshot_for(uptrend, equity=7000.0, positions=[position_view(Direction.LONG)])
        assert strategy.on_bar(snap, state) == [CloseOrder(side=Side.SELL)]

    def test_halt_blocks_entries(self, strategy, uptrend):
        state = strategy.init(snapshot_for(uptrend))
        assert strategy.on_bar(snapshot_for(uptrend, equity=7000.0), state) == []

    def test_reversal_closes_long_and_goes_short(self, strategy):
        downtrend = zigzag_bars(60, step=-0.1)
        snap = snapshot_for(downtrend, positions=[position_view(Direction.LONG)])
        intents = strategy.on_bar(snap, strategy.init(snap))
        assert intents[0] == CloseOrder(side=Side.SELL)
        assert [o.side for o in intents[1:]] == [Side.SELL, Side.SELL]

    def test_pyramids_once_into_profitable_leg(self, strategy, uptrend):
        snap = snapshot_for(uptrend, positions=[position_view(Direction.LONG, entry=100.0)])
        state = strategy.init(snap)
        state.last_entry_bar = 50
        intents = strategy.on_bar(snap, state)

        price = uptrend[-1].close
        assert [o.side for o in intents] == [Side.BUY, Side.BUY]
        assert sum(o.size for o in intents) == pytest.approx(10000 * 0.5 / price * 0.5)
        assert intents[0].stop_loss == pytest.approx(2.0 / price * 100.0 * 0.8)
        assert state.pyramid_count == 1
        assert state.last_entry_bar == 60

        state.last_entry_bar = 50
        assert strategy.on_bar(snap, state) == []

    def test_liquidation_resets_pyramids(self, strategy, uptrend):
        snap = snapshot_for(uptrend)
        state = strategy.init(snap)
        state.pyramid_count = 1
        strategy.on_liquidation(snap, state)
        assert state.pyramid_count == 0


# ─────────────────────────────────────────────────────────────────────────────
# Registry
# ─────────────────────────────────────────────────────────────────────────────

class TestRegistry:
    """Test strategy lookup by id."""

    def test_builtin_ids(self):
        assert {"ema", "arm", "rules"} <= set(list_strategies())

    def test_create_ema_with_params(self):
        strategy = create_strategy("ema", fast=5, slow=20)
        assert isinstance(strategy, EmaCrossoverStrategy)
        assert strategy.fast == 5

    def test_create_rules_from_file(self):
        strategy = create_strategy("rules", rules_path=str(RULES_EXAMPLE))
        assert strategy.name == "ema_trend_rules"

    def test_rules_without_file_raises(self):
        with pytest.raises(ValueError, match="rules file"):
            create_strategy("rules")

    def test_unknown_id_raises(self):
        with pytest.raises(ValueError, match="Unknown strategy"):
            create_strategy("macd")
