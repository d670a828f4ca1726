"""
Tests for the seeded market simulators.

Validates that:
1. Mulberry32 is deterministic and draws stay in range
2. The same seed and config reproduce the same bars (and fingerprint)
3. Every generated bar satisfies the OHLC invariants
4. Different seeds diverge
5. Regime tables are validated at construction
"""

import math

import pytest

from marketsim.config import MarketConfig, OrderFlowConfig
from marketsim.market import (
    Bar,
    DEFAULT_REGIMES,
    DEFAULT_TRANSITIONS,
    Mulberry32,
    OrderFlowSimulator,
    Regime,
    RegimeSimulator,
    TickSimulator,
    classify_regime,
    create_simulator,
    history_fingerprint,
)


def assert_valid_ohlc(bar: Bar):
    assert bar.low > 0
    assert bar.low <= min(bar.open, bar.close)
    assert bar.high >= max(bar.open, bar.close)
    assert bar.volume >= 0
    for value in (bar.open, bar.high, bar.low, bar.close, bar.volume):
        assert math.isfinite(value)


# ─────────────────────────────────────────────────────────────────────────────
# RNG
# ─────────────────────────────────────────────────────────────────────────────

class TestMulberry32:
    """Test the seeded generator."""

    def test_same_seed_same_sequence(self):
        a = Mulberry32(42)
        b = Mulberry32(42)
        assert [a.next_uint32() for _ in range(50)] == [b.next_uint32() for _ in range(50)]

    def test_different_seeds_differ(self):
        a = Mulberry32(1)
        b = Mulberry32(2)
        assert [a.next_float() for _ in range(5)] != [b.next_float() for _ in range(5)]

    def test_floats_in_unit_interval(self):
        rng = Mulberry32(7)
        draws = [rng.next_float() for _ in range(2000)]
        assert all(0.0 <= u < 1.0 for u in draws)
        assert 0.4 < sum(draws) / len(draws) < 0.6

    def test_randint_inclusive_bounds(self):
        rng = Mulberry32(3)
        draws = {rng.randint(2, 4) for _ in range(500)}
        assert draws == {2, 3, 4}

    def test_derived_distributions_finite(self):
        rng = Mulberry32(11)
        for _ in range(500):
            assert math.isfinite(rng.gaussian())
            assert rng.exponential(0.5) >= 0
            assert rng.pareto(3.0, 1.55) >= 3.0

    def test_choice_index_respects_zero_weights(self):
        rng = Mulberry32(5)
        picks = {rng.choice_index([0.0, 1.0, 0.0]) for _ in range(200)}
        assert picks == {1}


# ─────────────────────────────────────────────────────────────────────────────
# Regime-switching simulator
# ─────────────────────────────────────────────────────────────────────────────

class TestRegimeSimulator:
    """Test the GARCH-style regime model."""

    def test_deterministic_for_seed(self):
        a = RegimeSimulator(MarketConfig(seed=42)).run(300)
        b = RegimeSimulator(MarketConfig(seed=42)).run(300)
        assert [bar.to_dict() for bar in a] == [bar.to_dict() for bar in b]
        assert history_fingerprint(a) == history_fingerprint(b)

    def test_default_market_hundred_bars_valid(self):
        config = MarketConfig(seed=42, start_price=100.0, volatility_pct=2.0, bias_pct=0.0, switch_pct=5.0)
        bars = RegimeSimulator(config).run(100)
        assert len(bars) == 100
        for bar in bars:
            assert_valid_ohlc(bar)

    def test_different_seed_diverges(self):
        a = RegimeSimulator(MarketConfig(seed=1)).run(50)
        b = RegimeSimulator(MarketConfig(seed=2)).run(50)
        assert history_fingerprint(a) != history_fingerprint(b)

    def test_bars_are_valid_and_chained(self):
        sim = RegimeSimulator(MarketConfig(seed=9, volatility_pct=5.0))
        bars = sim.run(500)
        assert bars[0].open == pytest.approx(100.0)
        for prev, bar in zip(bars, bars[1:]):
            assert_valid_ohlc(bar)
            assert bar.open == prev.close
            assert bar.index == prev.index + 1

    def test_history_and_regime_counts(self):
        sim = RegimeSimulator(MarketConfig(seed=4))
        sim.run(200)
        assert len(sim.history) == 200
        assert sum(sim.regime_counts.values()) == 200

    def test_prices_on_tick_grid(self):
        sim = RegimeSimulator(MarketConfig(seed=5, tick_size=0.05))
        for bar in sim.run(100):
            assert round(bar.close / 0.05) * 0.05 == pytest.approx(bar.close)

    def test_zero_volatility_stays_finite(self):
        sim = RegimeSimulator(MarketConfig(seed=6, volatility_pct=0.0))
        for bar in sim.run(200):
            assert_valid_ohlc(bar)

    def test_force_regime(self):
        sim = RegimeSimulator(MarketConfig(seed=8, switch_pct=0.0))
        sim.force_regime(Regime.CRASH)
        assert sim.regime == Regime.CRASH

    def test_bad_transition_row_raises(self):
        transitions = {r: dict(row) for r, row in DEFAULT_TRANSITIONS.items()}
        transitions[Regime.BULL] = {Regime.BEAR: 0.5}
        with pytest.raises(ValueError, match="sums to"):
            RegimeSimulator(MarketConfig(), DEFAULT_REGIMES, transitions)


# ─────────────────────────────────────────────────────────────────────────────
# Order-flow simulator
# ─────────────────────────────────────────────────────────────────────────────

class TestOrderFlowSimulator:
    """Test the book-driven bar model."""

    def test_deterministic_for_seed(self):
        config = MarketConfig(seed=7, model="order_flow")
        a = OrderFlowSimulator(config).run(60)
        b = OrderFlowSimulator(config).run(60)
        assert history_fingerprint(a) == history_fingerprint(b)

    def test_regime_model_knobs_do_not_apply(self):
        base = OrderFlowSimulator(MarketConfig(seed=7, model="order_flow")).run(40)
        tuned = OrderFlowSimulator(
            MarketConfig(seed=7, model="order_flow", switch_pct=50.0, volatility_pct=6.0)
        ).run(40)
        assert history_fingerprint(base) == history_fingerprint(tuned)

    def test_bars_carry_book_metadata(self):
        sim = OrderFlowSimulator(MarketConfig(seed=3, model="order_flow"))
        for bar in sim.run(80):
            assert_valid_ohlc(bar)
            assert bar.best_bid < bar.best_ask
            assert bar.spread > 0
            assert -1.0 <= bar.imbalance <= 1.0
            assert bar.regime in Regime

    def test_book_stays_uncrossed(self):
        sim = OrderFlowSimulator(MarketConfig(seed=12, model="order_flow"), OrderFlowConfig(lambda_bid=2.0))
        sim.run(50)
        bid, ask = sim.book.best_bid(), sim.book.best_ask()
        if bid is not None and ask is not None:
            assert bid < ask

    @pytest.mark.parametrize("imbalance,ret,spread_rel,expected", [
        (0.0, -0.02, 0.001, Regime.CRASH),
        (-0.5, 0.0, 0.001, Regime.CRASH),
        (0.5, 0.0, 0.001, Regime.BREAKOUT),
        (0.0, 0.0, 0.001, Regime.SIDEWAYS),
        (0.2, 0.0, 0.001, Regime.BULL),
        (-0.2, 0.0, 0.001, Regime.BEAR),
        (0.08, 0.0, 0.001, Regime.SWING),
    ])
    def test_classify_regime(self, imbalance, ret, spread_rel, expected):
        assert classify_regime(imbalance, ret, spread_rel) == expected


class TestFactoryAndTicks:
    """Test the simulator factory and tick generator."""

    def test_create_simulator_selects_model(self):
        assert isinstance(create_simulator(MarketConfig()), RegimeSimulator)
        assert isinstance(create_simulator(MarketConfig(model="order_flow")), OrderFlowSimulator)

    def test_ticks_are_time_ordered_and_deterministic(self):
        a = TickSimulator(MarketConfig(seed=21)).run(300)
        b = TickSimulator(MarketConfig(seed=21)).run(300)
        assert [t.to_dict() for t in a] == [t.to_dict() for t in b]
        stamps = [t.timestamp_ms for t in a]
        assert stamps == sorted(stamps)
        assert all(t.price > 0 and t.best_bid < t.best_ask for t in a)
