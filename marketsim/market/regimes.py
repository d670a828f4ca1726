"""
Regime parameter table and transition matrix for the regime-switching market.

Each regime carries per-tick drift, a volatility multiplier on the baseline
volatility, mean-reversion strength toward the anchor (price at regime
entry), an optional cyclical swing, a uniform duration range in ticks, and
jump/wick shape parameters. Transitions are drawn from the current regime's
row of the matrix by cumulative-probability sampling.
"""

from dataclasses import dataclass
from typing import Dict, Mapping

from .types import Regime


# ─────────────────────────────────────────────────────────────────────────────
# Types
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RegimeParams:
    """
    Stochastic parameters of one regime.

    Attributes:
        drift: Deterministic return per tick
        vol_mult: Multiplier on the baseline volatility (GARCH target)
        mean_reversion: Pull strength toward the anchor price per tick
        swing_amplitude: Amplitude of the cyclical component (fraction of price)
        swing_period: Period of the cyclical component in ticks (0 = none)
        min_duration: Shortest regime run in ticks
        max_duration: Longest regime run in ticks
        jump_prob: Per-tick probability of a jump
        jump_scale: Jump size in multiples of current sigma
        wick_skew: Wick asymmetry in [-1, 1]; positive favors upper wicks
    """
    drift: float
    vol_mult: float
    mean_reversion: float = 0.0
    swing_amplitude: float = 0.0
    swing_period: int = 0
    min_duration: int = 20
    max_duration: int = 120
    jump_prob: float = 0.0
    jump_scale: float = 3.0
    wick_skew: float = 0.0

    def __post_init__(self):
        if self.vol_mult < 0:
            raise ValueError(f"vol_mult must be >= 0, got {self.vol_mult}")
        if self.mean_reversion < 0:
            raise ValueError(f"mean_reversion must be >= 0, got {self.mean_reversion}")
        if self.min_duration < 1 or self.max_duration < self.min_duration:
            raise ValueError(
                f"Invalid duration range ({self.min_duration}, {self.max_duration})"
            )
        if not 0.0 <= self.jump_prob <= 1.0:
            raise ValueError(f"jump_prob must be within [0, 1], got {self.jump_prob}")
        if not -1.0 <= self.wick_skew <= 1.0:
            raise ValueError(f"wick_skew must be within [-1, 1], got {self.wick_skew}")
        if self.swing_period < 0:
            raise ValueError(f"swing_period must be >= 0, got {self.swing_period}")


@dataclass
class RegimeState:
    """Mutable regime bookkeeping owned by the simulator."""
    regime: Regime
    elapsed: int
    duration: int
    anchor: float

    @property
    def expired(self) -> bool:
        return self.elapsed >= self.duration


# ─────────────────────────────────────────────────────────────────────────────
# Defaults
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_REGIMES: Dict[Regime, RegimeParams] = {
    Regime.BULL: RegimeParams(
        drift=0.0012, vol_mult=0.9, min_duration=40, max_duration=140,
        jump_prob=0.004, jump_scale=3.0, wick_skew=0.2,
    ),
    Regime.BEAR: RegimeParams(
        drift=-0.0012, vol_mult=1.1, min_duration=40, max_duration=140,
        jump_prob=0.006, jump_scale=3.0, wick_skew=-0.2,
    ),
    Regime.SIDEWAYS: RegimeParams(
        drift=0.0, vol_mult=0.55, mean_reversion=0.04, min_duration=30, max_duration=120,
        jump_prob=0.002, jump_scale=2.5,
    ),
    Regime.SWING: RegimeParams(
        drift=0.0, vol_mult=0.8, mean_reversion=0.01, swing_amplitude=0.03, swing_period=40,
        min_duration=40, max_duration=160, jump_prob=0.003, jump_scale=3.0,
    ),
    Regime.BREAKOUT: RegimeParams(
        drift=0.0025, vol_mult=1.5, min_duration=8, max_duration=30,
        jump_prob=0.03, jump_scale=4.0, wick_skew=0.3,
    ),
    Regime.CRASH: RegimeParams(
        drift=-0.004, vol_mult=2.4, min_duration=5, max_duration=25,
        jump_prob=0.05, jump_scale=5.0, wick_skew=-0.4,
    ),
}

# Row = current regime, columns in Regime declaration order
DEFAULT_TRANSITIONS: Dict[Regime, Dict[Regime, float]] = {
    Regime.BULL: {
        Regime.BULL: 0.00, Regime.BEAR: 0.20, Regime.SIDEWAYS: 0.30,
        Regime.SWING: 0.30, Regime.BREAKOUT: 0.15, Regime.CRASH: 0.05,
    },
    Regime.BEAR: {
        Regime.BULL: 0.20, Regime.BEAR: 0.00, Regime.SIDEWAYS: 0.30,
        Regime.SWING: 0.25, Regime.BREAKOUT: 0.05, Regime.CRASH: 0.20,
    },
    Regime.SIDEWAYS: {
        Regime.BULL: 0.25, Regime.BEAR: 0.20, Regime.SIDEWAYS: 0.00,
        Regime.SWING: 0.25, Regime.BREAKOUT: 0.25, Regime.CRASH: 0.05,
    },
    Regime.SWING: {
        Regime.BULL: 0.25, Regime.BEAR: 0.25, Regime.SIDEWAYS: 0.30,
        Regime.SWING: 0.00, Regime.BREAKOUT: 0.12, Regime.CRASH: 0.08,
    },
    Regime.BREAKOUT: {
        Regime.BULL: 0.45, Regime.BEAR: 0.05, Regime.SIDEWAYS: 0.20,
        Regime.SWING: 0.25, Regime.BREAKOUT: 0.00, Regime.CRASH: 0.05,
    },
    Regime.CRASH: {
        Regime.BULL: 0.10, Regime.BEAR: 0.30, Regime.SIDEWAYS: 0.25,
        Regime.SWING: 0.30, Regime.BREAKOUT: 0.05, Regime.CRASH: 0.00,
    },
}


def validate_regime_table(
    regimes: Mapping[Regime, RegimeParams],
    transitions: Mapping[Regime, Mapping[Regime, float]],
) -> None:
    """
    Check that every regime has parameters and a transition row summing to 1.

    Raises:
        ValueError: On missing regimes, negative probabilities or bad row sums
    """
    for regime in Regime:
        if regime not in regimes:
            raise ValueError(f"Missing parameters for regime '{regime.value}'")
        row = transitions.get(regime)
        if row is None:
            raise ValueError(f"Missing transition row for regime '{regime.value}'")
        if any(p < 0 for p in row.values()):
            raise ValueError(f"Negative transition probability in row '{regime.value}'")
        total = sum(row.get(r, 0.0) for r in Regime)
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Transition row '{regime.value}' sums to {total}, expected 1.0")
