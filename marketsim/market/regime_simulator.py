"""
Regime-switching stochastic price generator.

Produces OHLCV bars from a state machine over regimes with GARCH-like
volatility clustering:

    sigma_t  = a * sigma_{t-1} + b * |r_{t-1}| + c * target_vol
    r_t      = drift + bias + mean_reversion + swing + momentum * r_{t-1}
               + N(0, 1) * sigma_t + jump
    close_t  = open_t * (1 + r_t)

Calm and violent stretches persist instead of being i.i.d. noise. High/low
come from asymmetric wick noise scaled by sigma and the realized body,
capped, with an extra rare downside tail in crash regimes.

All randomness flows through one Mulberry32 instance; the same seed and
config reproduce the same bars exactly.
"""

import math
from typing import Dict, Mapping, Optional

from ..config.config import MarketConfig
from ..config.constants import DEFAULT_BAR_SECONDS
from ..utils.helpers import clamp, tick_decimals
from ..utils.logger import get_logger
from .base import BaseMarketSimulator
from .regimes import (
    DEFAULT_REGIMES,
    DEFAULT_TRANSITIONS,
    RegimeParams,
    RegimeState,
    validate_regime_table,
)
from .rng import Mulberry32
from .types import Bar, Regime

logger = get_logger()


# =============================================================================
# Model constants
# =============================================================================

GARCH_A = 0.85          # persistence of previous sigma
GARCH_B = 0.10          # reaction to the last absolute return
GARCH_C = 0.05          # pull toward the regime's target volatility
SIGMA_MIN = 1e-5
SIGMA_MAX = 0.25

MOMENTUM = 0.10         # fraction of the previous return carried forward
BIAS_SCALE = 0.01       # bias_pct=1 adds 0.0001 per tick
RETURN_CAP = 0.5        # |return| per tick is clamped below this

WICK_CAP = 0.05         # max wick as a fraction of the body edge
BODY_WICK = 0.25        # share of the body that can extend into a wick
CRASH_TAIL_PROB = 0.08
CRASH_TAIL_SCALE = 1.5

_REGIME_ORDER = list(Regime)


class RegimeSimulator(BaseMarketSimulator):
    """
    GARCH-style regime-switching bar generator.

    Usage:
        sim = RegimeSimulator(MarketConfig(seed=42))
        bars = sim.run(100)
        sim.regime_counts[Regime.CRASH]
    """

    def __init__(
        self,
        config: Optional[MarketConfig] = None,
        regimes: Optional[Mapping[Regime, RegimeParams]] = None,
        transitions: Optional[Mapping[Regime, Mapping[Regime, float]]] = None,
        initial_regime: Regime = Regime.SIDEWAYS,
        bar_seconds: float = DEFAULT_BAR_SECONDS,
    ):
        """
        Initialize the generator.

        Args:
            config: Market configuration (seed, start price, volatility, ...)
            regimes: Per-regime parameters (defaults to DEFAULT_REGIMES)
            transitions: Transition matrix rows (defaults to DEFAULT_TRANSITIONS)
            initial_regime: Regime of the first tick
            bar_seconds: Bar length used for timestamps

        Raises:
            ValueError: If the regime table or transition matrix is invalid
        """
        super().__init__()
        self.config = config or MarketConfig()
        self._params: Dict[Regime, RegimeParams] = dict(regimes or DEFAULT_REGIMES)
        self._transitions = {r: dict(row) for r, row in (transitions or DEFAULT_TRANSITIONS).items()}
        validate_regime_table(self._params, self._transitions)

        self.rng = Mulberry32(self.config.seed)
        self.tick_size = self.config.tick_size
        self._decimals = tick_decimals(self.tick_size)
        self.base_vol = self.config.base_vol
        self.bias_per_tick = self.config.bias * BIAS_SCALE
        self.switch_prob = self.config.switch_prob
        self.bar_ms = int(bar_seconds * 1000)

        self.price = self._quantize(self.config.start_price)
        self.prev_return = 0.0
        self.sigma = clamp(
            self.base_vol * self._params[initial_regime].vol_mult, SIGMA_MIN, SIGMA_MAX
        )
        self.transitions_taken = 0
        self.state = RegimeState(
            regime=initial_regime,
            elapsed=0,
            duration=self._sample_duration(initial_regime),
            anchor=self.price,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Regime state machine
    # ─────────────────────────────────────────────────────────────────────────

    def _sample_duration(self, regime: Regime) -> int:
        params = self._params[regime]
        return self.rng.randint(params.min_duration, params.max_duration)

    def _enter(self, regime: Regime):
        self.state = RegimeState(
            regime=regime,
            elapsed=0,
            duration=self._sample_duration(regime),
            anchor=self.price,
        )

    def _maybe_transition(self):
        """Switch when the duration budget expires or on the per-tick switch draw."""
        if not (self.state.expired or self.rng.next_float() < self.switch_prob):
            return
        previous = self.state.regime
        row = self._transitions[previous]
        regime = _REGIME_ORDER[self.rng.choice_index([row.get(r, 0.0) for r in _REGIME_ORDER])]
        self._enter(regime)
        self.transitions_taken += 1
        logger.debug(
            f"Regime {previous.value} -> {regime.value} at bar {len(self.history)} "
            f"(duration {self.state.duration}, anchor {self.price})"
        )

    def force_regime(self, regime: Regime):
        """Enter a regime immediately (anchor resets to the current price)."""
        self._enter(Regime(regime))

    @property
    def regime(self) -> Regime:
        return self.state.regime

    # ─────────────────────────────────────────────────────────────────────────
    # Return and OHLC synthesis
    # ─────────────────────────────────────────────────────────────────────────

    def _quantize(self, price: float) -> float:
        ticks = max(1, int(math.floor(price / self.tick_size + 0.5)))
        return round(ticks * self.tick_size, self._decimals)

    def _swing(self, params: RegimeParams) -> float:
        """Per-tick increment of amplitude * sin(2*pi*t / period)."""
        if params.swing_amplitude <= 0 or params.swing_period <= 0:
            return 0.0
        w = 2.0 * math.pi / params.swing_period
        t = self.state.elapsed
        return params.swing_amplitude * (math.sin(w * (t + 1)) - math.sin(w * t))

    def _jump(self, regime: Regime, params: RegimeParams) -> float:
        if params.jump_prob <= 0 or self.rng.next_float() >= params.jump_prob:
            return 0.0
        magnitude = params.jump_scale * self.sigma * (0.5 + self.rng.next_float())
        if regime == Regime.CRASH:
            return -magnitude
        if regime == Regime.BREAKOUT:
            return magnitude
        return magnitude if self.rng.next_float() < 0.5 else -magnitude

    def _wicks(self, regime: Regime, params: RegimeParams, body: float):
        """Upper/lower wick fractions; asymmetric by regime skew, capped."""
        upper_scale = 0.5 * (1.0 + params.wick_skew)
        lower_scale = 0.5 * (1.0 - params.wick_skew)
        upper = abs(self.rng.gaussian()) * self.sigma * upper_scale + body * BODY_WICK * self.rng.next_float()
        lower = abs(self.rng.gaussian()) * self.sigma * lower_scale + body * BODY_WICK * self.rng.next_float()
        upper = min(upper, WICK_CAP)
        lower = min(lower, WICK_CAP)

        if regime == Regime.CRASH and self.rng.next_float() < CRASH_TAIL_PROB:
            tail = abs(self.rng.gaussian()) * self.sigma * CRASH_TAIL_SCALE
            lower = min(lower + tail, 2 * WICK_CAP)
        return upper, lower

    def _next_bar(self) -> Bar:
        self._maybe_transition()
        regime = self.state.regime
        params = self._params[regime]

        target_vol = self.base_vol * params.vol_mult
        self.sigma = clamp(
            GARCH_A * self.sigma + GARCH_B * abs(self.prev_return) + GARCH_C * target_vol,
            SIGMA_MIN,
            SIGMA_MAX,
        )

        open_ = self.price
        anchor = self.state.anchor
        mean_reversion = params.mean_reversion * (anchor - open_) / anchor if anchor > 0 else 0.0

        ret = (
            params.drift
            + self.bias_per_tick
            + mean_reversion
            + self._swing(params)
            + MOMENTUM * self.prev_return
            + self.rng.gaussian() * self.sigma
            + self._jump(regime, params)
        )
        if not math.isfinite(ret):
            ret = 0.0
        ret = clamp(ret, -RETURN_CAP, RETURN_CAP)

        close = self._quantize(open_ * (1.0 + ret))
        body = abs(close - open_) / open_
        upper, lower = self._wicks(regime, params, body)

        high = self._quantize(max(open_, close) * (1.0 + upper))
        low = max(self.tick_size, self._quantize(min(open_, close) * (1.0 - lower)))
        high = max(high, open_, close)
        low = min(low, open_, close)

        volume = self.config.base_volume * (1.0 + abs(ret) / max(self.sigma, 1e-9))
        volume *= 0.5 + self.rng.next_float()

        index = len(self.history)
        bar = Bar(
            index=index,
            open=open_,
            high=high,
            low=low,
            close=close,
            volume=volume,
            regime=regime,
            timestamp_ms=index * self.bar_ms,
        )

        self.prev_return = (close - open_) / open_
        self.price = close
        self.state.elapsed += 1
        return bar
