"""
Adaptive regime momentum (ARM) strategy.

Multi-regime trend following with a constrained mean-reversion leg:
- Reads the market each bar from EMA(12/26/50) alignment and spread,
  ATR(14) as a fraction of price, RSI(14) and 20- vs 50-bar return volatility
- Sizes through marketsim.risk.sizing: risk-per-trade scaled by the drawdown
  throttle and damped by the volatility ratio, then bounded by the Kelly cap
- Enters trends as a 60/40 scale-out (fixed target leg + trailing runner),
  boosted 1.25x in strong trends, and pyramids once into a strong trend
- Fades RSI extremes in quiet sideways markets while the throttle is >= 0.75
- Flattens on extreme volatility or when the drawdown throttle halts
- A liquidation resets the pyramiding counter

Market read thresholds:
    trending      aligned EMAs and spread > 0.4%
    strong trend  trending and spread > 1%
    sideways      no alignment, vol ratio < 1.3 and spread < 0.3%
    volatile      vol ratio > 2 or ATR > 4% of price (no entries)
    extreme       vol ratio > 3 or ATR > 6% of price (flatten)
"""

from dataclasses import dataclass
from typing import List, Optional

from ..config.constants import DEFAULT_KELLY_CAP, DEFAULT_VOL_DAMPING
from ..risk.sizing import cap_size_by_kelly, drawdown_throttle, volatility_scaled_size
from ..sim.types import CloseOrder, Direction, OpenOrder, OrderIntent, PositionView, Side
from ..utils.helpers import is_finite_positive
from .base import Strategy, StrategySnapshot
from .indicators import EMA_LOOKBACK_MULT, atr_last, closes, ema_last, return_volatility, rsi_last

STRATEGY_ID = "arm"
NO_ENTRY = -999


@dataclass(frozen=True)
class MarketRead:
    """Regime classification for one bar."""
    trend: int          # 1 bullish alignment, -1 bearish, 0 none
    spread: float       # |EMA fast - EMA slow| / price
    atr_pct: float
    rsi: float
    vol_ratio: float
    trending: bool
    strong: bool
    sideways: bool
    volatile: bool
    extreme: bool


@dataclass
class AdaptiveMomentumState:
    """Per-run state."""
    peak_equity: float
    last_entry_bar: int = NO_ENTRY
    pyramid_count: int = 0


class AdaptiveMomentumStrategy(Strategy):
    """Regime-adaptive trend follower sized by drawdown, volatility and Kelly."""

    def __init__(
        self,
        fast: int = 12,
        mid: int = 26,
        slow: int = 50,
        atr_period: int = 14,
        rsi_period: int = 14,
        vol_fast: int = 20,
        vol_slow: int = 50,
        min_bars: int = 55,
        risk_pct: float = 0.015,
        stop_mult: float = 2.0,
        target_mult: float = 3.0,
        trail_mult: float = 0.85,
        vol_damping: float = DEFAULT_VOL_DAMPING,
        max_pyramids: int = 1,
        kelly_cap: float = DEFAULT_KELLY_CAP,
        kelly_win_rate: float = 0.0,
        kelly_avg_win: float = 0.0,
        kelly_avg_loss: float = 0.0,
    ):
        """
        Args:
            kelly_win_rate / kelly_avg_win / kelly_avg_loss: Prior trade
                statistics (e.g. from an earlier run's PerformanceMetrics).
                Left at 0 the Kelly bound is equity × kelly_cap / price.
        """
        if not 1 <= fast < mid < slow:
            raise ValueError(f"Need 1 <= fast < mid < slow, got {fast}/{mid}/{slow}")
        if not 1 <= vol_fast < vol_slow:
            raise ValueError(f"Need 1 <= vol_fast < vol_slow, got {vol_fast}/{vol_slow}")
        if min_bars <= max(vol_slow, atr_period, rsi_period):
            raise ValueError(
                f"min_bars ({min_bars}) must exceed every indicator window "
                f"(vol_slow={vol_slow}, atr={atr_period}, rsi={rsi_period})"
            )
        if max_pyramids < 0:
            raise ValueError(f"max_pyramids must be >= 0, got {max_pyramids}")
        self.fast = fast
        self.mid = mid
        self.slow = slow
        self.atr_period = atr_period
        self.rsi_period = rsi_period
        self.vol_fast = vol_fast
        self.vol_slow = vol_slow
        self.min_bars = min_bars
        self.risk_pct = risk_pct
        self.stop_mult = stop_mult
        self.target_mult = target_mult
        self.trail_mult = trail_mult
        self.vol_damping = vol_damping
        self.max_pyramids = max_pyramids
        self.kelly_cap = kelly_cap
        self.kelly_win_rate = kelly_win_rate
        self.kelly_avg_win = kelly_avg_win
        self.kelly_avg_loss = kelly_avg_loss

    @property
    def name(self) -> str:
        return STRATEGY_ID

    @property
    def lookback(self) -> int:
        """Bars of history the indicators need."""
        return max(self.slow * EMA_LOOKBACK_MULT, self.vol_slow + 1, self.atr_period + 1, self.rsi_period + 1)

    def init(self, snapshot: StrategySnapshot) -> AdaptiveMomentumState:
        return AdaptiveMomentumState(peak_equity=snapshot.equity)

    # ─────────────────────────────────────────────────────────────────────
    # Market read
    # ─────────────────────────────────────────────────────────────────────

    def read_market(self, snapshot: StrategySnapshot) -> Optional[MarketRead]:
        """Classify the current bar; None when the indicators are undefined."""
        window = snapshot.history[-self.lookback:]
        close_series = closes(window)
        price = snapshot.bar.close

        ema_f = ema_last(close_series, self.fast)
        ema_m = ema_last(close_series, self.mid)
        ema_s = ema_last(close_series, self.slow)
        atr = atr_last(window, self.atr_period)
        if not is_finite_positive(atr) or not is_finite_positive(price):
            return None

        vol_f = return_volatility(close_series, self.vol_fast)
        vol_s = return_volatility(close_series, self.vol_slow)
        vol_ratio = vol_f / vol_s if is_finite_positive(vol_s) else 1.0

        if ema_f > ema_m > ema_s:
            trend = 1
        elif ema_f < ema_m < ema_s:
            trend = -1
        else:
            trend = 0
        spread = abs(ema_f - ema_s) / price
        atr_pct = atr / price
        trending = trend != 0 and spread > 0.004

        return MarketRead(
            trend=trend,
            spread=spread,
            atr_pct=atr_pct,
            rsi=rsi_last(close_series, self.rsi_period),
            vol_ratio=vol_ratio,
            trending=trending,
            strong=trending and spread > 0.01,
            sideways=trend == 0 and vol_ratio < 1.3 and spread < 0.003,
            volatile=vol_ratio > 2.0 or atr_pct > 0.04,
            extreme=vol_ratio > 3.0 or atr_pct > 0.06,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Decisions
    # ─────────────────────────────────────────────────────────────────────

    def _scale_in(self, side: Side, size: float, stop_pct: float, target_pct: float, trail_pct: float) -> List[OrderIntent]:
        """60% leg with a fixed target, 40% runner on a trailing stop."""
        return [
            OpenOrder(side=side, size=size * 0.6, stop_loss=stop_pct, take_profit=target_pct, trailing_stop=0.0),
            OpenOrder(side=side, size=size * 0.4, stop_loss=stop_pct, take_profit=0.0, trailing_stop=trail_pct),
        ]

    @staticmethod
    def _flatten(snapshot: StrategySnapshot) -> List[OrderIntent]:
        intents: List[OrderIntent] = []
        if snapshot.has_long:
            intents.append(CloseOrder(side=Side.SELL))
        if snapshot.has_short:
            intents.append(CloseOrder(side=Side.BUY))
        return intents

    @staticmethod
    def _first(snapshot: StrategySnapshot, direction: Direction) -> Optional[PositionView]:
        return next((p for p in snapshot.positions if p.direction == direction), None)

    def on_bar(self, snapshot: StrategySnapshot, state: AdaptiveMomentumState) -> List[OrderIntent]:
        n = snapshot.n
        if n < self.min_bars:
            return []
        read = self.read_market(snapshot)
        if read is None:
            return []

        price = snapshot.bar.close
        equity = snapshot.equity
        if equity > state.peak_equity:
            state.peak_equity = equity
        throttle = drawdown_throttle(equity, state.peak_equity)

        if (read.extreme or throttle.halt) and snapshot.positions:
            return self._flatten(snapshot)

        intents: List[OrderIntent] = []
        if snapshot.has_long and read.trend == -1 and read.spread > 0.003:
            intents.append(CloseOrder(side=Side.SELL))
        if snapshot.has_short and read.trend == 1 and read.spread > 0.003:
            intents.append(CloseOrder(side=Side.BUY))

        stop_distance = read.atr_pct * price * self.stop_mult
        size = volatility_scaled_size(
            equity,
            self.risk_pct,
            stop_distance,
            throttle=throttle.multiplier,
            vol_ratio=read.vol_ratio,
            k=self.vol_damping,
        )
        size = cap_size_by_kelly(
            size, self.kelly_win_rate, self.kelly_avg_win, self.kelly_avg_loss, equity, price, self.kelly_cap,
        )
        if size <= 0:
            return intents

        stop_pct = stop_distance / price * 100.0
        target_pct = stop_pct * self.target_mult
        trail_pct = stop_pct * self.trail_mult

        longs = snapshot.count(Direction.LONG)
        shorts = snapshot.count(Direction.SHORT)
        bars_since = n - state.last_entry_bar
        min_gap = 4 if read.trending else 20 if read.sideways else 8

        if bars_since < min_gap or read.extreme or read.volatile:
            return intents

        if read.trending:
            boost = 1.25 if read.strong else 1.0
            if read.trend == 1 and 40 < read.rsi < 72 and longs == 0:
                intents += self._scale_in(Side.BUY, size * boost, stop_pct, target_pct, trail_pct)
                state.last_entry_bar = n
                state.pyramid_count = 0
            if read.trend == -1 and 28 < read.rsi < 60 and shorts == 0:
                intents += self._scale_in(Side.SELL, size * boost, stop_pct, target_pct, trail_pct)
                state.last_entry_bar = n
                state.pyramid_count = 0

            # Add once to a single open leg that is already well in profit
            if read.strong and state.pyramid_count < self.max_pyramids and bars_since >= 6:
                direction = Direction.LONG if read.trend == 1 else Direction.SHORT
                side = Side.BUY if read.trend == 1 else Side.SELL
                held = longs if read.trend == 1 else shorts
                first = self._first(snapshot, direction)
                if held == 1 and first is not None:
                    gain = (price - first.entry_price) / first.entry_price * read.trend
                    if gain > read.atr_pct * 1.5:
                        intents += self._scale_in(
                            side, size * 0.5, stop_pct * 0.8, target_pct * 0.8, trail_pct,
                        )
                        state.pyramid_count += 1
                        state.last_entry_bar = n

        if read.sideways and not snapshot.positions and throttle.multiplier >= 0.75:
            side = Side.BUY if read.rsi < 22 else Side.SELL if read.rsi > 78 else None
            if side is not None:
                intents.append(OpenOrder(side=side, size=size * 0.4, stop_loss=stop_pct * 0.6, take_profit=stop_pct))
                state.last_entry_bar = n

        return intents

    def on_liquidation(self, snapshot, state: AdaptiveMomentumState, event=None) -> None:
        state.pyramid_count = 0

    def describe(self) -> str:
        return f"Adaptive regime momentum (EMA {self.fast}/{self.mid}/{self.slow}, risk {self.risk_pct:.1%})"
