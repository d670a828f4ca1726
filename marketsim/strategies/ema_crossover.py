"""
EMA crossover strategy.

A trend-following example that:
- Uses a fast/slow EMA crossover for direction
- Sizes entries from ATR so a stop at atr_stop_mult × ATR risks risk_pct of equity,
  scaled down by the drawdown throttle
- Sets stop at atr_stop_mult × ATR and target at reward_risk × stop
- Exits on crossover reversal
- Flattens everything when drawdown from peak equity exceeds dd_exit or the
  throttle halts
- Waits cooldown_bars between entries; a liquidation clears the cooldown

Only one position is held at a time.
"""

from dataclasses import dataclass
from typing import List

from ..risk.sizing import drawdown_throttle, volatility_scaled_size
from ..sim.types import CloseOrder, OpenOrder, OrderIntent, Side
from ..utils.helpers import is_finite_positive
from .base import Strategy, StrategySnapshot
from .indicators import EMA_LOOKBACK_MULT, atr_last, closes, ema_last

STRATEGY_ID = "ema"
NO_ENTRY = -999


@dataclass
class EmaCrossoverState:
    """Per-run state."""
    peak_equity: float
    last_entry_bar: int = NO_ENTRY


class EmaCrossoverStrategy(Strategy):
    """EMA(12/26) crossover with ATR stops."""

    def __init__(
        self,
        fast: int = 12,
        slow: int = 26,
        atr_period: int = 14,
        min_bars: int = 60,
        risk_pct: float = 0.01,
        atr_stop_mult: float = 2.0,
        reward_risk: float = 2.0,
        cooldown_bars: int = 5,
        dd_exit: float = 0.20,
    ):
        if fast < 1 or slow <= fast:
            raise ValueError(f"Need 1 <= fast < slow, got fast={fast}, slow={slow}")
        if min_bars <= atr_period:
            raise ValueError(f"min_bars ({min_bars}) must exceed atr_period ({atr_period})")
        self.fast = fast
        self.slow = slow
        self.atr_period = atr_period
        self.min_bars = min_bars
        self.risk_pct = risk_pct
        self.atr_stop_mult = atr_stop_mult
        self.reward_risk = reward_risk
        self.cooldown_bars = cooldown_bars
        self.dd_exit = dd_exit

    @property
    def name(self) -> str:
        return STRATEGY_ID

    @property
    def lookback(self) -> int:
        return max(self.slow * EMA_LOOKBACK_MULT, self.atr_period + 1)

    def init(self, snapshot: StrategySnapshot) -> EmaCrossoverState:
        return EmaCrossoverState(peak_equity=snapshot.equity)

    def on_bar(self, snapshot: StrategySnapshot, state: EmaCrossoverState) -> List[OrderIntent]:
        intents: List[OrderIntent] = []
        n = snapshot.n
        if n < self.min_bars:
            return intents

        window = snapshot.history[-self.lookback:]
        close_series = closes(window)
        ema_fast = ema_last(close_series, self.fast)
        ema_slow = ema_last(close_series, self.slow)
        bullish = ema_fast > ema_slow
        price = snapshot.bar.close

        atr = atr_last(window, self.atr_period)
        stop_distance = atr * self.atr_stop_mult
        stop_pct = stop_distance / price * 100.0

        equity = snapshot.equity
        if equity > state.peak_equity:
            state.peak_equity = equity
        throttle = drawdown_throttle(equity, state.peak_equity)

        # Drawdown circuit breaker
        if (throttle.halt or throttle.drawdown > self.dd_exit) and snapshot.positions:
            for position in snapshot.positions:
                intents.append(CloseOrder(side=position.direction.exit_side))
            return intents

        # Exits on reversal
        if snapshot.has_long and not bullish:
            intents.append(CloseOrder(side=Side.SELL))
        if snapshot.has_short and bullish:
            intents.append(CloseOrder(side=Side.BUY))

        # Entries
        bars_since = n - state.last_entry_bar
        if bars_since >= self.cooldown_bars and not snapshot.positions and is_finite_positive(stop_distance):
            size = volatility_scaled_size(equity, self.risk_pct, stop_distance, throttle=throttle.multiplier)
            if size > 0:
                intents.append(OpenOrder(
                    side=Side.BUY if bullish else Side.SELL,
                    size=size,
                    stop_loss=stop_pct,
                    take_profit=stop_pct * self.reward_risk,
                ))
                state.last_entry_bar = n

        return intents

    def on_liquidation(self, snapshot, state: EmaCrossoverState, event=None) -> None:
        state.last_entry_bar = NO_ENTRY

    def describe(self) -> str:
        return f"EMA crossover ({self.fast}/{self.slow}, ATR{self.atr_period} x{self.atr_stop_mult})"
