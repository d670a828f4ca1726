"""
Stateless position sizing helpers.

Sizing formulas:
    - volatility_scaled_size: risk-per-trade sizing dampened by drawdown and
      realized-vs-baseline volatility
          size = (equity × risk_pct × throttle × vol_scalar) / stop_distance
    - fixed_fractional_size: lose exactly risk_pct of equity at the stop
    - kelly_cap_size: Kelly-fraction notional, used ONLY as an upper bound

Drawdown throttle (step function of drawdown from peak equity):
    DD <= 10%    -> 1.00
    10% - 15%    -> 0.75
    15% - 20%    -> 0.50
    20% - 22%    -> 0.25
    DD > 22%     -> halt (close everything, stop opening)

All helpers return 0 (never raise, never NaN) on degenerate input.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict

from ..config.constants import (
    DEFAULT_KELLY_CAP,
    DEFAULT_VOL_DAMPING,
    DRAWDOWN_HALT,
    DRAWDOWN_THROTTLE_STEPS,
)
from ..utils.helpers import is_finite_positive


def _finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


# ==============================================================================
# Drawdown throttle
# ==============================================================================

@dataclass(frozen=True)
class DrawdownThrottle:
    """
    Result of the drawdown step function.

    Attributes:
        drawdown: Fraction below peak equity (0.12 = 12%)
        multiplier: Size multiplier in [0, 1] (0 when halted)
        halt: True when trading must stop and open positions be closed
    """
    drawdown: float
    multiplier: float
    halt: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"drawdown": self.drawdown, "multiplier": self.multiplier, "halt": self.halt}


def current_drawdown(equity: float, peak_equity: float) -> float:
    """Drawdown from peak as a fraction (0 when at or above peak)."""
    if not is_finite_positive(peak_equity) or not _finite(equity):
        return 0.0
    return max(0.0, (peak_equity - equity) / peak_equity)


def drawdown_throttle(equity: float, peak_equity: float) -> DrawdownThrottle:
    """
    Map current drawdown to a size multiplier.

    Args:
        equity: Current equity
        peak_equity: Highest equity seen so far

    Returns:
        DrawdownThrottle (multiplier is non-increasing in drawdown)
    """
    dd = current_drawdown(equity, peak_equity)
    if dd > DRAWDOWN_HALT:
        return DrawdownThrottle(drawdown=dd, multiplier=0.0, halt=True)
    for threshold, multiplier in DRAWDOWN_THROTTLE_STEPS:
        if dd > threshold:
            return DrawdownThrottle(drawdown=dd, multiplier=multiplier)
    return DrawdownThrottle(drawdown=dd, multiplier=1.0)


# ==============================================================================
# Volatility scaling
# ==============================================================================

def volatility_scalar(vol_ratio: float, k: float = DEFAULT_VOL_DAMPING) -> float:
    """
    Size damping from realized / baseline volatility.

    min(1, 1 / max(1, vol_ratio × k)); non-finite input leaves size unscaled.
    """
    if not _finite(vol_ratio) or not _finite(k):
        return 1.0
    return min(1.0, 1.0 / max(1.0, vol_ratio * k))


def volatility_scaled_size(
    equity: float,
    risk_pct: float,
    stop_distance: float,
    throttle: float = 1.0,
    vol_ratio: float = 1.0,
    k: float = DEFAULT_VOL_DAMPING,
) -> float:
    """
    Risk-per-trade size dampened by drawdown throttle and volatility.

    Args:
        equity: Current equity
        risk_pct: Fraction of equity risked per trade (0.01 = 1%)
        stop_distance: Stop distance in price units
        throttle: Drawdown multiplier from drawdown_throttle()
        vol_ratio: Realized / baseline volatility
        k: Volatility damping coefficient

    Returns:
        Size in base units (0 on degenerate input)
    """
    if not is_finite_positive(stop_distance) or not is_finite_positive(equity):
        return 0.0
    if not _finite(risk_pct) or not _finite(throttle):
        return 0.0
    size = (equity * risk_pct * throttle * volatility_scalar(vol_ratio, k)) / stop_distance
    return size if is_finite_positive(size) else 0.0


def fixed_fractional_size(equity: float, risk_pct: float, stop_distance_pct: float, price: float) -> float:
    """
    Size that loses risk_pct percent of equity if the stop is hit.

    Args:
        equity: Current equity
        risk_pct: Percent of equity risked (1.0 = 1%)
        stop_distance_pct: Stop distance in percent of price
        price: Entry price

    Returns:
        Size in base units (0 on degenerate input)
    """
    if not is_finite_positive(price) or not is_finite_positive(stop_distance_pct):
        return 0.0
    if not is_finite_positive(equity) or not is_finite_positive(risk_pct):
        return 0.0
    risk_amount = equity * (risk_pct / 100.0)
    stop_distance = price * (stop_distance_pct / 100.0)
    size = risk_amount / stop_distance
    return size if is_finite_positive(size) else 0.0


# ==============================================================================
# Kelly cap
# ==============================================================================

def kelly_fraction(win_rate: float, avg_win: float, avg_loss: float, cap: float = DEFAULT_KELLY_CAP) -> float:
    """
    Kelly fraction clamped to [0, cap].

    kelly = (win_rate × b - (1 - win_rate)) / b with b = avg_win / avg_loss.

    Args:
        win_rate: Fraction of winning trades in [0, 1]
        avg_win: Average winning trade (positive)
        avg_loss: Average losing trade magnitude (positive)
        cap: Upper clamp

    Returns:
        Fraction of equity in [0, cap]
    """
    if not is_finite_positive(avg_win) or not is_finite_positive(avg_loss) or not _finite(win_rate):
        return 0.0
    b = avg_win / avg_loss
    kelly = (win_rate * b - (1.0 - win_rate)) / b
    if not math.isfinite(kelly):
        return 0.0
    return max(0.0, min(cap, kelly))


def kelly_cap_size(
    win_rate: float,
    avg_win: float,
    avg_loss: float,
    equity: float,
    price: float,
    cap: float = DEFAULT_KELLY_CAP,
) -> float:
    """Maximum size allowed by the Kelly fraction: equity × kelly / price."""
    if not is_finite_positive(price) or not is_finite_positive(equity):
        return 0.0
    return equity * kelly_fraction(win_rate, avg_win, avg_loss, cap) / price


def cap_size_by_kelly(
    size: float,
    win_rate: float,
    avg_win: float,
    avg_loss: float,
    equity: float,
    price: float,
    cap: float = DEFAULT_KELLY_CAP,
) -> float:
    """
    Apply the Kelly size as an upper bound on an already-computed size.

    The Kelly estimate never increases size; it only trims it. Without
    usable win/loss statistics the bound is equity × cap / price.
    """
    if not is_finite_positive(size):
        return 0.0
    if not is_finite_positive(avg_win) or not is_finite_positive(avg_loss):
        if not is_finite_positive(price) or not is_finite_positive(equity):
            return 0.0
        return min(size, equity * cap / price)
    return min(size, kelly_cap_size(win_rate, avg_win, avg_loss, equity, price, cap))
