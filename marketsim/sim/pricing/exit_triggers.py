"""
Per-bar exit trigger evaluation.

Checks one open position against one bar in fixed priority order:
1. Watermark update (highest high for longs, lowest low for shorts)
2. Stop-loss at entry × (1 ∓ sl)
3. Take-profit at entry × (1 ± tp)
4. Trailing stop at watermark × (1 ∓ trail)

At most one trigger fires per position per bar; the first hit wins.
The reference exit price is the trigger level itself (slippage is applied
later by the execution model). Liquidation is checked by the liquidation
model after these.

Tie-break:
- A bar that spans both stop and target exits at the stop (conservative)
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from ...market.types import Bar
from ..types import Direction, ExitReason, Position


@dataclass(frozen=True)
class ExitTrigger:
    """A fired exit: why and at what reference price."""
    reason: ExitReason
    price: float


def update_watermark(position: Position, bar: Bar) -> None:
    """Advance the trailing watermark with the bar's extreme."""
    if position.direction == Direction.LONG:
        if bar.high > position.trail_high:
            position.trail_high = bar.high
    elif bar.low < position.trail_low:
        position.trail_low = bar.low


def _long_levels_hit(position: Position, bar: Bar) -> Optional[ExitTrigger]:
    stop = position.stop_price
    if stop is not None and bar.low <= stop:
        return ExitTrigger(ExitReason.STOP_LOSS, stop)

    target = position.take_profit_price
    if target is not None and bar.high >= target:
        return ExitTrigger(ExitReason.TAKE_PROFIT, target)

    trail = position.trailing_stop_price
    if trail is not None and bar.low <= trail:
        return ExitTrigger(ExitReason.TRAILING_STOP, trail)

    return None


def _short_levels_hit(position: Position, bar: Bar) -> Optional[ExitTrigger]:
    stop = position.stop_price
    if stop is not None and bar.high >= stop:
        return ExitTrigger(ExitReason.STOP_LOSS, stop)

    target = position.take_profit_price
    if target is not None and bar.low <= target:
        return ExitTrigger(ExitReason.TAKE_PROFIT, target)

    trail = position.trailing_stop_price
    if trail is not None and bar.high >= trail:
        return ExitTrigger(ExitReason.TRAILING_STOP, trail)

    return None


def check_exit_triggers(position: Position, bar: Bar) -> Optional[ExitTrigger]:
    """
    Update the watermark, then return the first exit trigger hit by bar.

    Args:
        position: Open position (watermark is mutated)
        bar: Current bar

    Returns:
        ExitTrigger or None
    """
    update_watermark(position, bar)
    if position.direction == Direction.LONG:
        return _long_levels_hit(position, bar)
    return _short_levels_hit(position, bar)


def exit_levels(position: Position) -> Tuple[Optional[float], Optional[float], Optional[float]]:
    """(stop, target, trail) price levels for display."""
    return position.stop_price, position.take_profit_price, position.trailing_stop_price
