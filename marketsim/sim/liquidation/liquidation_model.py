"""
Liquidation model for isolated-margin futures positions.

Liquidation price (isolated margin, fees ignored):
- Long:  entry × (1 - 1/leverage + mmr)
- Short: entry × (1 + 1/leverage - mmr)

A long is liquidated when the bar's low reaches its liquidation price, a
short when the bar's high does. The position's entire margin is forfeited:
realized PnL is exactly -margin, with no slippage and no exit fee.

Spot positions are never liquidated.
"""

from dataclasses import dataclass
from typing import Optional

from ...market.types import Bar
from ..types import Direction, Position


@dataclass
class LiquidationModelConfig:
    """Configuration for liquidation model."""
    leverage: float = 10.0
    maintenance_margin_rate: float = 0.005


class LiquidationModel:
    """
    Computes liquidation prices and checks breaches.

    Liquidation is checked after stop, target and trail: a position whose
    stop lies beyond its liquidation price still exits at the stop when
    both are touched in the same bar.
    """

    def __init__(self, config: Optional[LiquidationModelConfig] = None):
        """
        Initialize liquidation model.

        Args:
            config: Optional configuration
        """
        self._config = config or LiquidationModelConfig()

    def calculate_liquidation_price(self, entry_price: float, direction: Direction) -> float:
        """
        Calculate the liquidation price for a new position.

        Args:
            entry_price: Executed entry price
            direction: Position direction

        Returns:
            Liquidation price
        """
        distance = 1.0 / self._config.leverage - self._config.maintenance_margin_rate
        if direction == Direction.LONG:
            return entry_price * (1 - distance)
        return entry_price * (1 + distance)

    def is_breached(self, position: Position, bar: Bar) -> bool:
        """True if bar trades through the position's liquidation price."""
        liq = position.liquidation_price
        if liq is None:
            return False
        if position.direction == Direction.LONG:
            return bar.low <= liq
        return bar.high >= liq
