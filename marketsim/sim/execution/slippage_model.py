"""
Slippage model for market-order execution.

Slippage direction:
- Buys (long entry, short exit): pay more (price increases)
- Sells (short entry, long exit): receive less (price decreases)

The rate passed in may already include market impact; the model only
applies it in the adverse direction.
"""

from dataclasses import dataclass
from typing import Optional

from ..types import Direction, Side

# Adverse offsets are capped below 100% so sell prices stay positive
MAX_TOTAL_RATE = 0.99


@dataclass
class SlippageConfig:
    """Configuration for slippage model."""
    slippage_pct: float = 0.05  # Fixed slippage in percent of the reference price


class SlippageModel:
    """Applies fixed-rate slippage (plus any extra impact rate) to fills."""

    def __init__(self, config: Optional[SlippageConfig] = None):
        self._config = config or SlippageConfig()

    @property
    def slippage_rate(self) -> float:
        """Slippage rate as decimal (e.g. 0.0005 for 0.05%)."""
        return self._config.slippage_pct / 100.0

    def _total_rate(self, extra_rate: float) -> float:
        return min(self.slippage_rate + max(0.0, extra_rate), MAX_TOTAL_RATE)

    def apply_slippage(self, price: float, side: Side, extra_rate: float = 0.0) -> float:
        """
        Apply slippage to an entry price.

        Args:
            price: Reference price
            side: Order side
            extra_rate: Additional adverse rate (market impact)

        Returns:
            Execution price
        """
        rate = self._total_rate(extra_rate)
        if side == Side.BUY:
            return price * (1 + rate)
        return price * (1 - rate)

    def apply_exit_slippage(self, price: float, direction: Direction, extra_rate: float = 0.0) -> float:
        """
        Apply slippage to an exit price.

        Exiting a long sells (receive less); exiting a short buys (pay more).
        """
        return self.apply_slippage(price, direction.exit_side, extra_rate)
