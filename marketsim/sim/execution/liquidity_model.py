"""
Liquidity model for partial fills.

Every entry fills at partial_fill_ratio of its requested size; the rest is
cancelled (it is never queued for a later bar).
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class LiquidityConfig:
    """Configuration for liquidity model."""
    partial_fill_ratio: float = 1.0  # Fraction of each order that fills, (0, 1]


class LiquidityModel:
    """Scales requested entry sizes by the configured fill ratio."""

    def __init__(self, config: Optional[LiquidityConfig] = None):
        self._config = config or LiquidityConfig()

    @property
    def partial_fill_ratio(self) -> float:
        return self._config.partial_fill_ratio

    def get_fill_size(self, size: float) -> float:
        """
        Size that actually fills.

        Args:
            size: Requested size in base units

        Returns:
            Filled size (<= size)
        """
        if self._config.partial_fill_ratio >= 1.0:
            return size
        return size * self._config.partial_fill_ratio
