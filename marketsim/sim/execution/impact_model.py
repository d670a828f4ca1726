"""
Market impact model.

Estimates extra adverse price movement from order notional relative to the
bar's traded notional (volume × close):

    impact_rate = min(factor × sqrt(order_notional / bar_notional), max_bps / 10000)

Impact is additive to slippage. Volume is used ONLY for liquidity/impact
estimation, never for directional inference.
"""

import math
from dataclasses import dataclass
from typing import Optional

from ...market.types import Bar


@dataclass
class ImpactConfig:
    """Configuration for impact model."""
    mode: str = "disabled"  # "disabled" or "sqrt"
    sqrt_factor: float = 0.1
    max_impact_bps: float = 100.0  # Cap on impact (1%)


class ImpactModel:
    """Square-root market impact, capped."""

    def __init__(self, config: Optional[ImpactConfig] = None):
        self._config = config or ImpactConfig()

    @property
    def enabled(self) -> bool:
        return self._config.mode != "disabled"

    def get_impact_rate(self, notional: float, bar: Bar) -> float:
        """
        Impact as a decimal rate for an order of the given notional.

        Returns 0 when disabled or when the bar has no usable volume.
        """
        if not self.enabled or notional <= 0 or not math.isfinite(notional):
            return 0.0

        bar_notional = bar.volume * bar.close
        if bar_notional <= 0 or not math.isfinite(bar_notional):
            return 0.0

        impact = self._config.sqrt_factor * math.sqrt(notional / bar_notional)
        return min(impact, self._config.max_impact_bps / 10000.0)

    def get_impact_bps(self, notional: float, bar: Bar) -> float:
        return self.get_impact_rate(notional, bar) * 10000.0
