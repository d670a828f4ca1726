"""
Execution models for the trading engine.

Prices entries and exits with slippage, impact and partial fills.

Modules:
- execution_model: Entry/exit pricing, fees, margin, resize-to-affordable
- slippage_model: Fixed-rate adverse slippage
- impact_model: Square-root market impact
- liquidity_model: Partial fill ratio
"""

from .slippage_model import SlippageModel, SlippageConfig
from .impact_model import ImpactModel, ImpactConfig
from .liquidity_model import LiquidityModel, LiquidityConfig
from .execution_model import ExecutionModel, ExecutionModelConfig

__all__ = [
    "ExecutionModel",
    "ExecutionModelConfig",
    "SlippageModel",
    "SlippageConfig",
    "ImpactModel",
    "ImpactConfig",
    "LiquidityModel",
    "LiquidityConfig",
]
