"""
Liquidation handling.

Forced closure at the isolated-margin liquidation price.
"""

from .liquidation_model import LiquidationModel, LiquidationModelConfig

__all__ = [
    "LiquidationModel",
    "LiquidationModelConfig",
]
