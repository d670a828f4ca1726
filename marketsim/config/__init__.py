"""
Configuration module.
"""

from .config import (
    MarketConfig,
    OrderFlowConfig,
    TradingConfig,
    RiskLimits,
    SimConfig,
    config_from_dict,
    load_config,
    load_env,
    get_log_settings,
)

__all__ = [
    "MarketConfig",
    "OrderFlowConfig",
    "TradingConfig",
    "RiskLimits",
    "SimConfig",
    "config_from_dict",
    "load_config",
    "load_env",
    "get_log_settings",
]
