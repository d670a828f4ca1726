"""
Risk sizing and pre-trade risk checks.

- sizing: stateless sizing helpers (volatility scaling, drawdown throttle, Kelly cap)
- policy: pluggable pre-trade risk policies
"""

from .sizing import (
    DrawdownThrottle,
    current_drawdown,
    drawdown_throttle,
    volatility_scalar,
    volatility_scaled_size,
    fixed_fractional_size,
    kelly_fraction,
    kelly_cap_size,
    cap_size_by_kelly,
)
from .policy import (
    RiskVeto,
    RiskDecision,
    RiskPolicy,
    NoneRiskPolicy,
    PreTradeRiskCheck,
    create_risk_policy,
)

__all__ = [
    "DrawdownThrottle",
    "current_drawdown",
    "drawdown_throttle",
    "volatility_scalar",
    "volatility_scaled_size",
    "fixed_fractional_size",
    "kelly_fraction",
    "kelly_cap_size",
    "cap_size_by_kelly",
    "RiskVeto",
    "RiskDecision",
    "RiskPolicy",
    "NoneRiskPolicy",
    "PreTradeRiskCheck",
    "create_risk_policy",
]
