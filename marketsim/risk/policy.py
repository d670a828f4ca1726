"""
Pre-trade risk policies.

Provides pluggable risk policies:
- NoneRiskPolicy: Always allow intents (pure strategy backtest)
- PreTradeRiskCheck: Apply RiskLimits (position count, drawdown circuit
  breaker, single-position size, total leverage exposure)

Close intents are always allowed: a risk policy may stop a strategy from
adding risk, never from reducing it.

Usage:
    policy = create_risk_policy(config.risk, is_futures=True)
    decision = policy.check(intent, engine.snapshot(), bar.close, initial_equity)
    if decision.allowed:
        engine.submit(intent)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ..config.config import RiskLimits
from ..sim.types import AccountSnapshot, CloseOrder, OrderIntent
from ..utils.helpers import safe_div


class RiskVeto(str, Enum):
    """Reasons for vetoing an intent."""
    NONE = "none"
    POSITION_LIMIT = "position_limit"
    DRAWDOWN_LIMIT = "drawdown_limit"
    POSITION_SIZE_LIMIT = "position_size_limit"
    EXPOSURE_LIMIT = "exposure_limit"


@dataclass
class RiskDecision:
    """
    Result of a pre-trade risk check.

    Indicates whether an intent should proceed and why it was blocked.
    """
    allowed: bool
    veto_reason: RiskVeto = RiskVeto.NONE
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(cls, message: str = "") -> "RiskDecision":
        """Create an allowing decision."""
        return cls(allowed=True, message=message or "Intent allowed")

    @classmethod
    def deny(cls, reason: RiskVeto, message: str, **details) -> "RiskDecision":
        """Create a denying decision."""
        return cls(allowed=False, veto_reason=reason, message=message, details=details)


class RiskPolicy(ABC):
    """
    Abstract base class for risk policies.

    Strategies emit intents, the risk policy decides if they reach the engine.
    """

    @abstractmethod
    def check(
        self,
        intent: OrderIntent,
        snapshot: AccountSnapshot,
        price: float,
        initial_equity: Optional[float] = None,
        default_size: Optional[float] = None,
    ) -> RiskDecision:
        """
        Check if an intent should be allowed.

        Args:
            intent: Intent under evaluation
            snapshot: Current account state
            price: Reference price (current bar close)
            initial_equity: Starting equity for the drawdown breaker
            default_size: Size the engine would use when the intent has none

        Returns:
            RiskDecision with allowed/denied status
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """Policy name for logging."""


class NoneRiskPolicy(RiskPolicy):
    """Always-allow risk policy."""

    def check(self, intent, snapshot, price, initial_equity=None, default_size=None) -> RiskDecision:
        return RiskDecision.allow("NoneRiskPolicy: all intents allowed")

    @property
    def name(self) -> str:
        return "none"


class PreTradeRiskCheck(RiskPolicy):
    """
    Limit-based pre-trade checks, in order:

    1. Open positions >= max_positions
    2. Drawdown from initial equity >= max_drawdown_pct
    3. Intent notional > max_single_position_pct of equity (explicit sizes only)
    4. Futures only: (open notional + intent notional) > max_leverage_exposure_pct of equity

    The first failing check vetoes the intent.
    """

    def __init__(self, limits: Optional[RiskLimits] = None, is_futures: bool = True):
        self._limits = limits or RiskLimits()
        self._is_futures = is_futures

    @property
    def limits(self) -> RiskLimits:
        return self._limits

    @property
    def name(self) -> str:
        return "limits"

    def check(
        self,
        intent: OrderIntent,
        snapshot: AccountSnapshot,
        price: float,
        initial_equity: Optional[float] = None,
        default_size: Optional[float] = None,
    ) -> RiskDecision:
        if isinstance(intent, CloseOrder):
            return RiskDecision.allow("Close intents are always allowed")

        limits = self._limits
        equity = snapshot.equity

        # Check 1: position count
        open_count = len(snapshot.positions)
        if open_count >= limits.max_positions:
            return RiskDecision.deny(
                RiskVeto.POSITION_LIMIT,
                f"Max positions ({limits.max_positions}) reached",
                position_count=open_count,
                limit=limits.max_positions,
            )

        # Check 2: drawdown circuit breaker
        reference = initial_equity if initial_equity else snapshot.balance
        drawdown_pct = safe_div(reference - equity, reference) * 100.0
        if drawdown_pct >= limits.max_drawdown_pct:
            return RiskDecision.deny(
                RiskVeto.DRAWDOWN_LIMIT,
                f"Drawdown {drawdown_pct:.1f}% exceeds limit {limits.max_drawdown_pct}%",
                drawdown_pct=drawdown_pct,
                limit=limits.max_drawdown_pct,
            )

        # Check 3: single position size
        if intent.size:
            position_pct = safe_div(intent.size * price, equity, default=float("inf")) * 100.0
            if position_pct > limits.max_single_position_pct:
                return RiskDecision.deny(
                    RiskVeto.POSITION_SIZE_LIMIT,
                    f"Position {position_pct:.0f}% of equity exceeds limit {limits.max_single_position_pct}%",
                    position_pct=position_pct,
                    limit=limits.max_single_position_pct,
                )

        # Check 4: total leverage exposure
        if self._is_futures:
            size = intent.size or default_size or 0.0
            exposure_pct = safe_div(
                snapshot.open_notional + size * price, equity, default=float("inf")
            ) * 100.0
            if exposure_pct > limits.max_leverage_exposure_pct:
                return RiskDecision.deny(
                    RiskVeto.EXPOSURE_LIMIT,
                    f"Leverage exposure {exposure_pct:.0f}% exceeds limit",
                    exposure_pct=exposure_pct,
                    limit=limits.max_leverage_exposure_pct,
                )

        return RiskDecision.allow()


def create_risk_policy(limits: Optional[RiskLimits] = None, is_futures: bool = True) -> RiskPolicy:
    """
    Factory function to create the configured risk policy.

    Args:
        limits: Risk limits (None or enabled=False gives NoneRiskPolicy)
        is_futures: Whether the exposure check applies

    Returns:
        RiskPolicy instance
    """
    if limits is None or not limits.enabled:
        return NoneRiskPolicy()
    return PreTradeRiskCheck(limits, is_futures)
