"""
Core types for the trading engine.

Provides all shared trading types, intents, events and snapshots:
- Direction, ExitReason: Enums
- OpenOrder, CloseOrder (OrderIntent): Tagged order intents from strategies
- Position, PositionView: Open position (mutable, engine-owned) and its read-only view
- ClosedTrade, LiquidationEvent: Immutable exit records
- EntryFill, ExitFill, EntryResult: Execution results
- AccountSnapshot, ProcessResult: State snapshots

Type design principles:
- Immutable where possible (frozen dataclasses)
- Intents are a closed union; the engine dispatches on type, not on strings
- Serializable (to_dict methods)

Currency model: sizes are base-asset units, money is quote currency.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from ..market.types import Side


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────

class Direction(str, Enum):
    """Position direction."""
    LONG = "long"
    SHORT = "short"

    @classmethod
    def from_side(cls, side: Side) -> "Direction":
        return cls.LONG if Side(side) == Side.BUY else cls.SHORT

    @property
    def sign(self) -> float:
        return 1.0 if self is Direction.LONG else -1.0

    @property
    def exit_side(self) -> Side:
        """Side of the order that closes this direction."""
        return Side.SELL if self is Direction.LONG else Side.BUY


class ExitReason(str, Enum):
    """Why a position was closed."""
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    TRAILING_STOP = "trailing_stop"
    SIGNAL = "signal"
    LIQUIDATION = "liquidation"


# ─────────────────────────────────────────────────────────────────────────────
# Order intents
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class OpenOrder:
    """
    Intent to open a position at the current bar's close.

    Attributes:
        side: buy opens a long, sell opens a short
        size: Base units (None = engine default sizing)
        stop_loss: Stop distance in percent of entry (None = engine default, 0 = off)
        take_profit: Target distance in percent of entry (None = default, 0 = off)
        trailing_stop: Trail distance in percent of the watermark (None = default, 0 = off)
    """
    side: Side
    size: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    trailing_stop: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "side", Side(self.side))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "open",
            "side": self.side.value,
            "size": self.size,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "trailing_stop": self.trailing_stop,
        }


@dataclass(frozen=True)
class CloseOrder:
    """
    Intent to close positions at the current bar's close.

    position_id selects one position; otherwise side=sell closes all longs
    and side=buy closes all shorts.
    """
    side: Optional[Side] = None
    position_id: Optional[int] = None

    def __post_init__(self):
        if self.side is not None:
            object.__setattr__(self, "side", Side(self.side))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "close",
            "side": self.side.value if self.side else None,
            "position_id": self.position_id,
        }


OrderIntent = Union[OpenOrder, CloseOrder]


def intent_from_dict(data: Dict[str, Any]) -> OrderIntent:
    """
    Build an intent from a plain mapping.

    {"close": true, "side": "sell"} or {"close": true, "position_id": 3}
    build a CloseOrder; anything else an OpenOrder.

    Raises:
        ValueError: On an unknown side
    """
    if data.get("close") or data.get("type") == "close":
        return CloseOrder(side=data.get("side"), position_id=data.get("position_id"))
    return OpenOrder(
        side=data["side"],
        size=data.get("size"),
        stop_loss=data.get("stop_loss"),
        take_profit=data.get("take_profit"),
        trailing_stop=data.get("trailing_stop"),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Position
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class Position:
    """
    Currently open position.

    Owned and mutated exclusively by the TradingEngine (watermark and
    unrealized PnL change every bar). Strategies see PositionView copies.
    """
    position_id: int
    direction: Direction
    entry_price: float
    size: float
    notional: float
    margin: float
    entry_fee: float
    stop_loss_pct: float
    take_profit_pct: float
    trailing_stop_pct: float
    trail_high: float
    trail_low: float
    entry_bar: int
    liquidation_price: Optional[float] = None
    unrealized_pnl: float = 0.0

    def pnl_at(self, price: float) -> float:
        """Price PnL if closed at price (no fees)."""
        return (price - self.entry_price) * self.size * self.direction.sign

    @property
    def stop_price(self) -> Optional[float]:
        if self.stop_loss_pct <= 0:
            return None
        return self.entry_price * (1 - self.direction.sign * self.stop_loss_pct / 100.0)

    @property
    def take_profit_price(self) -> Optional[float]:
        if self.take_profit_pct <= 0:
            return None
        return self.entry_price * (1 + self.direction.sign * self.take_profit_pct / 100.0)

    @property
    def trailing_stop_price(self) -> Optional[float]:
        if self.trailing_stop_pct <= 0:
            return None
        if self.direction == Direction.LONG:
            return self.trail_high * (1 - self.trailing_stop_pct / 100.0)
        return self.trail_low * (1 + self.trailing_stop_pct / 100.0)

    def view(self) -> "PositionView":
        return PositionView(
            position_id=self.position_id,
            direction=self.direction,
            entry_price=self.entry_price,
            size=self.size,
            notional=self.notional,
            margin=self.margin,
            entry_fee=self.entry_fee,
            stop_loss_pct=self.stop_loss_pct,
            take_profit_pct=self.take_profit_pct,
            trailing_stop_pct=self.trailing_stop_pct,
            trail_high=self.trail_high,
            trail_low=self.trail_low,
            entry_bar=self.entry_bar,
            liquidation_price=self.liquidation_price,
            unrealized_pnl=self.unrealized_pnl,
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.view().to_dict()


@dataclass(frozen=True)
class PositionView:
    """Read-only copy of a Position handed to strategies."""
    position_id: int
    direction: Direction
    entry_price: float
    size: float
    notional: float
    margin: float
    entry_fee: float
    stop_loss_pct: float
    take_profit_pct: float
    trailing_stop_pct: float
    trail_high: float
    trail_low: float
    entry_bar: int
    liquidation_price: Optional[float]
    unrealized_pnl: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_id": self.position_id,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "size": self.size,
            "notional": self.notional,
            "margin": self.margin,
            "entry_fee": self.entry_fee,
            "stop_loss_pct": self.stop_loss_pct,
            "take_profit_pct": self.take_profit_pct,
            "trailing_stop_pct": self.trailing_stop_pct,
            "trail_high": self.trail_high,
            "trail_low": self.trail_low,
            "entry_bar": self.entry_bar,
            "liquidation_price": self.liquidation_price,
            "unrealized_pnl": self.unrealized_pnl,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Exit records
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ClosedTrade:
    """
    Completed trade.

    realized_pnl is the price PnL of the round trip (exactly -margin for a
    liquidation); fees covers entry + exit. Balance accounting closes as
    final = initial - sum(fees) + sum(realized_pnl).
    """
    position_id: int
    direction: Direction
    entry_price: float
    exit_price: float
    size: float
    realized_pnl: float
    fees: float
    entry_bar: int
    exit_bar: int
    reason: ExitReason
    stop_loss_pct: float = 0.0
    margin: float = 0.0

    @property
    def net_pnl(self) -> float:
        """Realized PnL net of entry and exit fees."""
        return self.realized_pnl - self.fees

    @property
    def duration_bars(self) -> int:
        return self.exit_bar - self.entry_bar

    @property
    def is_win(self) -> bool:
        return self.net_pnl > 0

    @property
    def risk_amount(self) -> float:
        """Quote amount at risk at the stop (0 without a stop)."""
        return self.entry_price * (self.stop_loss_pct / 100.0) * self.size

    @property
    def r_multiple(self) -> Optional[float]:
        risk = self.risk_amount
        if risk <= 0:
            return None
        return self.net_pnl / risk

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_id": self.position_id,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "size": self.size,
            "realized_pnl": self.realized_pnl,
            "fees": self.fees,
            "net_pnl": self.net_pnl,
            "entry_bar": self.entry_bar,
            "exit_bar": self.exit_bar,
            "reason": self.reason.value,
            "stop_loss_pct": self.stop_loss_pct,
            "margin": self.margin,
        }


@dataclass(frozen=True)
class LiquidationEvent:
    """Forced liquidation of one position (a first-class output, not an error)."""
    position_id: int
    direction: Direction
    bar_index: int
    entry_price: float
    liquidation_price: float
    size: float
    margin_lost: float
    trade: ClosedTrade

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_id": self.position_id,
            "direction": self.direction.value,
            "bar_index": self.bar_index,
            "entry_price": self.entry_price,
            "liquidation_price": self.liquidation_price,
            "size": self.size,
            "margin_lost": self.margin_lost,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Execution results
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EntryFill:
    """Priced entry, ready to be posted to the account."""
    side: Side
    price: float
    size: float
    notional: float
    fee: float
    margin: float
    slippage_cost: float
    resized: bool = False


@dataclass(frozen=True)
class ExitFill:
    """Priced exit of a position."""
    price: float
    fee: float
    gross_pnl: float
    slippage_cost: float


@dataclass
class EntryResult:
    """Entry fill or the reason the order was dropped."""
    fill: Optional[EntryFill] = None
    rejection: Optional[str] = None

    @classmethod
    def filled(cls, fill: EntryFill) -> "EntryResult":
        return cls(fill=fill)

    @classmethod
    def rejected(cls, reason: str) -> "EntryResult":
        return cls(rejection=reason)


# ─────────────────────────────────────────────────────────────────────────────
# Snapshots
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AccountSnapshot:
    """Read-only account state."""
    balance: float
    equity: float
    margin_in_use: float
    unrealized_pnl: float
    total_fees: float
    positions: Tuple[PositionView, ...] = ()
    exposed_bars: int = 0
    total_bars: int = 0

    @property
    def open_notional(self) -> float:
        return sum(p.notional for p in self.positions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "balance": self.balance,
            "equity": self.equity,
            "margin_in_use": self.margin_in_use,
            "unrealized_pnl": self.unrealized_pnl,
            "total_fees": self.total_fees,
            "positions": [p.to_dict() for p in self.positions],
            "exposed_bars": self.exposed_bars,
            "total_bars": self.total_bars,
        }


@dataclass
class ProcessResult:
    """What one process_orders() call did."""
    opened: List[Position] = field(default_factory=list)
    closed: List[ClosedTrade] = field(default_factory=list)
    dropped: int = 0


def is_valid_exit_pct(value: Optional[float]) -> bool:
    """None (use default) or a finite percent in [0, 100)."""
    if value is None:
        return True
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and 0 <= value < 100
