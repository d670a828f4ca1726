"""
Core types for the simulated market.

Provides the shared market-side types:
- Side, BookSide, Regime: Enums
- BookFill, TopOfBook, MarketOrderResult, LimitOrderResult: Order book results
- Bar: Immutable OHLCV candle with optional order-flow metadata
- Tick: Single trade print from the tick simulator

Type design principles:
- Immutable where possible (frozen dataclasses)
- Validated on construction (an invalid Bar cannot exist)
- Serializable (to_dict methods)
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────

class Side(str, Enum):
    """Aggressor side of an order."""
    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> "Side":
        return Side.SELL if self is Side.BUY else Side.BUY


class BookSide(str, Enum):
    """Resting side of the book."""
    BID = "bid"
    ASK = "ask"


class Regime(str, Enum):
    """Market regime label."""
    BULL = "bull"
    BEAR = "bear"
    SIDEWAYS = "sideways"
    SWING = "swing"
    BREAKOUT = "breakout"
    CRASH = "crash"


REGIME_NAMES: List[str] = [r.value for r in Regime]


# ─────────────────────────────────────────────────────────────────────────────
# Order book results
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BookFill:
    """One execution against a single price level."""
    price: float
    size: float
    side: Side

    def to_dict(self) -> Dict[str, Any]:
        return {"price": self.price, "size": self.size, "side": self.side.value}


@dataclass(frozen=True)
class TopOfBook:
    """Best bid/ask snapshot. Never undefined; empty sides fall back to last trade ± 1 tick."""
    best_bid: float
    best_ask: float
    spread: float
    mid: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "best_bid": self.best_bid,
            "best_ask": self.best_ask,
            "spread": self.spread,
            "mid": self.mid,
        }


@dataclass
class MarketOrderResult:
    """Result of walking the book with a market order."""
    filled: float = 0.0
    avg_price: float = 0.0
    fills: List[BookFill] = field(default_factory=list)
    unfilled: float = 0.0

    @property
    def last_price(self) -> Optional[float]:
        return self.fills[-1].price if self.fills else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filled": self.filled,
            "avg_price": self.avg_price,
            "fills": [f.to_dict() for f in self.fills],
            "unfilled": self.unfilled,
        }


@dataclass
class LimitOrderResult:
    """
    Result of a limit order.

    A marketable limit fills first (filled/fills) and rests any remainder
    (posted) at the limit price.
    """
    price: float = 0.0
    posted: float = 0.0
    filled: float = 0.0
    avg_price: Optional[float] = None
    fills: List[BookFill] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": self.price,
            "posted": self.posted,
            "filled": self.filled,
            "avg_price": self.avg_price,
            "fills": [f.to_dict() for f in self.fills],
        }


# ─────────────────────────────────────────────────────────────────────────────
# Bar
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Bar:
    """
    OHLCV candle.

    Invariants (enforced on construction):
    - all prices finite
    - low > 0
    - low <= min(open, close) and high >= max(open, close)

    Order-flow fields are populated by the order-flow simulator only.
    """
    index: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    regime: Optional[Regime] = None
    timestamp_ms: int = 0

    # Order-flow metadata
    best_bid: Optional[float] = None
    best_ask: Optional[float] = None
    spread: Optional[float] = None
    mid: Optional[float] = None
    imbalance: Optional[float] = None
    bid_depth: Optional[float] = None
    ask_depth: Optional[float] = None

    def __post_init__(self):
        for name in ("open", "high", "low", "close", "volume"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise ValueError(f"Bar {self.index}: {name} must be finite, got {value}")
        if self.low <= 0:
            raise ValueError(f"Bar {self.index}: low must be > 0, got {self.low}")
        if self.low > min(self.open, self.close):
            raise ValueError(
                f"Bar {self.index}: low {self.low} above min(open, close) {min(self.open, self.close)}"
            )
        if self.high < max(self.open, self.close):
            raise ValueError(
                f"Bar {self.index}: high {self.high} below max(open, close) {max(self.open, self.close)}"
            )
        if self.volume < 0:
            raise ValueError(f"Bar {self.index}: volume must be >= 0, got {self.volume}")

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "timestamp_ms": self.timestamp_ms,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "regime": self.regime.value if self.regime else None,
            "best_bid": self.best_bid,
            "best_ask": self.best_ask,
            "spread": self.spread,
            "mid": self.mid,
            "imbalance": self.imbalance,
            "bid_depth": self.bid_depth,
            "ask_depth": self.ask_depth,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Tick
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Tick:
    """Single trade print (or quote update when size is 0)."""
    timestamp_ms: int
    price: float
    size: float
    side: Side
    best_bid: float
    best_ask: float
    mid: float
    spread: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp_ms": self.timestamp_ms,
            "price": self.price,
            "size": self.size,
            "side": self.side.value,
            "best_bid": self.best_bid,
            "best_ask": self.best_ask,
            "mid": self.mid,
            "spread": self.spread,
        }
