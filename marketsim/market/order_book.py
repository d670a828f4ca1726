"""
Limit order book with price-priority matching.

Maintains resting liquidity per tick-quantized price level on each side and
matches market and limit orders against it. Knows nothing about regimes or
strategies; the simulators drive it.

Book invariants (hold after every public mutation):
- every stored level has quantity > QTY_EPSILON (drained levels are removed)
- best bid < best ask (placements that would cross are skipped)

Prices are stored as integer tick indices so level identity is exact; the
float price of a level is tick_index × tick_size rounded to the tick's decimals.
"""

import heapq
import math
from typing import Dict, List, Optional, Tuple, Union

from ..config.constants import DEFAULT_BOOK_LEVELS, DEFAULT_BASE_DEPTH, QTY_EPSILON
from ..utils.helpers import is_finite_positive, tick_decimals
from .types import BookFill, BookSide, LimitOrderResult, MarketOrderResult, Side, TopOfBook


class OrderBook:
    """
    Two-sided limit order book.

    Usage:
        book = OrderBook(tick_size=0.01, start_price=100.0)
        result = book.market_order("buy", 2.0)
        top = book.top_of_book()

    Single-threaded; each simulator instance owns its own book.
    """

    def __init__(
        self,
        tick_size: float = 0.01,
        start_price: float = 100.0,
        levels: int = DEFAULT_BOOK_LEVELS,
        base_depth: float = DEFAULT_BASE_DEPTH,
    ):
        """
        Initialize and seed the book around start_price.

        Args:
            tick_size: Minimum price increment
            start_price: Initial reference price
            levels: Seeded levels per side
            base_depth: Depth at the outermost seeded level; inner levels are deeper

        Raises:
            ValueError: On non-positive tick size or start price, or negative levels/depth
        """
        if not is_finite_positive(tick_size):
            raise ValueError(f"tick_size must be positive, got {tick_size}")
        if not is_finite_positive(start_price):
            raise ValueError(f"start_price must be positive, got {start_price}")
        if levels < 0:
            raise ValueError(f"levels must be >= 0, got {levels}")
        if not math.isfinite(base_depth) or base_depth < 0:
            raise ValueError(f"base_depth must be >= 0, got {base_depth}")

        self.tick_size = float(tick_size)
        self.levels = levels
        self.base_depth = float(base_depth)
        self._decimals = tick_decimals(self.tick_size)

        self._bids: Dict[int, float] = {}
        self._asks: Dict[int, float] = {}
        self.last_trade_price = self.quantize(start_price)

        self._seed(start_price)

    # ─────────────────────────────────────────────────────────────────────────
    # Price helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _to_tick(self, price: float) -> int:
        """Nearest tick index, never below 1."""
        return max(1, int(math.floor(price / self.tick_size + 0.5)))

    def _price(self, tick: int) -> float:
        return round(tick * self.tick_size, self._decimals)

    def quantize(self, price: float) -> float:
        """Round a price to the tick grid (minimum one tick)."""
        return self._price(self._to_tick(price))

    # ─────────────────────────────────────────────────────────────────────────
    # Best prices
    # ─────────────────────────────────────────────────────────────────────────

    def _best_bid_tick(self) -> Optional[int]:
        return max(self._bids) if self._bids else None

    def _best_ask_tick(self) -> Optional[int]:
        return min(self._asks) if self._asks else None

    def best_bid(self) -> Optional[float]:
        """Best bid price, or None when the bid side is empty."""
        tick = self._best_bid_tick()
        return self._price(tick) if tick is not None else None

    def best_ask(self) -> Optional[float]:
        """Best ask price, or None when the ask side is empty."""
        tick = self._best_ask_tick()
        return self._price(tick) if tick is not None else None

    def top_of_book(self) -> TopOfBook:
        """
        Best bid/ask, spread and mid.

        If either side is empty, a synthetic quote of last trade ± 1 tick is
        returned so callers never see an undefined spread.
        """
        bid = self.best_bid()
        ask = self.best_ask()
        if bid is None or ask is None:
            px = self.last_trade_price
            return TopOfBook(
                best_bid=px - self.tick_size,
                best_ask=px + self.tick_size,
                spread=self.tick_size * 2,
                mid=px,
            )
        return TopOfBook(best_bid=bid, best_ask=ask, spread=ask - bid, mid=(ask + bid) / 2)

    # ─────────────────────────────────────────────────────────────────────────
    # Level mutation
    # ─────────────────────────────────────────────────────────────────────────

    def _seed(self, mid: float):
        mid_tick = self._to_tick(mid)
        for i in range(1, self.levels + 1):
            depth = self.base_depth * (1 + 0.04 * (self.levels - i))
            if depth <= QTY_EPSILON:
                continue
            if mid_tick - i >= 1:
                self._bids[mid_tick - i] = depth
            self._asks[mid_tick + i] = depth

    def _add(self, side: BookSide, tick: int, quantity: float) -> bool:
        """
        Add resting quantity at a level.

        Skips (returns False) when the quantity is not a positive finite number,
        the tick is below 1, or the placement would cross the opposing best.
        """
        if not is_finite_positive(quantity) or tick < 1:
            return False
        if side == BookSide.BID:
            best_ask = self._best_ask_tick()
            if best_ask is not None and tick >= best_ask:
                return False
            self._bids[tick] = self._bids.get(tick, 0.0) + quantity
        else:
            best_bid = self._best_bid_tick()
            if best_bid is not None and tick <= best_bid:
                return False
            self._asks[tick] = self._asks.get(tick, 0.0) + quantity
        return True

    def _match(
        self,
        side: Side,
        quantity: float,
        limit_tick: Optional[int] = None,
    ) -> Tuple[float, float, List[BookFill]]:
        """
        Consume opposing levels best-first.

        Args:
            side: Aggressor side
            quantity: Quantity to fill
            limit_tick: Worst acceptable level (None = no limit)

        Returns:
            (filled, notional, fills)
        """
        book = self._asks if side == Side.BUY else self._bids
        remaining = quantity
        filled = 0.0
        notional = 0.0
        fills: List[BookFill] = []

        while remaining > QTY_EPSILON and book:
            best = min(book) if side == Side.BUY else max(book)
            if limit_tick is not None:
                if side == Side.BUY and best > limit_tick:
                    break
                if side == Side.SELL and best < limit_tick:
                    break

            available = book[best]
            take = min(available, remaining)
            left = available - take
            if left <= QTY_EPSILON:
                del book[best]
            else:
                book[best] = left

            price = self._price(best)
            remaining -= take
            filled += take
            notional += take * price
            self.last_trade_price = price
            fills.append(BookFill(price=price, size=take, side=side))

        return filled, notional, fills

    # ─────────────────────────────────────────────────────────────────────────
    # Orders
    # ─────────────────────────────────────────────────────────────────────────

    def market_order(self, side: Union[Side, str], quantity: float) -> MarketOrderResult:
        """
        Execute a market order, walking levels from the best opposing price outward.

        Args:
            side: "buy" consumes asks, "sell" consumes bids
            quantity: Requested base quantity

        Returns:
            MarketOrderResult with filled qty, VWAP (last trade price when
            nothing filled), per-level fills and unfilled remainder
        """
        side = Side(side)
        if not is_finite_positive(quantity):
            return MarketOrderResult(avg_price=self.last_trade_price)

        filled, notional, fills = self._match(side, quantity)
        return MarketOrderResult(
            filled=filled,
            avg_price=notional / filled if filled > 0 else self.last_trade_price,
            fills=fills,
            unfilled=max(0.0, quantity - filled),
        )

    def limit_order(self, side: Union[Side, str], price: float, quantity: float) -> LimitOrderResult:
        """
        Place a limit order.

        A limit that crosses the opposing best executes immediately against
        levels up to the limit price; any remainder rests at the limit.

        Args:
            side: "buy" or "sell"
            price: Limit price (quantized to the tick grid)
            quantity: Base quantity

        Returns:
            LimitOrderResult (posted = quantity resting after the call)
        """
        side = Side(side)
        if not is_finite_positive(price):
            return LimitOrderResult()
        tick = self._to_tick(price)
        result = LimitOrderResult(price=self._price(tick))
        if not is_finite_positive(quantity):
            return result

        filled, notional, fills = self._match(side, quantity, limit_tick=tick)
        remaining = quantity - filled
        if filled > 0:
            result.filled = filled
            result.avg_price = notional / filled
            result.fills = fills

        if remaining > QTY_EPSILON:
            book_side = BookSide.BID if side == Side.BUY else BookSide.ASK
            if self._add(book_side, tick, remaining):
                result.posted = remaining

        return result

    # ─────────────────────────────────────────────────────────────────────────
    # Liquidity maintenance
    # ─────────────────────────────────────────────────────────────────────────

    def add_liquidity(
        self,
        side: Union[BookSide, str],
        levels: int = 3,
        quantity_per_level: float = 20.0,
    ):
        """
        Replenish one side behind its current best.

        Level i (1-based) ticks away from the best receives quantity_per_level / i.
        """
        side = BookSide(side)
        top = self.top_of_book()
        if side == BookSide.BID:
            base = self._to_tick(top.best_bid)
            for i in range(1, levels + 1):
                self._add(BookSide.BID, base - i, quantity_per_level / i)
        else:
            base = self._to_tick(top.best_ask)
            for i in range(1, levels + 1):
                self._add(BookSide.ASK, base + i, quantity_per_level / i)

    def quote_around(self, mid: float, levels: int = 4, quantity: float = 45.0):
        """Symmetric market-maker quotes around mid, decaying as quantity / i."""
        center = self._to_tick(mid)
        for i in range(1, levels + 1):
            self._add(BookSide.BID, center - i, quantity / i)
            self._add(BookSide.ASK, center + i, quantity / i)

    def tighten_spread(self, target_ticks: int = 2, quantity: float = 50.0):
        """
        Pull the spread back toward target_ticks.

        When the current spread is wider than the target, quotes of `quantity`
        are injected max(1, target_ticks // 2) ticks either side of the last trade.
        """
        top = self.top_of_book()
        current_ticks = max(1, int(math.floor(top.spread / self.tick_size + 0.5)))
        if current_ticks <= target_ticks:
            return

        mid = self.last_trade_price or top.mid
        half = max(1, target_ticks // 2)
        center = self._to_tick(mid)
        self._add(BookSide.BID, center - half, quantity)
        self._add(BookSide.ASK, center + half, quantity)

    def prune(self, reference_price: float, keep_levels: int = 80):
        """Evict bids below and asks above reference ± keep_levels ticks."""
        center = self._to_tick(reference_price)
        min_bid = center - keep_levels
        max_ask = center + keep_levels
        for tick in [t for t in self._bids if t < min_bid]:
            del self._bids[tick]
        for tick in [t for t in self._asks if t > max_ask]:
            del self._asks[tick]

    # ─────────────────────────────────────────────────────────────────────────
    # Inspection
    # ─────────────────────────────────────────────────────────────────────────

    def total_depth(self, levels: int = 5) -> Tuple[float, float]:
        """Summed quantity over the best `levels` levels: (bid_depth, ask_depth)."""
        bid_ticks = heapq.nlargest(levels, self._bids)
        ask_ticks = heapq.nsmallest(levels, self._asks)
        bid_depth = sum(self._bids[t] for t in bid_ticks)
        ask_depth = sum(self._asks[t] for t in ask_ticks)
        return bid_depth, ask_depth

    def depth(self, side: Union[BookSide, str], levels: Optional[int] = None) -> List[Tuple[float, float]]:
        """
        Price levels best-first as (price, quantity).

        Args:
            side: "bid" or "ask"
            levels: Limit to the best N levels (None = all)
        """
        side = BookSide(side)
        if side == BookSide.BID:
            ticks = sorted(self._bids, reverse=True)
            book = self._bids
        else:
            ticks = sorted(self._asks)
            book = self._asks
        if levels is not None:
            ticks = ticks[:levels]
        return [(self._price(t), book[t]) for t in ticks]

    def level_count(self) -> Tuple[int, int]:
        return len(self._bids), len(self._asks)
