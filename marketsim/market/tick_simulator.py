"""
Tick-level order-flow generator.

Emits one Tick per event (trade print or liquidity update) from a Poisson
arrival process against an OrderBook, for consumers that want prints
rather than bars. Pair with CandleAggregator to build candles of any length.
"""

import math
from typing import List, Optional

from ..config.config import MarketConfig, OrderFlowConfig
from ..utils.helpers import clamp
from .order_book import OrderBook
from .rng import Mulberry32
from .types import BookSide, Side, Tick

TICK_SPREAD_TARGET = 4
TICK_SPREAD_QTY = 45.0
TICK_PRUNE_LEVELS = 90
MIN_TICK_ORDER_SIZE = 0.1


class TickSimulator:
    """
    Poisson order-flow tick generator.

    Usage:
        sim = TickSimulator(MarketConfig(seed=1))
        ticks = [sim.next_tick() for _ in range(1000)]
    """

    def __init__(
        self,
        config: Optional[MarketConfig] = None,
        flow: Optional[OrderFlowConfig] = None,
        start_ts_ms: int = 0,
    ):
        self.config = config or MarketConfig()
        self.flow = flow or OrderFlowConfig()
        self.rng = Mulberry32(self.config.seed)
        self.tick_size = self.config.tick_size
        self.start_price = self.config.start_price
        self.price = self.start_price
        self.time_ms = float(start_ts_ms)
        self.book = OrderBook(
            tick_size=self.tick_size,
            start_price=self.start_price,
            levels=self.flow.book_levels,
            base_depth=self.flow.base_depth,
        )

    def _order_size(self) -> float:
        return clamp(
            self.rng.pareto(self.flow.size_xm, self.flow.size_alpha),
            MIN_TICK_ORDER_SIZE,
            self.flow.size_cap,
        )

    def next_tick(self) -> Tick:
        """Advance the clock by one arrival and return the resulting tick."""
        flow = self.flow
        total_lambda = flow.lambda_bid + flow.lambda_ask + flow.lambda_liquidity
        self.time_ms += self.rng.exponential(total_lambda) * 1000.0

        u = self.rng.next_float()
        p_bid = flow.lambda_bid / total_lambda
        p_ask = flow.lambda_ask / total_lambda

        side = Side.BUY
        filled = 0.0
        price: Optional[float] = None

        if u < p_bid + p_ask:
            side = Side.BUY if u < p_bid else Side.SELL
            result = self.book.market_order(side, self._order_size())
            filled = result.filled
            price = result.last_price
            direction = 1.0 if side == Side.BUY else -1.0
            self.price += direction * self.price * flow.price_impact * math.sqrt(max(0.0, filled))
        else:
            book_side = BookSide.BID if self.rng.next_float() < 0.5 else BookSide.ASK
            self.book.add_liquidity(book_side, 2, 8 + self.rng.next_float() * 18)

        self.book.prune(self.price, TICK_PRUNE_LEVELS)
        self.book.tighten_spread(TICK_SPREAD_TARGET, TICK_SPREAD_QTY)
        top = self.book.top_of_book()

        if price is None or not math.isfinite(price) or price <= 0:
            price = clamp(top.mid, self.tick_size, self.start_price * 10)

        return Tick(
            timestamp_ms=int(round(self.time_ms)),
            price=price,
            size=filled,
            side=side,
            best_bid=top.best_bid,
            best_ask=top.best_ask,
            mid=top.mid,
            spread=top.spread,
        )

    def run(self, n: int) -> List[Tick]:
        return [self.next_tick() for _ in range(n)]
