"""
Order-flow driven market simulator.

Instead of synthesizing OHLC directly, each bar is built from a stream of
events fed into an OrderBook:

- inter-arrival times ~ Exp(lambda_bid + lambda_ask + lambda_liquidity)
- event type chosen by rate share (buy market order, sell market order,
  liquidity add)
- market order sizes ~ bounded Pareto(x_m, alpha), clamped to [0.2, size_cap]

The bar aggregates the resulting trade prints, and its regime label is
classified afterwards from order-flow imbalance, realized return and
relative spread rather than being prescribed up front, so neither
switch_pct nor volatility_pct applies to this model.
"""

import math
from typing import List, Optional

from ..config.config import MarketConfig, OrderFlowConfig
from ..utils.helpers import clamp
from ..utils.logger import get_logger
from .base import BaseMarketSimulator
from .order_book import OrderBook
from .rng import Mulberry32
from .types import Bar, BookFill, BookSide, Regime, Side

logger = get_logger()


# =============================================================================
# Model constants
# =============================================================================

MIN_ORDER_SIZE = 0.2
FLOW_EMA_DECAY = 0.92
FLOW_EMA_WEIGHT = 0.08
RECENTER_BAND = 0.08        # re-quote when mid leaves price ± 8%
RECENTER_LEVELS = 6
RECENTER_QTY = 70.0
REPLENISH_DEPTH = 8.0       # top-3 depth below this triggers replenishment
REPLENISH_LEVELS = 3
REPLENISH_QTY = 20.0
PRUNE_LEVELS = 90
BAR_END_SPREAD_QTY = 65.0
PRICE_CEILING_MULT = 8.0
BIAS_CLASSIFIER_WEIGHT = 10.0


def classify_regime(imbalance: float, ret: float, spread_rel: float) -> Regime:
    """
    Label a finished bar from its order flow.

    Rules are evaluated in order; the first match wins.

    Args:
        imbalance: (buy_vol - sell_vol) / total volume, bias-adjusted
        ret: Bar return (close - open) / open
        spread_rel: Closing spread / mid

    Returns:
        Regime label
    """
    if ret < -0.01 or imbalance < -0.35:
        return Regime.CRASH
    if ret > 0.008 or imbalance > 0.35:
        return Regime.BREAKOUT
    if abs(imbalance) < 0.06 and spread_rel < 0.0015:
        return Regime.SIDEWAYS
    if imbalance > 0.12:
        return Regime.BULL
    if imbalance < -0.12:
        return Regime.BEAR
    return Regime.SWING


class OrderFlowSimulator(BaseMarketSimulator):
    """
    Bar generator backed by limit order book matching.

    Usage:
        sim = OrderFlowSimulator(MarketConfig(seed=7, model="order_flow"))
        bar = sim.next()
        bar.imbalance, bar.spread, sim.book.top_of_book()
    """

    def __init__(
        self,
        config: Optional[MarketConfig] = None,
        flow: Optional[OrderFlowConfig] = None,
    ):
        """
        Initialize the simulator and seed its book.

        Args:
            config: Market configuration (seed, start price, bias, tick)
            flow: Microstructure parameters (arrival rates, size law, book shape)
        """
        super().__init__()
        self.config = config or MarketConfig(model="order_flow")
        self.flow = flow or OrderFlowConfig()

        self.rng = Mulberry32(self.config.seed)
        self.tick_size = self.config.tick_size
        self.bias = self.config.bias

        self.book = OrderBook(
            tick_size=self.tick_size,
            start_price=self.config.start_price,
            levels=self.flow.book_levels,
            base_depth=self.flow.base_depth,
        )

        self.price = self.config.start_price
        self.order_flow_ema = 0.0

    # ─────────────────────────────────────────────────────────────────────────
    # Event helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _order_size(self) -> float:
        return clamp(
            self.rng.pareto(self.flow.size_xm, self.flow.size_alpha),
            MIN_ORDER_SIZE,
            self.flow.size_cap,
        )

    def _price_ceiling(self) -> float:
        reference = self.history[0].open if self.history else self.price
        return reference * PRICE_CEILING_MULT

    def _apply_trade(self, side: Side, requested: float, filled: float):
        """Update the flow EMA and move the reference price by sqrt impact."""
        direction = 1.0 if side == Side.BUY else -1.0
        self.order_flow_ema = (
            FLOW_EMA_DECAY * self.order_flow_ema
            + direction * FLOW_EMA_WEIGHT * (filled / max(1.0, requested))
        )
        self.price += direction * self.price * self.flow.price_impact * math.sqrt(filled)
        self.price = clamp(self.price, 1.0, self._price_ceiling())

    def _rebalance_spread(self):
        """Add a thin inner quote on both sides when the spread is tighter than flow warrants."""
        top = self.book.top_of_book()
        spread_ticks = max(1, round(top.spread / self.tick_size))
        target = max(1, self.flow.avg_spread_ticks + round(self.order_flow_ema * 1.5))
        if spread_ticks < target:
            self.book.add_liquidity(BookSide.ASK, 1, 4)
            self.book.add_liquidity(BookSide.BID, 1, 4)

    def _replenish(self):
        bid_depth, ask_depth = self.book.total_depth(3)
        if bid_depth < REPLENISH_DEPTH:
            self.book.add_liquidity(BookSide.BID, REPLENISH_LEVELS, REPLENISH_QTY)
        if ask_depth < REPLENISH_DEPTH:
            self.book.add_liquidity(BookSide.ASK, REPLENISH_LEVELS, REPLENISH_QTY)

    # ─────────────────────────────────────────────────────────────────────────
    # Bar loop
    # ─────────────────────────────────────────────────────────────────────────

    def _next_bar(self) -> Bar:
        flow = self.flow
        total_lambda = flow.lambda_bid + flow.lambda_ask + flow.lambda_liquidity
        p_bid = flow.lambda_bid / total_lambda
        p_ask = flow.lambda_ask / total_lambda

        t = 0.0
        trades: List[BookFill] = []
        volume = 0.0
        buy_volume = 0.0
        sell_volume = 0.0

        while t < flow.bar_seconds:
            mid_now = self.book.top_of_book().mid
            if mid_now < self.price * (1 - RECENTER_BAND) or mid_now > self.price * (1 + RECENTER_BAND):
                self.book.quote_around(self.price, RECENTER_LEVELS, RECENTER_QTY)

            t += self.rng.exponential(total_lambda)
            if t >= flow.bar_seconds:
                break

            u = self.rng.next_float()
            if u < p_bid + p_ask:
                side = Side.BUY if u < p_bid else Side.SELL
                size = self._order_size()
                result = self.book.market_order(side, size)
                if result.filled > 0:
                    trades.extend(result.fills)
                    volume += result.filled
                    if side == Side.BUY:
                        buy_volume += result.filled
                    else:
                        sell_volume += result.filled
                    self._apply_trade(side, size, result.filled)
            else:
                book_side = BookSide.BID if self.rng.next_float() < 0.5 else BookSide.ASK
                self.book.add_liquidity(book_side, 2, 10 + self.rng.next_float() * 18)

            self._rebalance_spread()
            self._replenish()

        self.book.prune(self.price, PRUNE_LEVELS)
        self.book.tighten_spread(flow.avg_spread_ticks + 2, BAR_END_SPREAD_QTY)
        top = self.book.top_of_book()
        mid = top.mid
        open_ = self.history[-1].close if self.history else mid

        if trades:
            high = max(open_, max(tr.price for tr in trades))
            low = min(open_, min(tr.price for tr in trades))
            close = trades[-1].price
        else:
            high = max(open_, mid)
            low = min(open_, mid)
            close = mid

        bid_depth, ask_depth = self.book.total_depth(5)
        imbalance = (buy_volume - sell_volume) / max(1.0, buy_volume + sell_volume)
        ret = (close - open_) / max(open_, 1e-9)
        spread_rel = top.spread / max(mid, 1e-9)

        regime = classify_regime(imbalance + self.bias * BIAS_CLASSIFIER_WEIGHT, ret, spread_rel)

        # Keep OHLC consistent with the closing bid/ask context
        high = max(high, close, open_, top.best_ask)
        low = max(self.tick_size, min(low, close, open_, top.best_bid))

        index = len(self.history)
        bar = Bar(
            index=index,
            open=open_,
            high=high,
            low=low,
            close=close,
            volume=volume,
            regime=regime,
            timestamp_ms=int(index * flow.bar_seconds * 1000),
            best_bid=top.best_bid,
            best_ask=top.best_ask,
            spread=top.spread,
            mid=mid,
            imbalance=imbalance,
            bid_depth=bid_depth,
            ask_depth=ask_depth,
        )

        self.price = close
        logger.debug(
            f"Bar {index}: close={close} trades={len(trades)} imbalance={imbalance:.3f} "
            f"regime={regime.value}"
        )
        return bar
