"""
Tests for the limit order book.

Validates that:
1. The seeded book has positive, uncrossed levels
2. Market orders walk levels best-first and report VWAP
3. Limit orders rest, cross and never lock the book
4. Degenerate input (zero / NaN quantity) is a no-op, not an error
"""

import math

import pytest

from marketsim.market import BookSide, OrderBook, Side


def assert_book_valid(book: OrderBook):
    bids = book.depth(BookSide.BID)
    asks = book.depth(BookSide.ASK)
    assert all(qty > 0 for _, qty in bids + asks)
    if bids and asks:
        assert bids[0][0] < asks[0][0]


# ─────────────────────────────────────────────────────────────────────────────
# Seeding
# ─────────────────────────────────────────────────────────────────────────────

class TestSeeding:
    """Test the initial book shape."""

    def test_best_prices_one_tick_from_start(self, book):
        assert book.best_bid() == pytest.approx(99.99)
        assert book.best_ask() == pytest.approx(100.01)

    def test_seeded_level_counts(self, book):
        assert book.level_count() == (24, 24)

    def test_inner_levels_are_deeper(self, book):
        asks = book.depth("ask")
        assert asks[0][1] > asks[-1][1]
        assert asks[-1][1] == pytest.approx(60.0)

    def test_invalid_tick_size_raises(self):
        with pytest.raises(ValueError, match="tick_size"):
            OrderBook(tick_size=0, start_price=100.0)

    def test_top_of_book_spread_and_mid(self, book):
        top = book.top_of_book()
        assert top.spread == pytest.approx(0.02)
        assert top.mid == pytest.approx(100.0)


# ─────────────────────────────────────────────────────────────────────────────
# Market orders
# ─────────────────────────────────────────────────────────────────────────────

class TestMarketOrders:
    """Test market order matching."""

    def test_small_buy_fills_at_best_ask(self, book):
        result = book.market_order("buy", 2.0)
        assert result.filled == pytest.approx(2.0)
        assert result.avg_price == pytest.approx(100.01)
        assert result.unfilled == 0.0
        assert book.last_trade_price == pytest.approx(100.01)

    def test_large_sell_walks_levels(self, book):
        best_bid_qty = book.depth("bid", 1)[0][1]
        result = book.market_order(Side.SELL, best_bid_qty + 10.0)
        assert len(result.fills) == 2
        assert result.fills[0].price > result.fills[1].price
        assert result.avg_price < 99.99
        assert book.best_bid() == pytest.approx(99.98)
        assert_book_valid(book)

    def test_order_larger_than_book_reports_unfilled(self):
        book = OrderBook(tick_size=0.01, start_price=100.0, levels=2, base_depth=1.0)
        total_asks = sum(q for _, q in book.depth("ask"))
        result = book.market_order("buy", total_asks + 5.0)
        assert result.filled == pytest.approx(total_asks)
        assert result.unfilled == pytest.approx(5.0)
        assert book.best_ask() is None

    @pytest.mark.parametrize("quantity", [0.0, -1.0, float("nan"), float("inf")])
    def test_degenerate_quantity_is_noop(self, book, quantity):
        before = book.depth("ask")
        result = book.market_order("buy", quantity)
        assert result.filled == 0.0
        assert result.avg_price == book.last_trade_price
        assert book.depth("ask") == before

    def test_empty_side_uses_synthetic_quote(self):
        book = OrderBook(tick_size=0.01, start_price=100.0, levels=1, base_depth=1.0)
        book.market_order("buy", 100.0)
        top = book.top_of_book()
        assert top.best_ask == pytest.approx(book.last_trade_price + 0.01)
        assert math.isfinite(top.spread)


# ─────────────────────────────────────────────────────────────────────────────
# Limit orders and maintenance
# ─────────────────────────────────────────────────────────────────────────────

class TestLimitOrders:
    """Test limit order placement and crossing."""

    def test_passive_limit_rests(self, book):
        result = book.limit_order("buy", 99.50, 3.0)
        assert result.posted == pytest.approx(3.0)
        assert result.filled == 0.0
        levels = dict(book.depth("bid"))
        assert levels[99.5] == pytest.approx(3.0)

    def test_marketable_limit_fills_then_rests(self, book):
        ask_qty = book.depth("ask", 1)[0][1]
        result = book.limit_order("buy", 100.01, ask_qty + 4.0)
        assert result.filled == pytest.approx(ask_qty)
        assert result.avg_price == pytest.approx(100.01)
        assert result.posted == pytest.approx(4.0)
        assert book.best_bid() == pytest.approx(100.01)
        assert_book_valid(book)

    def test_limit_price_is_quantized(self, book):
        result = book.limit_order("sell", 100.504, 1.0)
        assert result.price == pytest.approx(100.50)

    def test_maintenance_keeps_book_valid(self, book):
        book.market_order("buy", 500.0)
        book.add_liquidity(BookSide.ASK, levels=3, quantity_per_level=20.0)
        book.tighten_spread(target_ticks=2, quantity=50.0)
        book.quote_around(book.last_trade_price, levels=4, quantity=45.0)
        book.prune(book.last_trade_price, keep_levels=10)
        assert_book_valid(book)

    def test_total_depth_sums_best_levels(self, book):
        bid_depth, ask_depth = book.total_depth(2)
        asks = book.depth("ask", 2)
        assert ask_depth == pytest.approx(sum(q for _, q in asks))
        assert bid_depth == pytest.approx(ask_depth)
