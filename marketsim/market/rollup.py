"""
Multi-timeframe rollups.

RollupBucket accumulates open/first, high/max, low/min, close/last and
volume/sum across base bars (or raw prices) and freezes into a Bar.
rollup_bars() buckets a base-timeframe series by index // factor.

PERFORMANCE CONTRACT:
- accumulate() is O(1) - simple min/max/sum updates
- freeze() is O(1) - one Bar construction
- reset() is O(1) - field resets
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .types import Bar, Regime


@dataclass
class RollupBucket:
    """
    Accumulates OHLCV between higher-timeframe closes.

    Usage:
        bucket = RollupBucket()
        for bar in base_bars_in_interval:
            bucket.accumulate_bar(bar)
        htf_bar = bucket.freeze(index=0)
        bucket.reset()
    """
    open: Optional[float] = None
    high: float = float("-inf")
    low: float = float("inf")
    close: Optional[float] = None
    volume: float = 0.0
    count: int = 0
    regimes: Counter = field(default_factory=Counter)

    @property
    def is_empty(self) -> bool:
        return self.count == 0

    def accumulate(self, open_: float, high: float, low: float, close: float, volume: float = 0.0):
        if self.open is None:
            self.open = open_
        if high > self.high:
            self.high = high
        if low < self.low:
            self.low = low
        self.close = close
        self.volume += volume
        self.count += 1

    def accumulate_bar(self, bar: Bar):
        self.accumulate(bar.open, bar.high, bar.low, bar.close, bar.volume)
        if bar.regime is not None:
            self.regimes[bar.regime] += 1

    def accumulate_price(self, price: float, size: float = 0.0):
        self.accumulate(price, price, price, price, size)

    def dominant_regime(self) -> Optional[Regime]:
        """Most frequent regime label in the bucket (earliest wins ties)."""
        if not self.regimes:
            return None
        return self.regimes.most_common(1)[0][0]

    def freeze(self, index: int, timestamp_ms: int = 0, **metadata) -> Bar:
        """
        Emit the accumulated interval as an immutable Bar.

        Raises:
            ValueError: If nothing was accumulated
        """
        if self.is_empty:
            raise ValueError("Cannot freeze an empty rollup bucket")
        return Bar(
            index=index,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.volume,
            regime=metadata.pop("regime", self.dominant_regime()),
            timestamp_ms=timestamp_ms,
            **metadata,
        )

    def reset(self):
        self.open = None
        self.high = float("-inf")
        self.low = float("inf")
        self.close = None
        self.volume = 0.0
        self.count = 0
        self.regimes = Counter()


def rollup_bars(bars: Sequence[Bar], factor: int, include_partial: bool = True) -> List[Bar]:
    """
    Aggregate base bars into higher-timeframe bars.

    Bars are bucketed by index // factor; the higher-timeframe bar takes the
    bucket number as its index and the first base bar's timestamp.

    Args:
        bars: Base-timeframe bars in index order
        factor: Number of base bars per higher-timeframe bar
        include_partial: Emit the trailing incomplete bucket

    Returns:
        Higher-timeframe bars

    Raises:
        ValueError: If factor < 1
    """
    if factor < 1:
        raise ValueError(f"factor must be >= 1, got {factor}")

    result: List[Bar] = []
    bucket = RollupBucket()
    slot: Optional[int] = None
    slot_ts = 0

    for bar in bars:
        bar_slot = bar.index // factor
        if slot is not None and bar_slot != slot:
            result.append(bucket.freeze(index=slot, timestamp_ms=slot_ts))
            bucket.reset()
        if bucket.is_empty:
            slot = bar_slot
            slot_ts = bar.timestamp_ms
        bucket.accumulate_bar(bar)

    if not bucket.is_empty and (include_partial or bucket.count == factor):
        result.append(bucket.freeze(index=slot, timestamp_ms=slot_ts))

    return result
