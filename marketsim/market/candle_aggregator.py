"""
Tick-to-candle aggregation by fixed time slots.
"""

from typing import List, Optional

from .rollup import RollupBucket
from .types import Bar, Tick


class CandleAggregator:
    """
    Buckets ticks into candles of interval_ms by timestamp // interval_ms.

    The in-progress candle is the only mutable one; finished candles are
    frozen Bars. A tick whose slot differs from the current one closes the
    current candle and opens a new one.
    """

    def __init__(self, interval_ms: int = 60_000):
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self.interval_ms = interval_ms
        self._bucket = RollupBucket()
        self._slot: Optional[int] = None
        self._last_tick: Optional[Tick] = None
        self._candles: List[Bar] = []

    def _slot_of(self, timestamp_ms: int) -> int:
        return timestamp_ms // self.interval_ms

    def _freeze_current(self) -> Bar:
        tick = self._last_tick
        return self._bucket.freeze(
            index=self._slot,
            timestamp_ms=self._slot * self.interval_ms,
            best_bid=tick.best_bid,
            best_ask=tick.best_ask,
            spread=tick.spread,
            mid=tick.mid,
        )

    def push_tick(self, tick: Tick) -> Bar:
        """
        Add a tick.

        Returns:
            Snapshot of the in-progress candle after this tick
        """
        slot = self._slot_of(tick.timestamp_ms)
        if self._slot is not None and slot != self._slot:
            self._candles.append(self._freeze_current())
            self._bucket.reset()
        self._slot = slot
        self._bucket.accumulate_price(tick.price, tick.size)
        self._last_tick = tick
        return self._freeze_current()

    def close_current(self) -> Optional[Bar]:
        """Finish the in-progress candle, if any."""
        if self._slot is None or self._bucket.is_empty:
            return None
        candle = self._freeze_current()
        self._candles.append(candle)
        self._bucket.reset()
        self._slot = None
        self._last_tick = None
        return candle

    def candles(self, include_current: bool = True) -> List[Bar]:
        if not include_current or self._bucket.is_empty:
            return list(self._candles)
        return self._candles + [self._freeze_current()]
