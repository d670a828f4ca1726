"""
Base class for bar-producing market simulators.

Both generators (regime switching and order-flow driven) expose the same
surface so the backtest runner can drive either one:

    sim = create_simulator(config)
    bar = sim.next()          # one bar, appended to sim.history
    bars = sim.run(100)       # n more bars
"""

import hashlib
import json
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

from .types import Bar, Regime


def history_fingerprint(bars: Sequence[Bar], length: int = 16) -> str:
    """
    Deterministic hash of a bar sequence.

    Two runs with the same seed and configuration produce the same
    fingerprint; used for regression checks of the determinism contract.
    """
    serialized = json.dumps([bar.to_dict() for bar in bars], sort_keys=True)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()[:length]


class BaseMarketSimulator(ABC):
    """
    Common state and helpers for market simulators.

    Subclasses implement _next_bar(); bookkeeping of history and regime
    counts happens here.
    """

    def __init__(self):
        self.history: List[Bar] = []
        self.regime_counts: Dict[Regime, int] = {regime: 0 for regime in Regime}

    @abstractmethod
    def _next_bar(self) -> Bar:
        """Produce the next bar (index = len(history))."""
        pass

    def next(self) -> Bar:
        """Advance one bar and append it to history."""
        bar = self._next_bar()
        self.history.append(bar)
        if bar.regime is not None:
            self.regime_counts[bar.regime] += 1
        return bar

    def run(self, n: int) -> List[Bar]:
        """Advance n bars and return them."""
        return [self.next() for _ in range(n)]

    def fingerprint(self) -> str:
        return history_fingerprint(self.history)
