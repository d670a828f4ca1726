"""
Execution cost accounting for a single TradingEngine.

Tracks what the simulated venue charged, separately from strategy results:
- slippage in quote currency and basis points of notional
- entry and exit fees
- forfeited margin from liquidations
- fills, resized entries and dropped intents (by reason)

Strategy-level statistics live in marketsim.backtest.metrics.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict

from ..types import EntryFill, ExitFill


@dataclass
class ExecutionMetricsSnapshot:
    """Point-in-time copy of the collector. Monetary values in quote currency."""
    total_slippage: float = 0.0
    avg_slippage_bps: float = 0.0
    max_slippage_bps: float = 0.0

    entry_fees: float = 0.0
    exit_fees: float = 0.0

    liquidation_count: int = 0
    margin_forfeited: float = 0.0

    entry_fills: int = 0
    exit_fills: int = 0
    resized_entries: int = 0
    total_volume: float = 0.0

    rejections: Dict[str, int] = field(default_factory=dict)

    @property
    def total_fees(self) -> float:
        return self.entry_fees + self.exit_fees

    @property
    def total_fills(self) -> int:
        return self.entry_fills + self.exit_fills

    @property
    def total_rejections(self) -> int:
        return sum(self.rejections.values())

    @property
    def balance_rejections(self) -> int:
        return sum(n for reason, n in self.rejections.items() if "balance" in reason)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out.update(
            total_fees=self.total_fees,
            total_fills=self.total_fills,
            total_rejections=self.total_rejections,
        )
        return out


class ExecutionMetrics:
    """Running aggregates, fed by the engine on every fill, drop and liquidation."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self._snap = ExecutionMetricsSnapshot()
        self._slippage_fills = 0
        self._bps_sum = 0.0

    def _add_slippage(self, cost: float, notional: float) -> None:
        if cost <= 0 or notional <= 0:
            return
        bps = cost / notional * 10_000
        snap = self._snap
        snap.total_slippage += cost
        snap.max_slippage_bps = max(snap.max_slippage_bps, bps)
        self._slippage_fills += 1
        self._bps_sum += bps

    def record_entry(self, fill: EntryFill) -> None:
        snap = self._snap
        snap.entry_fills += 1
        snap.entry_fees += fill.fee
        snap.total_volume += fill.notional
        snap.resized_entries += int(fill.resized)
        self._add_slippage(fill.slippage_cost, fill.notional)

    def record_exit(self, fill: ExitFill, size: float) -> None:
        notional = fill.price * size
        snap = self._snap
        snap.exit_fills += 1
        snap.exit_fees += fill.fee
        snap.total_volume += notional
        self._add_slippage(fill.slippage_cost, notional)

    def record_liquidation(self, margin: float) -> None:
        self._snap.liquidation_count += 1
        self._snap.margin_forfeited += margin

    def record_rejection(self, reason: str) -> None:
        counts = self._snap.rejections
        counts[reason] = counts.get(reason, 0) + 1

    def get_metrics(self) -> ExecutionMetricsSnapshot:
        snap = self._snap
        avg = self._bps_sum / self._slippage_fills if self._slippage_fills else 0.0
        return ExecutionMetricsSnapshot(
            total_slippage=snap.total_slippage,
            avg_slippage_bps=avg,
            max_slippage_bps=snap.max_slippage_bps,
            entry_fees=snap.entry_fees,
            exit_fees=snap.exit_fees,
            liquidation_count=snap.liquidation_count,
            margin_forfeited=snap.margin_forfeited,
            entry_fills=snap.entry_fills,
            exit_fills=snap.exit_fills,
            resized_entries=snap.resized_entries,
            total_volume=snap.total_volume,
            rejections=dict(snap.rejections),
        )
