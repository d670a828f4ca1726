"""
Base strategy interface.

Strategies receive a read-only StrategySnapshot each bar and return zero or
more order intents. Per-run state lives in an explicit object returned by
init() and owned by the runner, so one strategy instance can serve many
runs without leaking state between them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from ..market.types import Bar
from ..sim.types import AccountSnapshot, Direction, LiquidationEvent, OrderIntent, PositionView


@dataclass(frozen=True)
class StrategySnapshot:
    """
    Everything a strategy may look at on one bar.

    Attributes:
        bar: Bar just closed
        history: All bars so far, including bar
        positions: Frozen views of the open positions
        equity: Account equity
        balance: Free cash
        total_fees: Cumulative fees paid
    """
    bar: Bar
    history: Tuple[Bar, ...]
    positions: Tuple[PositionView, ...]
    equity: float
    balance: float
    total_fees: float

    @classmethod
    def build(cls, bar: Bar, history: Tuple[Bar, ...], account: AccountSnapshot) -> "StrategySnapshot":
        return cls(
            bar=bar,
            history=history,
            positions=account.positions,
            equity=account.equity,
            balance=account.balance,
            total_fees=account.total_fees,
        )

    @property
    def n(self) -> int:
        return len(self.history)

    @property
    def has_long(self) -> bool:
        return any(p.direction == Direction.LONG for p in self.positions)

    @property
    def has_short(self) -> bool:
        return any(p.direction == Direction.SHORT for p in self.positions)

    def count(self, direction: Direction) -> int:
        return sum(1 for p in self.positions if p.direction == direction)


class Strategy(ABC):
    """
    Abstract base class for trading strategies.

    Subclasses implement init() and on_bar(); the lifecycle hooks
    on_liquidation() and on_finish() default to no-ops.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy identifier."""

    @abstractmethod
    def init(self, snapshot: StrategySnapshot) -> Any:
        """
        Create per-run state.

        Args:
            snapshot: Snapshot of the first bar (before any intent)

        Returns:
            State object passed back to every later hook
        """

    @abstractmethod
    def on_bar(self, snapshot: StrategySnapshot, state: Any) -> List[OrderIntent]:
        """
        Decide on the bar just closed.

        Returns:
            Intents to execute at this bar's close (possibly empty)
        """

    def on_liquidation(self, snapshot: StrategySnapshot, state: Any, event: Optional[LiquidationEvent] = None) -> None:
        """Called once per liquidation, before on_bar for the same bar."""

    def on_finish(self, snapshot: StrategySnapshot, state: Any) -> None:
        """Called once after the last bar."""
