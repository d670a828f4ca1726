"""
Quote-currency account ledger with invariants.

Margin model (isolated, per position):
- balance: free cash (initial - margins posted - fees + returned margin + realized PnL)
- margin_in_use: sum of margin locked by open positions
- unrealized_pnl: mark-to-market PnL of open positions at the last close
- equity = balance + margin_in_use + unrealized_pnl

Cash moves only on:
- entry: balance -= margin + entry_fee
- exit: balance += margin + gross_pnl - exit_fee
- liquidation: margin is forfeited (balance unchanged, margin released)

Invariants:
1. equity = balance + margin_in_use + unrealized_pnl (after every mark)
2. margin_in_use >= 0
3. total_fees >= 0
4. balance, equity finite
"""

import math
from dataclasses import dataclass
from typing import List, Sequence

from .types import Position

INVARIANT_TOLERANCE = 1e-8


@dataclass
class LedgerConfig:
    """Configuration for ledger accounting."""
    debug_check_invariants: bool = False  # Check invariants after every mutation


class Account:
    """
    Account ledger for the trading engine.

    Tracks cash, locked margin, fees, exposure counters and the equity
    history (one point per update()).
    """

    def __init__(self, initial_balance: float, config: LedgerConfig = None):
        """
        Initialize the ledger with starting capital.

        Args:
            initial_balance: Starting capital in quote currency
            config: Optional ledger configuration
        """
        self._config = config or LedgerConfig()
        self.initial_balance = initial_balance

        self._balance = initial_balance
        self._margin_in_use = 0.0
        self._unrealized_pnl = 0.0
        self._total_fees = 0.0
        self._equity = initial_balance
        self._peak_equity = initial_balance

        self.equity_history: List[float] = []
        self.exposed_bars = 0
        self.total_bars = 0

    # ─────────────────────────────────────────────────────────────────────
    # Read access
    # ─────────────────────────────────────────────────────────────────────

    @property
    def balance(self) -> float:
        return self._balance

    @property
    def margin_in_use(self) -> float:
        return self._margin_in_use

    @property
    def unrealized_pnl(self) -> float:
        return self._unrealized_pnl

    @property
    def total_fees(self) -> float:
        return self._total_fees

    @property
    def equity(self) -> float:
        return self._equity

    @property
    def peak_equity(self) -> float:
        return self._peak_equity

    @property
    def drawdown(self) -> float:
        """Current drawdown from peak equity as a fraction."""
        if self._peak_equity <= 0:
            return 0.0
        return max(0.0, (self._peak_equity - self._equity) / self._peak_equity)

    # ─────────────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────────────

    def apply_entry(self, margin: float, fee: float) -> None:
        """Lock margin and pay the entry fee."""
        self._balance -= margin + fee
        self._margin_in_use += margin
        self._total_fees += fee
        self._recompute_derived()

    def apply_exit(self, margin: float, gross_pnl: float, fee: float) -> None:
        """
        Release margin and realize PnL net of the exit fee.

        Args:
            margin: Margin locked by the position
            gross_pnl: Price PnL before fees
            fee: Exit fee
        """
        self._balance += margin + gross_pnl - fee
        self._margin_in_use = max(0.0, self._margin_in_use - margin)
        self._total_fees += fee
        self._recompute_derived()

    def apply_liquidation(self, margin: float) -> None:
        """Forfeit a position's margin; the loss is exactly the margin."""
        self._margin_in_use = max(0.0, self._margin_in_use - margin)
        self._recompute_derived()

    def mark(self, positions: Sequence[Position], record: bool = True) -> float:
        """
        Mark open positions to market and recompute equity.

        Unrealized PnL is read from each position (the engine sets it from
        the bar close). Locked margin is re-summed to avoid float drift.

        Args:
            positions: Open positions
            record: Append the resulting equity to the history

        Returns:
            Current equity
        """
        self._unrealized_pnl = sum(p.unrealized_pnl for p in positions)
        self._margin_in_use = sum(p.margin for p in positions)
        self._recompute_derived()
        if record:
            self.equity_history.append(self._equity)
        return self._equity

    def count_bar(self, exposed: bool) -> None:
        self.total_bars += 1
        if exposed:
            self.exposed_bars += 1

    def _recompute_derived(self) -> None:
        self._equity = self._balance + self._margin_in_use + self._unrealized_pnl
        if self._equity > self._peak_equity:
            self._peak_equity = self._equity

        if self._config.debug_check_invariants:
            errors = self.check_invariants()
            if errors:
                raise AssertionError(f"Ledger invariant violation: {errors}")

    # ─────────────────────────────────────────────────────────────────────
    # Invariants
    # ─────────────────────────────────────────────────────────────────────

    def check_invariants(self) -> List[str]:
        """
        Check all ledger invariants.

        Returns:
            List of error messages (empty if all invariants hold)
        """
        errors = []

        expected_equity = self._balance + self._margin_in_use + self._unrealized_pnl
        if abs(self._equity - expected_equity) > INVARIANT_TOLERANCE * max(1.0, abs(expected_equity)):
            errors.append(
                f"Invariant violated: equity ({self._equity:.8f}) != balance ({self._balance:.8f}) "
                f"+ margin ({self._margin_in_use:.8f}) + unrealized ({self._unrealized_pnl:.8f})"
            )

        if self._margin_in_use < -INVARIANT_TOLERANCE:
            errors.append(f"Invariant violated: margin_in_use negative ({self._margin_in_use:.8f})")

        if self._total_fees < -INVARIANT_TOLERANCE:
            errors.append(f"Invariant violated: total_fees negative ({self._total_fees:.8f})")

        if not (math.isfinite(self._balance) and math.isfinite(self._equity)):
            errors.append(
                f"Invariant violated: non-finite balance/equity ({self._balance}, {self._equity})"
            )

        return errors
