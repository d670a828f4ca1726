"""
Backtest performance metrics.

Pure math functions for computing performance metrics.
No I/O operations - takes data and returns computed values.

Main function: compute_performance_metrics() -> PerformanceMetrics

Conventions:
- Trade statistics use net PnL (entry + exit fees deducted); net PnL <= 0 is a loss
- Annualization assumes 252 bars per year unless told otherwise
- Degenerate inputs (no trades, flat equity) produce zeros, never NaN
"""

import math
from typing import List, Optional, Sequence, Tuple

from ..sim.types import ClosedTrade, ExitReason
from .types import PerformanceMetrics

BARS_PER_YEAR = 252
PROFIT_FACTOR_CAP = 999.0
SORTINO_CAP = 100.0
CAGR_CAP = 1e6


def compute_performance_metrics(
    trades: Sequence[ClosedTrade],
    equity_history: Sequence[float],
    initial_balance: float,
    total_fees: float = 0.0,
    exposed_bars: int = 0,
    total_bars: Optional[int] = None,
    bars_per_year: int = BARS_PER_YEAR,
) -> PerformanceMetrics:
    """
    Compute performance metrics for one run.

    This is a pure function - no I/O operations.

    Args:
        trades: Closed trades
        equity_history: One equity sample per bar
        initial_balance: Starting balance
        total_fees: Cumulative fees paid (including still-open entries)
        exposed_bars: Bars that started with an open position
        total_bars: Bars processed (defaults to len(equity_history))
        bars_per_year: Annualization factor

    Returns:
        PerformanceMetrics with all computed fields
    """
    if total_bars is None:
        total_bars = len(equity_history)

    final_equity = equity_history[-1] if equity_history else initial_balance
    total_return = (final_equity - initial_balance) / initial_balance if initial_balance > 0 else 0.0

    max_dd, max_dd_duration = _compute_drawdown(equity_history, initial_balance)
    returns = _compute_returns(equity_history)
    sharpe = _compute_sharpe(returns, bars_per_year)
    sortino = _compute_sortino(returns, bars_per_year)
    cagr = _compute_cagr(final_equity, initial_balance, total_bars, bars_per_year)
    calmar = cagr / max_dd if max_dd > 0 else 0.0
    composite = (cagr * abs(sharpe)) / (1 + max_dd) if sharpe != 0 else 0.0
    exposure = exposed_bars / total_bars if total_bars > 0 else 0.0

    metrics = PerformanceMetrics(
        initial_balance=initial_balance,
        final_equity=final_equity,
        total_return=total_return,
        total_fees=total_fees,
        max_drawdown=max_dd,
        max_drawdown_duration_bars=max_dd_duration,
        sharpe=sharpe,
        sortino=sortino,
        cagr=cagr,
        calmar=calmar,
        composite_score=composite,
        total_bars=total_bars,
        exposed_bars=exposed_bars,
        exposure=exposure,
    )

    if not trades:
        return metrics

    pnls = [t.net_pnl for t in trades]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p <= 0]
    total_win = sum(wins)
    total_loss = abs(sum(losses))

    metrics.total_trades = len(trades)
    metrics.wins = len(wins)
    metrics.losses = len(losses)
    metrics.win_rate = len(wins) / len(trades)

    if total_loss > 0:
        metrics.profit_factor = total_win / total_loss
    elif total_win > 0:
        metrics.profit_factor = PROFIT_FACTOR_CAP
    else:
        metrics.profit_factor = 0.0

    metrics.avg_win = total_win / len(wins) if wins else 0.0
    metrics.avg_loss = total_loss / len(losses) if losses else 0.0
    metrics.expectancy = metrics.win_rate * metrics.avg_win - (1 - metrics.win_rate) * metrics.avg_loss
    metrics.max_consecutive_wins, metrics.max_consecutive_losses = _compute_consecutive_streaks(pnls)

    r_multiples = [t.r_multiple for t in trades if t.stop_loss_pct > 0]
    r_multiples = [r if r is not None else 0.0 for r in r_multiples]
    metrics.avg_r = sum(r_multiples) / len(r_multiples) if r_multiples else 0.0

    if metrics.avg_win > 0 and metrics.avg_loss > 0:
        b = metrics.avg_win / metrics.avg_loss
        metrics.kelly = (metrics.win_rate * b - (1 - metrics.win_rate)) / b

    metrics.liquidations = sum(1 for t in trades if t.reason == ExitReason.LIQUIDATION)
    metrics.avg_trade_duration_bars = sum(t.duration_bars for t in trades) / len(trades)

    return metrics


def _compute_drawdown(equity_history: Sequence[float], initial_balance: float) -> Tuple[float, int]:
    """
    Max drawdown (fraction of peak) and the longest stretch below a peak.

    The initial balance is the starting peak.
    """
    peak = initial_balance
    max_dd = 0.0
    dd_bars = 0
    max_dd_duration = 0

    for equity in equity_history:
        if equity >= peak:
            peak = equity
            dd_bars = 0
            continue
        dd_bars += 1
        if dd_bars > max_dd_duration:
            max_dd_duration = dd_bars
        if peak > 0:
            dd = (peak - equity) / peak
            if dd > max_dd:
                max_dd = dd

    return max_dd, max_dd_duration


def _compute_returns(equity_history: Sequence[float]) -> List[float]:
    """Per-bar simple returns (bars following a non-positive equity are skipped)."""
    returns = []
    for prev, curr in zip(equity_history, equity_history[1:]):
        if prev > 0:
            returns.append(curr / prev - 1.0)
    return returns


def _compute_sharpe(returns: List[float], bars_per_year: int) -> float:
    """Annualized Sharpe from per-bar returns (population std, RF = 0)."""
    if not returns:
        return 0.0
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    std = math.sqrt(variance)
    if std == 0:
        return 0.0
    return mean / std * math.sqrt(bars_per_year)


def _compute_sortino(returns: List[float], bars_per_year: int) -> float:
    """Annualized Sortino (downside deviation only), capped when no losses."""
    if not returns:
        return 0.0
    mean = sum(returns) / len(returns)
    negative = [r for r in returns if r < 0]
    if not negative:
        return SORTINO_CAP if mean > 0 else 0.0
    downside_std = math.sqrt(sum(r ** 2 for r in negative) / len(returns))
    if downside_std == 0:
        return 0.0
    return mean / downside_std * math.sqrt(bars_per_year)


def _compute_cagr(final_equity: float, initial_balance: float, total_bars: int, bars_per_year: int) -> float:
    """Compound annual growth rate; -1 when the account is wiped out."""
    years = total_bars / bars_per_year
    if years <= 0 or initial_balance <= 0:
        return 0.0
    if final_equity <= 0:
        return -1.0
    exponent = math.log(final_equity / initial_balance) / years
    if exponent > math.log1p(CAGR_CAP):
        return CAGR_CAP
    return math.exp(exponent) - 1.0


def _compute_consecutive_streaks(pnls: Sequence[float]) -> Tuple[int, int]:
    """
    Max consecutive wins and losses.

    Returns:
        Tuple of (max_consecutive_wins, max_consecutive_losses)
    """
    max_wins = max_losses = 0
    wins = losses = 0
    for pnl in pnls:
        if pnl > 0:
            wins += 1
            losses = 0
            max_wins = max(max_wins, wins)
        else:
            losses += 1
            wins = 0
            max_losses = max(max_losses, losses)
    return max_wins, max_losses


def risk_of_ruin(win_rate: float, avg_win: float, avg_loss: float, ruin_threshold: float = 0.5) -> float:
    """
    Approximate probability of losing ruin_threshold of the account.

    Returns 1 for a non-positive edge and 0 when no loss is possible.
    """
    if avg_loss <= 0 or win_rate >= 1:
        return 0.0
    if avg_win <= 0 or ruin_threshold <= 0:
        return 1.0
    payoff = avg_win / avg_loss
    q = 1.0 - win_rate
    if win_rate * payoff <= q:
        return 1.0
    return (q / (win_rate * payoff)) ** math.ceil(1.0 / (ruin_threshold * payoff))


def percentile(values: Sequence[float], p: float) -> float:
    """
    Linear-interpolated percentile (p in [0, 100]).

    Raises:
        ValueError: If values is empty
    """
    if not values:
        raise ValueError("percentile() of an empty sequence")
    ordered = sorted(values)
    idx = (p / 100.0) * (len(ordered) - 1)
    lo = math.floor(idx)
    hi = math.ceil(idx)
    if lo == hi:
        return ordered[lo]
    return ordered[lo] + (ordered[hi] - ordered[lo]) * (idx - lo)
