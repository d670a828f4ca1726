"""
Vectorized indicator primitives over bar history.

All functions take numpy arrays (or sequences) and return float64 arrays
of the same length, NaN where the indicator is not yet defined. Values are
recomputed from history each call: strategies see only closed bars.

Formulas:
    ema:  seeded with the first value, ema[i] = a*x[i] + (1-a)*ema[i-1], a = 2/(n+1)
    sma:  rolling mean, NaN for the first n-1 points
    true_range: max(high-low, |high-prev_close|, |low-prev_close|), first = high-low
    atr:  rolling simple mean of true range
    rsi:  100 - 100 / (1 + mean gain / mean loss) over the last n changes
    return volatility: population std of the last n simple returns
"""

from typing import Sequence

import numpy as np

from ..market.types import Bar

# Trailing window, in periods, that an EMA is rebuilt from
EMA_LOOKBACK_MULT = 4


def closes(bars: Sequence[Bar]) -> np.ndarray:
    return np.fromiter((b.close for b in bars), dtype=np.float64, count=len(bars))


def bar_field(bars: Sequence[Bar], name: str) -> np.ndarray:
    """Extract one numeric Bar field as an array."""
    return np.fromiter((getattr(b, name) for b in bars), dtype=np.float64, count=len(bars))


def ema(values, period: int) -> np.ndarray:
    """
    Exponential moving average seeded with the first value.

    Args:
        values: Input series
        period: Smoothing period (>= 1)

    Returns:
        EMA array (defined from index 0)
    """
    x = np.asarray(values, dtype=np.float64)
    out = np.full(x.shape, np.nan)
    if x.size == 0:
        return out
    alpha = 2.0 / (max(1, int(period)) + 1)
    prev = x[0]
    out[0] = prev
    for i in range(1, x.size):
        prev = alpha * x[i] + (1 - alpha) * prev
        out[i] = prev
    return out


def ema_last(values, period: int, lookback_mult: int = EMA_LOOKBACK_MULT) -> float:
    """
    EMA at the last point using only the trailing period × lookback_mult values.

    Cheaper than a full-history EMA and independent of how much history
    precedes the window.
    """
    x = np.asarray(values, dtype=np.float64)
    if x.size == 0:
        return float("nan")
    start = max(0, x.size - period * lookback_mult)
    return float(ema(x[start:], period)[-1])


def sma(values, period: int) -> np.ndarray:
    """Simple moving average, NaN during warmup."""
    x = np.asarray(values, dtype=np.float64)
    n = max(1, int(period))
    out = np.full(x.shape, np.nan)
    if x.size < n:
        return out
    cumsum = np.cumsum(np.insert(x, 0, 0.0))
    out[n - 1:] = (cumsum[n:] - cumsum[:-n]) / n
    return out


def true_range(high, low, close) -> np.ndarray:
    h = np.asarray(high, dtype=np.float64)
    lo = np.asarray(low, dtype=np.float64)
    c = np.asarray(close, dtype=np.float64)
    tr = h - lo
    if tr.size > 1:
        prev_close = c[:-1]
        tr[1:] = np.maximum.reduce([tr[1:], np.abs(h[1:] - prev_close), np.abs(lo[1:] - prev_close)])
    return tr


def atr(high, low, close, period: int = 14) -> np.ndarray:
    """Average true range as a rolling simple mean."""
    return sma(true_range(high, low, close), period)


def atr_last(bars: Sequence[Bar], period: int = 14) -> float:
    """
    ATR over the last period bars (each needs a previous close).

    Returns NaN when fewer than period + 1 bars are available.
    """
    if len(bars) < period + 1:
        return float("nan")
    window = bars[-(period + 1):]
    tr = true_range(bar_field(window, "high"), bar_field(window, "low"), bar_field(window, "close"))
    return float(tr[1:].mean())


def rsi_last(values, period: int = 14) -> float:
    """
    RSI from simple mean gain and loss over the last period changes.

    Returns 100 when there were no losses, NaN with too little data.
    """
    x = np.asarray(values, dtype=np.float64)
    if x.size < period + 1:
        return float("nan")
    diffs = np.diff(x[-(period + 1):])
    gain = diffs[diffs > 0].sum() / period
    loss = -diffs[diffs < 0].sum() / period
    if loss == 0:
        return 100.0
    return float(100.0 - 100.0 / (1.0 + gain / loss))


def return_volatility(values, window: int) -> float:
    """Population standard deviation of the last window simple returns."""
    x = np.asarray(values, dtype=np.float64)
    if x.size < window + 1:
        return float("nan")
    tail = x[-(window + 1):]
    returns = tail[1:] / tail[:-1] - 1.0
    return float(returns.std())


INDICATORS = {
    "ema": ema,
    "sma": sma,
}
