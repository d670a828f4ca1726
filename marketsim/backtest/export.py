"""
DataFrame and CSV export for backtest outputs.

Column order is stable so exported files diff cleanly between runs:
- bars.csv:   index, timestamp_ms, open, high, low, close, volume, regime, order-flow columns
- trades.csv: one row per closed trade, including net_pnl and duration_bars
- equity.csv: bar_index, equity, drawdown
"""

from pathlib import Path
from typing import Dict, Sequence, Union

import pandas as pd

from ..market.types import Bar
from ..sim.types import ClosedTrade
from .types import BacktestResult

BAR_COLUMNS = [
    "index", "timestamp_ms", "open", "high", "low", "close", "volume", "regime",
    "best_bid", "best_ask", "spread", "mid", "imbalance", "bid_depth", "ask_depth",
]

TRADE_COLUMNS = [
    "position_id", "direction", "entry_bar", "exit_bar", "duration_bars",
    "entry_price", "exit_price", "size", "margin", "realized_pnl", "fees", "net_pnl",
    "reason", "stop_loss_pct",
]

EQUITY_COLUMNS = ["bar_index", "equity", "drawdown"]


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    """Bar history as a DataFrame (one row per bar)."""
    rows = [bar.to_dict() for bar in bars]
    df = pd.DataFrame(rows)
    if df.empty:
        return pd.DataFrame(columns=BAR_COLUMNS)
    return df.reindex(columns=BAR_COLUMNS)


def trades_to_frame(trades: Sequence[ClosedTrade]) -> pd.DataFrame:
    """Closed-trade ledger as a DataFrame."""
    rows = []
    for trade in trades:
        row = trade.to_dict()
        row["duration_bars"] = trade.duration_bars
        rows.append(row)
    if not rows:
        return pd.DataFrame(columns=TRADE_COLUMNS)
    return pd.DataFrame(rows).reindex(columns=TRADE_COLUMNS)


def equity_to_frame(equity_history: Sequence[float], initial_balance: float) -> pd.DataFrame:
    """
    Equity curve with running drawdown (fraction below the running peak).

    The running peak starts at initial_balance.
    """
    equity = pd.Series(list(equity_history), dtype="float64")
    if equity.empty:
        return pd.DataFrame(columns=EQUITY_COLUMNS)
    peak = equity.cummax().clip(lower=initial_balance)
    drawdown = ((peak - equity) / peak).fillna(0.0)
    return pd.DataFrame({
        "bar_index": range(len(equity)),
        "equity": equity,
        "drawdown": drawdown,
    })


def export_csv(result: BacktestResult, output_dir: Union[str, Path]) -> Dict[str, Path]:
    """
    Write bars.csv, trades.csv and equity.csv for a run.

    Args:
        result: Finished backtest
        output_dir: Target directory (created if missing)

    Returns:
        Mapping of name -> written path
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    frames = {
        "bars": bars_to_frame(result.bars),
        "trades": trades_to_frame(result.trades),
        "equity": equity_to_frame(result.equity_history, result.metrics.initial_balance),
    }

    paths = {}
    for name, df in frames.items():
        path = out / f"{name}.csv"
        df.to_csv(path, index=False)
        paths[name] = path
    return paths
