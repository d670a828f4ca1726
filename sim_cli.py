#!/usr/bin/env python3
"""
marketsim - Simulation CLI

Runs one seeded backtest of a bundled strategy against the simulated
market and prints the result. This is a PURE SHELL - it only:
- Parses arguments into a SimConfig
- Builds the strategy and runner
- Prints or writes results

NO simulation logic lives here. Everything goes through marketsim.*.

Examples:
  python sim_cli.py                                   # EMA strategy, seed 42, 500 candles
  python sim_cli.py --seed 7 --candles 2000 --volatility 3
  python sim_cli.py --config configs/default.yml --format json
  python sim_cli.py --strategy rules --rules configs/rules_example.yml
  python sim_cli.py --strategy arm --leverage 5 --switch-pct 8
  python sim_cli.py --format csv --output out/         # bars.csv, trades.csv, equity.csv
"""

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from marketsim.config import SimConfig, load_config, load_env, get_log_settings
from marketsim.config.constants import OUTPUT_FORMATS, STRATEGY_NAMES, MARKET_MODELS, TRADING_MODES
from marketsim.utils.logger import setup_logger
from marketsim.strategies import create_strategy
from marketsim.backtest import BacktestRunner, BacktestResult, export_csv

console = Console()

# CLI flag -> (config section, field)
_OVERRIDES = {
    "seed": ("market", "seed"),
    "model": ("market", "model"),
    "start_price": ("market", "start_price"),
    "volatility": ("market", "volatility_pct"),
    "bias": ("market", "bias_pct"),
    "switch_pct": ("market", "switch_pct"),
    "tick_size": ("market", "tick_size"),
    "balance": ("trading", "initial_balance"),
    "leverage": ("trading", "leverage"),
    "mode": ("trading", "mode"),
    "sl": ("trading", "stop_loss_pct"),
    "tp": ("trading", "take_profit_pct"),
    "trail": ("trading", "trailing_stop_pct"),
    "maker_fee": ("trading", "maker_fee_pct"),
    "taker_fee": ("trading", "taker_fee_pct"),
    "slippage": ("trading", "slippage_pct"),
}


def parse_cli_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Market and trading flags default to None so values from --config are
    only overridden when the flag is given.
    """
    parser = argparse.ArgumentParser(
        description="marketsim - deterministic market simulation backtests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python sim_cli.py --seed 7 --candles 2000
  python sim_cli.py --config configs/default.yml --format json
  python sim_cli.py --strategy rules --rules configs/rules_example.yml
        """
    )

    parser.add_argument("--config", help="YAML config file (CLI flags override it)")

    market = parser.add_argument_group("market")
    market.add_argument("--seed", type=int, help="RNG seed (default: 42)")
    market.add_argument("--candles", type=int, help="Number of bars to simulate (default: 500)")
    market.add_argument("--model", choices=MARKET_MODELS, help="Price model (default: regime)")
    market.add_argument("--start-price", type=float, help="First open (default: 100)")
    market.add_argument("--volatility", type=float, help="Baseline volatility in %% (default: 2)")
    market.add_argument("--bias", type=float, help="Drift bias in %% (default: 0)")
    market.add_argument("--switch-pct", type=float, help="Per-tick regime switch chance in %% (default: 5)")
    market.add_argument("--tick-size", type=float, help="Minimum price increment (default: 0.01)")

    trading = parser.add_argument_group("trading")
    trading.add_argument("--balance", type=float, help="Initial balance (default: 10000)")
    trading.add_argument("--leverage", type=float, help="Futures leverage (default: 10)")
    trading.add_argument("--mode", choices=TRADING_MODES, help="Trading mode (default: futures)")
    trading.add_argument("--sl", type=float, help="Default stop loss in %% (0 = off)")
    trading.add_argument("--tp", type=float, help="Default take profit in %% (0 = off)")
    trading.add_argument("--trail", type=float, help="Default trailing stop in %% (0 = off)")
    trading.add_argument("--maker-fee", type=float, help="Maker fee in %% (default: 0.02)")
    trading.add_argument("--taker-fee", type=float, help="Taker fee in %% (default: 0.04)")
    trading.add_argument("--slippage", type=float, help="Slippage in %% (default: 0.05)")

    strategy = parser.add_argument_group("strategy")
    strategy.add_argument("--strategy", choices=STRATEGY_NAMES, default="ema", help="Strategy (default: ema)")
    strategy.add_argument("--rules", help="Rule strategy YAML (required with --strategy rules)")

    output = parser.add_argument_group("output")
    output.add_argument("--format", choices=OUTPUT_FORMATS, default="text", help="Output format (default: text)")
    output.add_argument("--output", help="Output file (json) or directory (csv)")
    output.add_argument("--quiet", action="store_true", help="Only print errors")
    output.add_argument("--log-level", help="Log level (default: MARKETSIM_LOG_LEVEL or WARNING)")

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> SimConfig:
    """
    Build the run config: file (or defaults) first, then CLI overrides.

    Raises:
        FileNotFoundError: If --config does not exist
        ValueError: If any resulting value is invalid
    """
    config = load_config(args.config) if args.config else SimConfig()

    updates = {"market": {}, "trading": {}}
    for flag, (section, field_name) in _OVERRIDES.items():
        value = getattr(args, flag, None)
        if value is not None:
            updates[section][field_name] = value

    # replace() re-runs __post_init__ validation
    market = replace(config.market, **updates["market"]) if updates["market"] else config.market
    trading = replace(config.trading, **updates["trading"]) if updates["trading"] else config.trading
    candles = args.candles if args.candles is not None else config.candles

    return replace(config, market=market, trading=trading, candles=candles)


def build_strategy(args: argparse.Namespace):
    if args.strategy == "rules":
        if not args.rules:
            raise ValueError("--strategy rules needs --rules FILE")
        return create_strategy("rules", rules_path=args.rules)
    return create_strategy(args.strategy)


# ==============================================================================
# Output
# ==============================================================================

def print_text_result(result: BacktestResult) -> None:
    """Render a run summary as rich tables."""
    m = result.metrics
    console.print(Panel(
        f"[bold cyan]BACKTEST[/] strategy={result.strategy} seed={result.seed} "
        f"bars={len(result.bars)}\n[dim]fingerprint {result.fingerprint}[/]",
        border_style="cyan",
    ))

    perf = Table(title="Performance", show_header=False, box=None, padding=(0, 2))
    perf.add_column("Metric", style="bold")
    perf.add_column("Value", justify="right")
    ret_style = "green" if m.total_return >= 0 else "red"
    perf.add_row("Initial balance", f"{m.initial_balance:,.2f}")
    perf.add_row("Final equity", f"{m.final_equity:,.2f}")
    perf.add_row("Total return", f"[{ret_style}]{m.total_return:+.2%}[/]")
    perf.add_row("Max drawdown", f"{m.max_drawdown:.2%}")
    perf.add_row("Sharpe", f"{m.sharpe:.2f}")
    perf.add_row("Sortino", f"{m.sortino:.2f}")
    perf.add_row("CAGR", f"{m.cagr:.2%}")
    perf.add_row("Composite score", f"{m.composite_score:.4f}")
    perf.add_row("Exposure", f"{m.exposure:.1%}")
    perf.add_row("Total fees", f"{m.total_fees:,.2f}")
    console.print(perf)

    trades = Table(title="Trades", show_header=False, box=None, padding=(0, 2))
    trades.add_column("Metric", style="bold")
    trades.add_column("Value", justify="right")
    trades.add_row("Trades", str(m.total_trades))
    trades.add_row("Win rate", f"{m.win_rate:.1%}")
    trades.add_row("Profit factor", f"{m.profit_factor:.2f}")
    trades.add_row("Avg win / loss", f"{m.avg_win:,.2f} / {m.avg_loss:,.2f}")
    trades.add_row("Expectancy", f"{m.expectancy:,.2f}")
    trades.add_row("Avg R", f"{m.avg_r:.2f}")
    trades.add_row("Max consecutive losses", str(m.max_consecutive_losses))
    trades.add_row("Liquidations", str(len(result.liquidations)))
    trades.add_row("Open at end", str(len(result.open_positions)))
    console.print(trades)

    if result.stopped_early:
        console.print("[yellow]Run stopped early[/]")


def write_json_result(result: BacktestResult, output: Optional[str]) -> None:
    payload = json.dumps(result.to_dict(), indent=2, default=str)
    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(payload, encoding="utf-8")
    else:
        print(payload)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_cli_args(argv)

    load_env()
    log_dir, env_level = get_log_settings()
    log_level = "ERROR" if args.quiet else (args.log_level or env_level)
    setup_logger(log_dir=log_dir, log_level=log_level)

    try:
        config = build_config(args)
        strategy = build_strategy(args)
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[bold red]FAIL[/] {e}")
        return 2

    result = BacktestRunner(config, strategy).run()

    if args.format == "json":
        write_json_result(result, args.output)
    elif args.format == "csv":
        paths = export_csv(result, args.output or "sim_output")
        if not args.quiet:
            for name, path in paths.items():
                console.print(f"[dim]{name}:[/] {path}")
    elif not args.quiet:
        print_text_result(result)

    return 0


if __name__ == "__main__":
    sys.exit(main())
