"""
Trading engine orchestrator.

Thin orchestrator that routes to the modular components:
- execution: entry/exit pricing (slippage, impact, partial fills, resize)
- pricing: stop / target / trailing triggers per position per bar
- liquidation: isolated-margin liquidation price and breach check
- ledger: balance, margin, fees, equity history, exposure counters
- metrics: execution cost and fill statistics

Per-bar contract (driven by the runner):
1. update(bar): positions are checked against the bar in priority order
   (watermark, stop, target, trail, liquidation); survivors are marked
   to the close and equity is sampled
2. the strategy sees snapshot() and submits intents
3. process_orders(bar): queued intents execute at the same bar's close

Failure semantics: nothing here raises during a run. Invalid or
unaffordable orders are dropped (or resized) and logged at DEBUG; a
liquidation is returned as a LiquidationEvent.
"""

import math
from typing import List, Optional

from ..config.config import TradingConfig
from ..market.types import Bar, Side
from ..utils.logger import get_logger
from .execution import ExecutionModel, ExecutionModelConfig
from .ledger import Account, LedgerConfig
from .liquidation import LiquidationModel, LiquidationModelConfig
from .metrics import ExecutionMetrics, ExecutionMetricsSnapshot
from .pricing import check_exit_triggers
from .types import (
    AccountSnapshot,
    ClosedTrade,
    CloseOrder,
    Direction,
    ExitReason,
    LiquidationEvent,
    OpenOrder,
    OrderIntent,
    Position,
    ProcessResult,
    is_valid_exit_pct,
)

logger = get_logger()


class TradingEngine:
    """
    Position and margin lifecycle engine.

    Owns all open positions, the closed-trade ledger and the account.
    Callers only read state through snapshot() and the read-only
    properties.

    Usage:
        engine = TradingEngine(TradingConfig(leverage=10))
        engine.update(bar)
        engine.submit(OpenOrder(side=Side.BUY, size=2))
        engine.process_orders(bar)
    """

    def __init__(self, config: Optional[TradingConfig] = None, ledger_config: Optional[LedgerConfig] = None):
        """
        Initialize the engine.

        Args:
            config: Trading configuration (validated at construction)
            ledger_config: Optional ledger settings (invariant checking)
        """
        self.config = config or TradingConfig()

        self._account = Account(self.config.initial_balance, ledger_config)
        self._execution = ExecutionModel(ExecutionModelConfig.from_trading_config(self.config))
        self._liquidation: Optional[LiquidationModel] = None
        if self.config.is_futures:
            self._liquidation = LiquidationModel(LiquidationModelConfig(
                leverage=self.config.leverage,
                maintenance_margin_rate=self.config.maintenance_rate,
            ))
        self._metrics = ExecutionMetrics()

        self._positions: List[Position] = []
        self._closed_trades: List[ClosedTrade] = []
        self._liquidations: List[LiquidationEvent] = []
        self._pending: List[OrderIntent] = []
        self._next_position_id = 1

    # =========================================================================
    # Read-only state
    # =========================================================================

    @property
    def balance(self) -> float:
        return self._account.balance

    @property
    def equity(self) -> float:
        return self._account.equity

    @property
    def total_fees(self) -> float:
        return self._account.total_fees

    @property
    def margin_in_use(self) -> float:
        return self._account.margin_in_use

    @property
    def equity_history(self) -> List[float]:
        return list(self._account.equity_history)

    @property
    def exposed_bars(self) -> int:
        return self._account.exposed_bars

    @property
    def total_bars(self) -> int:
        return self._account.total_bars

    @property
    def positions(self) -> List[Position]:
        """Open positions (copy of the list; do not mutate the positions)."""
        return list(self._positions)

    @property
    def closed_trades(self) -> List[ClosedTrade]:
        return list(self._closed_trades)

    @property
    def liquidations(self) -> List[LiquidationEvent]:
        return list(self._liquidations)

    @property
    def pending_orders(self) -> List[OrderIntent]:
        return list(self._pending)

    @property
    def account(self) -> Account:
        return self._account

    def default_size(self, price: float) -> float:
        """Size an OpenOrder without an explicit size would request at price."""
        return self._execution.default_size(price, self._account.equity)

    def get_execution_metrics(self) -> ExecutionMetricsSnapshot:
        return self._metrics.get_metrics()

    def snapshot(self) -> AccountSnapshot:
        """Read-only account state with frozen position views."""
        acct = self._account
        return AccountSnapshot(
            balance=acct.balance,
            equity=acct.equity,
            margin_in_use=acct.margin_in_use,
            unrealized_pnl=acct.unrealized_pnl,
            total_fees=acct.total_fees,
            positions=tuple(p.view() for p in self._positions),
            exposed_bars=acct.exposed_bars,
            total_bars=acct.total_bars,
        )

    # =========================================================================
    # Per-bar update
    # =========================================================================

    def update(self, bar: Bar) -> List[LiquidationEvent]:
        """
        Check every open position against bar.

        Per position, in order: watermark update, stop-loss, take-profit,
        trailing stop, liquidation (futures only). At most one exit per
        position per bar. Surviving positions are marked at the close.

        Args:
            bar: Newly produced bar

        Returns:
            Liquidation events raised on this bar (possibly empty)
        """
        self._account.count_bar(exposed=bool(self._positions))
        events: List[LiquidationEvent] = []

        for position in list(self._positions):
            trigger = check_exit_triggers(position, bar)
            if trigger is not None:
                self._close_position(position, trigger.price, bar, trigger.reason)
                continue

            if self._liquidation is not None and self._liquidation.is_breached(position, bar):
                events.append(self._liquidate(position, bar))
                continue

            position.unrealized_pnl = position.pnl_at(bar.close)

        self._account.mark(self._positions, record=True)
        return events

    # =========================================================================
    # Orders
    # =========================================================================

    def submit(self, intent: OrderIntent) -> None:
        """Queue an intent for the next process_orders() call."""
        if not isinstance(intent, (OpenOrder, CloseOrder)):
            logger.debug(f"Dropped unknown intent type: {type(intent).__name__}")
            self._metrics.record_rejection("unknown_intent")
            return
        self._pending.append(intent)

    def submit_many(self, intents) -> None:
        for intent in intents or ():
            self.submit(intent)

    def process_orders(self, bar: Bar) -> ProcessResult:
        """
        Execute all queued intents against bar's close, in submission order.

        Args:
            bar: Current bar (reference price = close)

        Returns:
            ProcessResult with opened positions, closed trades and drop count
        """
        result = ProcessResult()
        pending, self._pending = self._pending, []

        for intent in pending:
            if isinstance(intent, CloseOrder):
                closed = self._close_matching(intent, bar)
                if closed is None:
                    result.dropped += 1
                else:
                    result.closed.extend(closed)
            else:
                position = self._open_position(intent, bar)
                if position is None:
                    result.dropped += 1
                else:
                    result.opened.append(position)

        if result.opened or result.closed:
            for position in self._positions:
                position.unrealized_pnl = position.pnl_at(bar.close)
            self._account.mark(self._positions, record=False)

        return result

    def close_all(self, bar: Bar, reason: ExitReason = ExitReason.SIGNAL) -> List[ClosedTrade]:
        """Close every open position at bar's close."""
        trades = [
            self._close_position(position, bar.close, bar, reason)
            for position in list(self._positions)
        ]
        self._account.mark(self._positions, record=False)
        return trades

    # =========================================================================
    # Internals
    # =========================================================================

    def _drop(self, reason: str, intent: OrderIntent) -> None:
        self._metrics.record_rejection(reason)
        logger.debug(f"Dropped order ({reason}): {intent.to_dict()}")

    def _open_position(self, intent: OpenOrder, bar: Bar) -> Optional[Position]:
        cfg = self.config
        if not all(is_valid_exit_pct(v) for v in (intent.stop_loss, intent.take_profit, intent.trailing_stop)):
            self._drop("invalid_exit_pct", intent)
            return None

        entry = self._execution.fill_entry(intent, bar, self._account.balance, self._account.equity)
        if entry.fill is None:
            self._drop(entry.rejection, intent)
            return None
        fill = entry.fill

        direction = Direction.from_side(fill.side)
        liq_price = None
        if self._liquidation is not None:
            liq_price = self._liquidation.calculate_liquidation_price(fill.price, direction)

        position = Position(
            position_id=self._next_position_id,
            direction=direction,
            entry_price=fill.price,
            size=fill.size,
            notional=fill.notional,
            margin=fill.margin,
            entry_fee=fill.fee,
            stop_loss_pct=cfg.stop_loss_pct if intent.stop_loss is None else float(intent.stop_loss),
            take_profit_pct=cfg.take_profit_pct if intent.take_profit is None else float(intent.take_profit),
            trailing_stop_pct=cfg.trailing_stop_pct if intent.trailing_stop is None else float(intent.trailing_stop),
            trail_high=fill.price,
            trail_low=fill.price,
            entry_bar=bar.index,
            liquidation_price=liq_price,
        )
        self._next_position_id += 1

        self._account.apply_entry(fill.margin, fill.fee)
        self._positions.append(position)
        self._metrics.record_entry(fill)

        if fill.resized:
            logger.trade("ORDER_RESIZED", fill.side.value, fill.size, fill.price, balance=f"{self.balance:.2f}")
        logger.trade(
            "POSITION_OPENED", direction.value, fill.size, fill.price,
            id=position.position_id, margin=f"{fill.margin:.2f}", fee=f"{fill.fee:.4f}",
        )
        return position

    def _select_for_close(self, intent: CloseOrder) -> Optional[List[Position]]:
        if intent.position_id is not None:
            return [p for p in self._positions if p.position_id == intent.position_id]
        if intent.side == Side.SELL:
            return [p for p in self._positions if p.direction == Direction.LONG]
        if intent.side == Side.BUY:
            return [p for p in self._positions if p.direction == Direction.SHORT]
        return None

    def _close_matching(self, intent: CloseOrder, bar: Bar) -> Optional[List[ClosedTrade]]:
        targets = self._select_for_close(intent)
        if targets is None:
            self._drop("close_without_target", intent)
            return None
        return [self._close_position(p, bar.close, bar, ExitReason.SIGNAL) for p in targets]

    def _close_position(self, position: Position, ref_price: float, bar: Bar, reason: ExitReason) -> ClosedTrade:
        fill = self._execution.fill_exit(position, ref_price, bar)
        trade = ClosedTrade(
            position_id=position.position_id,
            direction=position.direction,
            entry_price=position.entry_price,
            exit_price=fill.price,
            size=position.size,
            realized_pnl=fill.gross_pnl,
            fees=position.entry_fee + fill.fee,
            entry_bar=position.entry_bar,
            exit_bar=bar.index,
            reason=reason,
            stop_loss_pct=position.stop_loss_pct,
            margin=position.margin,
        )

        self._positions.remove(position)
        self._account.apply_exit(position.margin, fill.gross_pnl, fill.fee)
        self._closed_trades.append(trade)
        self._metrics.record_exit(fill, position.size)

        logger.trade(
            "POSITION_CLOSED", position.direction.value, position.size, fill.price,
            pnl=trade.net_pnl, id=position.position_id, reason=reason.value,
        )
        return trade

    def _liquidate(self, position: Position, bar: Bar) -> LiquidationEvent:
        liq_price = position.liquidation_price
        if liq_price is None or not math.isfinite(liq_price):
            liq_price = bar.close

        trade = ClosedTrade(
            position_id=position.position_id,
            direction=position.direction,
            entry_price=position.entry_price,
            exit_price=liq_price,
            size=position.size,
            realized_pnl=-position.margin,
            fees=position.entry_fee,
            entry_bar=position.entry_bar,
            exit_bar=bar.index,
            reason=ExitReason.LIQUIDATION,
            stop_loss_pct=position.stop_loss_pct,
            margin=position.margin,
        )

        self._positions.remove(position)
        self._account.apply_liquidation(position.margin)
        self._closed_trades.append(trade)
        self._metrics.record_liquidation(position.margin)

        event = LiquidationEvent(
            position_id=position.position_id,
            direction=position.direction,
            bar_index=bar.index,
            entry_price=position.entry_price,
            liquidation_price=liq_price,
            size=position.size,
            margin_lost=position.margin,
            trade=trade,
        )
        self._liquidations.append(event)
        logger.liquidation(position.position_id, position.direction.value, liq_price, position.margin)
        return event
