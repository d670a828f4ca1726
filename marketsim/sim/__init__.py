"""
Position/Trading Engine.

Turns order intents into positions and positions into realized PnL under
leverage, fees, slippage, exit rules and liquidation.

Modules:
- engine: TradingEngine orchestrator
- types: intents, positions, trades, events, snapshots
- ledger: Account balance/margin/equity accounting with invariants
- execution: slippage, impact, partial fills, entry/exit pricing
- pricing: stop / target / trailing triggers
- liquidation: liquidation price and breach checks
- metrics: execution cost statistics
"""

from .types import (
    Side,
    Direction,
    ExitReason,
    OpenOrder,
    CloseOrder,
    OrderIntent,
    intent_from_dict,
    Position,
    PositionView,
    ClosedTrade,
    LiquidationEvent,
    EntryFill,
    ExitFill,
    EntryResult,
    AccountSnapshot,
    ProcessResult,
)
from .ledger import Account, LedgerConfig
from .execution import ExecutionModel, ExecutionModelConfig
from .liquidation import LiquidationModel, LiquidationModelConfig
from .pricing import ExitTrigger, check_exit_triggers
from .metrics import ExecutionMetrics, ExecutionMetricsSnapshot
from .engine import TradingEngine

__all__ = [
    "Side",
    "Direction",
    "ExitReason",
    "OpenOrder",
    "CloseOrder",
    "OrderIntent",
    "intent_from_dict",
    "Position",
    "PositionView",
    "ClosedTrade",
    "LiquidationEvent",
    "EntryFill",
    "ExitFill",
    "EntryResult",
    "AccountSnapshot",
    "ProcessResult",
    "Account",
    "LedgerConfig",
    "ExecutionModel",
    "ExecutionModelConfig",
    "LiquidationModel",
    "LiquidationModelConfig",
    "ExitTrigger",
    "check_exit_triggers",
    "ExecutionMetrics",
    "ExecutionMetricsSnapshot",
    "TradingEngine",
]
