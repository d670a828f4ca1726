"""
Order execution model.

Prices entries and exits against the current bar's close:
- Entry: partial-fill scaling, slippage + impact, taker fee, margin,
  resize-to-affordable when the balance cannot cover margin + fee
- Exit: opposite-direction slippage + impact, taker fee, gross price PnL

Execution flow for an entry:
1. Size = intent size or default size (fixed quote amount / percent of equity)
2. Size *= partial fill ratio
3. Price = close × (1 ± (slippage + impact))
4. Fee = notional × taker rate; margin = notional / leverage (or notional in spot)
5. If margin + fee > balance: notional = balance / (margin_ratio + taker_rate)
6. Size <= 0 or non-finite at any step: rejected (silently dropped by the engine)
"""

from dataclasses import dataclass, field
from typing import Optional

from ...config.config import TradingConfig
from ...market.types import Bar
from ...utils.helpers import is_finite_positive
from ..types import EntryFill, EntryResult, ExitFill, OpenOrder, Position
from .impact_model import ImpactConfig, ImpactModel
from .liquidity_model import LiquidityConfig, LiquidityModel
from .slippage_model import SlippageConfig, SlippageModel


@dataclass
class ExecutionModelConfig:
    """Configuration for execution model."""
    slippage: SlippageConfig = field(default_factory=SlippageConfig)
    impact: ImpactConfig = field(default_factory=ImpactConfig)
    liquidity: LiquidityConfig = field(default_factory=LiquidityConfig)
    taker_fee_rate: float = 0.0004
    leverage: float = 10.0
    is_futures: bool = True
    size_mode: str = "fixed"
    size_value: float = 1000.0

    @classmethod
    def from_trading_config(cls, trading: TradingConfig) -> "ExecutionModelConfig":
        """Create ExecutionModelConfig from TradingConfig."""
        return cls(
            slippage=SlippageConfig(slippage_pct=trading.slippage_pct),
            impact=ImpactConfig(
                mode=trading.impact_mode,
                sqrt_factor=trading.impact_factor,
                max_impact_bps=trading.max_impact_bps,
            ),
            liquidity=LiquidityConfig(partial_fill_ratio=trading.partial_fill_ratio),
            taker_fee_rate=trading.taker_fee_rate,
            leverage=trading.leverage,
            is_futures=trading.is_futures,
            size_mode=trading.size_mode,
            size_value=trading.size_value,
        )

    @property
    def margin_ratio(self) -> float:
        """Margin per unit of notional."""
        return 1.0 / self.leverage if self.is_futures else 1.0


class ExecutionModel:
    """
    Handles order pricing with slippage, impact and partial fills.

    Pure pricing: the model never touches the account. The engine posts
    the resulting fills.
    """

    def __init__(self, config: Optional[ExecutionModelConfig] = None):
        """
        Initialize execution model.

        Args:
            config: Optional configuration
        """
        self._config = config or ExecutionModelConfig()
        self._slippage = SlippageModel(self._config.slippage)
        self._impact = ImpactModel(self._config.impact)
        self._liquidity = LiquidityModel(self._config.liquidity)

    @property
    def config(self) -> ExecutionModelConfig:
        return self._config

    def default_size(self, price: float, equity: float) -> float:
        """
        Size for an intent that gives none.

        fixed: size_value quote currency worth; percent: size_value % of equity.
        """
        if not is_finite_positive(price):
            return 0.0
        if self._config.size_mode == "percent":
            return max(0.0, equity) * self._config.size_value / 100.0 / price
        return self._config.size_value / price

    def fill_entry(
        self,
        intent: OpenOrder,
        bar: Bar,
        available_balance: float,
        equity: float,
    ) -> EntryResult:
        """
        Price an entry at the bar close.

        Args:
            intent: Open intent
            bar: Current bar (reference price = close)
            available_balance: Free cash that must cover margin + fee
            equity: Current equity (percent sizing)

        Returns:
            EntryResult with a fill or a rejection reason
        """
        cfg = self._config
        ref_price = bar.close
        side = intent.side

        if intent.size is None:
            size = self.default_size(self._slippage.apply_slippage(ref_price, side), equity)
        else:
            size = intent.size
        if isinstance(size, bool) or not isinstance(size, (int, float)) or not is_finite_positive(size):
            return EntryResult.rejected("invalid_size")

        size = self._liquidity.get_fill_size(float(size))
        if not is_finite_positive(size):
            return EntryResult.rejected("invalid_size")

        impact_rate = self._impact.get_impact_rate(size * ref_price, bar)
        price = self._slippage.apply_slippage(ref_price, side, impact_rate)
        if not is_finite_positive(price):
            return EntryResult.rejected("invalid_price")

        notional = size * price
        fee = notional * cfg.taker_fee_rate
        margin = notional * cfg.margin_ratio
        resized = False

        if margin + fee > available_balance:
            notional = available_balance / (cfg.margin_ratio + cfg.taker_fee_rate)
            size = notional / price
            if not is_finite_positive(size):
                return EntryResult.rejected("insufficient_balance")
            fee = notional * cfg.taker_fee_rate
            margin = notional * cfg.margin_ratio
            resized = True

        return EntryResult.filled(EntryFill(
            side=side,
            price=price,
            size=size,
            notional=notional,
            fee=fee,
            margin=margin,
            slippage_cost=abs(price - ref_price) * size,
            resized=resized,
        ))

    def fill_exit(self, position: Position, ref_price: float, bar: Bar) -> ExitFill:
        """
        Price an exit at ref_price (trigger level or bar close).

        Args:
            position: Position being closed
            ref_price: Reference exit price before slippage
            bar: Current bar (impact volume)

        Returns:
            ExitFill with execution price, fee and gross price PnL
        """
        impact_rate = self._impact.get_impact_rate(position.size * ref_price, bar)
        price = self._slippage.apply_exit_slippage(ref_price, position.direction, impact_rate)
        fee = position.size * price * self._config.taker_fee_rate
        return ExitFill(
            price=price,
            fee=fee,
            gross_pnl=position.pnl_at(price),
            slippage_cost=abs(price - ref_price) * position.size,
        )
