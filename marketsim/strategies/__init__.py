"""
Strategies: the contract, indicator primitives and bundled strategies.
"""

from .adaptive_momentum import AdaptiveMomentumState, AdaptiveMomentumStrategy, MarketRead
from .base import Strategy, StrategySnapshot
from .ema_crossover import EmaCrossoverStrategy, EmaCrossoverState
from .rules import (
    IndicatorSpec,
    Rule,
    RuleStrategy,
    RuleStrategyDefinition,
    evaluate_rules,
    load_rule_strategy,
    rule_strategy_from_dict,
)
from .registry import create_strategy, list_strategies, register_strategy

__all__ = [
    "Strategy",
    "StrategySnapshot",
    "AdaptiveMomentumStrategy",
    "AdaptiveMomentumState",
    "MarketRead",
    "EmaCrossoverStrategy",
    "EmaCrossoverState",
    "IndicatorSpec",
    "Rule",
    "RuleStrategy",
    "RuleStrategyDefinition",
    "evaluate_rules",
    "load_rule_strategy",
    "rule_strategy_from_dict",
    "create_strategy",
    "list_strategies",
    "register_strategy",
]
