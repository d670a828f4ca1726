"""
Strategy registry.

Maps strategy ids to factories so the CLI and config files can select a
strategy by name.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from .adaptive_momentum import AdaptiveMomentumStrategy
from .base import Strategy
from .ema_crossover import EmaCrossoverStrategy
from .rules import RuleStrategy, load_rule_strategy

StrategyFactory = Callable[..., Strategy]


@dataclass
class StrategyMetadata:
    """Metadata for a registered strategy."""
    strategy_id: str
    factory: StrategyFactory
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {"strategy_id": self.strategy_id, "description": self.description}


_STRATEGIES: Dict[str, StrategyMetadata] = {}


def register_strategy(strategy_id: str, factory: StrategyFactory, description: str = "") -> None:
    """Register a strategy factory under strategy_id."""
    _STRATEGIES[strategy_id] = StrategyMetadata(strategy_id, factory, description)


def create_strategy(strategy_id: str, **kwargs) -> Strategy:
    """
    Build a registered strategy.

    Raises:
        ValueError: If strategy_id is not registered
    """
    if strategy_id not in _STRATEGIES:
        raise ValueError(f"Unknown strategy '{strategy_id}'. Available: {list_strategies()}")
    return _STRATEGIES[strategy_id].factory(**kwargs)


def list_strategies() -> List[str]:
    return sorted(_STRATEGIES)


def _rules_factory(rules_path: str = None, definition=None, **_) -> Strategy:
    if definition is None:
        if rules_path is None:
            raise ValueError("The 'rules' strategy needs a rules file")
        definition = load_rule_strategy(rules_path)
    return RuleStrategy(definition)


register_strategy("ema", EmaCrossoverStrategy, "EMA(12/26) crossover with ATR stops")
register_strategy("arm", AdaptiveMomentumStrategy, "Adaptive regime momentum with drawdown, volatility and Kelly sizing")
register_strategy("rules", _rules_factory, "Declarative YAML rule strategy")
