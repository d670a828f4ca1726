"""
Declarative rule strategy.

A strategy definition names indicator series and a list of rules. Each
rule compares series at the current bar (and the previous one for
crossings and slopes) and, when it hits, yields an action:

    buy          open a long (skipped while max_positions_per_side longs are open)
    sell         open a short (same cap for shorts)
    close_long   close all longs
    close_short  close all shorts

Rule types:
    cross          a crossed b in either direction since the previous bar
    above / below  a > b / a < b
    greater_than   a > value (or b when no value)
    less_than      a < value (or b when no value)
    slope_positive / slope_negative   a rose / fell since the previous bar

Built-in series: open, high, low, close, volume. Named indicators (ema,
sma, atr) are declared under "indicators". Rules referencing an undefined
value (warmup NaN, first bar) do not fire.

Series are rebuilt each bar over the trailing definition.lookback bars
(longest period × 4 + 1), so EMAs seed at the start of that window.

Example YAML:
    name: ema_cross
    indicators:
      fast: {type: ema, period: 12}
      slow: {type: ema, period: 26}
    rules:
      - {type: cross, a: fast, b: slow, action: close_long}
      - {type: above, a: fast, b: slow, action: buy}
    stop_loss: 2.0
"""

import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import yaml

from ..market.types import Bar
from ..sim.types import CloseOrder, Direction, OpenOrder, OrderIntent, Side
from .base import Strategy, StrategySnapshot
from .indicators import EMA_LOOKBACK_MULT, atr, bar_field, ema, sma

RULE_TYPES = (
    "cross", "above", "below", "greater_than", "less_than", "slope_positive", "slope_negative",
)
# Rule types that need both operands at the current bar
BINARY_RULES = ("cross", "above", "below")
ACTIONS = ("buy", "sell", "close_long", "close_short")
INDICATOR_TYPES = ("ema", "sma", "atr")
BUILTIN_SERIES = ("open", "high", "low", "close", "volume")


# ==============================================================================
# Definition types
# ==============================================================================

@dataclass(frozen=True)
class IndicatorSpec:
    """A named indicator series."""
    type: str
    period: int = 14
    source: str = "close"

    def __post_init__(self):
        if self.type not in INDICATOR_TYPES:
            raise ValueError(f"Unknown indicator type '{self.type}'. Valid: {INDICATOR_TYPES}")
        if not isinstance(self.period, int) or self.period < 1:
            raise ValueError(f"Indicator period must be a positive integer, got {self.period!r}")
        if self.source not in BUILTIN_SERIES:
            raise ValueError(f"Indicator source must be one of {BUILTIN_SERIES}, got '{self.source}'")

    def compute(self, bars: Sequence[Bar]) -> np.ndarray:
        if self.type == "atr":
            return atr(bar_field(bars, "high"), bar_field(bars, "low"), bar_field(bars, "close"), self.period)
        values = bar_field(bars, self.source)
        if self.type == "ema":
            return ema(values, self.period)
        return sma(values, self.period)


@dataclass(frozen=True)
class Rule:
    """One condition -> action mapping."""
    type: str
    a: str
    action: str
    b: Optional[str] = None
    value: Optional[float] = None

    def __post_init__(self):
        if self.type not in RULE_TYPES:
            raise ValueError(f"Unknown rule type '{self.type}'. Valid: {RULE_TYPES}")
        if self.action not in ACTIONS:
            raise ValueError(f"Unknown rule action '{self.action}'. Valid: {ACTIONS}")
        if self.type in BINARY_RULES and self.b is None:
            raise ValueError(f"Rule type '{self.type}' needs operand 'b'")
        if self.type in ("greater_than", "less_than") and self.b is None and self.value is None:
            raise ValueError(f"Rule type '{self.type}' needs 'b' or 'value'")


@dataclass
class RuleStrategyDefinition:
    """
    Complete declarative strategy.

    Attributes:
        name: Strategy name
        indicators: Named indicator series
        rules: Rules evaluated in order each bar
        size: Entry size in base units (None = engine default sizing)
        stop_loss / take_profit / trailing_stop: Exit percents (None = engine defaults)
        max_positions_per_side: Entries skipped while this many are open on that side
    """
    name: str = "rules"
    indicators: Dict[str, IndicatorSpec] = field(default_factory=dict)
    rules: List[Rule] = field(default_factory=list)
    size: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    trailing_stop: Optional[float] = None
    max_positions_per_side: int = 1

    def __post_init__(self):
        known = set(self.indicators) | set(BUILTIN_SERIES)
        for name in self.indicators:
            if name in BUILTIN_SERIES:
                raise ValueError(f"Indicator name '{name}' shadows a built-in series")
        for rule in self.rules:
            for operand in (rule.a, rule.b):
                if operand is not None and operand not in known:
                    raise ValueError(f"Rule references unknown series '{operand}'. Known: {sorted(known)}")
        if not isinstance(self.max_positions_per_side, int) or self.max_positions_per_side < 1:
            raise ValueError(
                f"max_positions_per_side must be a positive integer, got {self.max_positions_per_side!r}"
            )

    @property
    def lookback(self) -> int:
        """Trailing bars evaluated each step: enough for every indicator plus the previous bar."""
        longest = max((spec.period for spec in self.indicators.values()), default=1)
        return longest * EMA_LOOKBACK_MULT + 1


def rule_strategy_from_dict(raw: Dict[str, Any]) -> RuleStrategyDefinition:
    """
    Build a definition from a plain mapping (parsed YAML).

    Raises:
        ValueError: On unknown keys, types, actions or series
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Rule strategy must be a mapping, got {type(raw).__name__}")
    allowed = {f.name for f in fields(RuleStrategyDefinition)}
    unknown = sorted(set(raw) - allowed)
    if unknown:
        raise ValueError(f"Unknown keys in rule strategy: {unknown}")

    try:
        indicators = {
            name: IndicatorSpec(**spec) for name, spec in (raw.get("indicators") or {}).items()
        }
        rules = [Rule(**rule) for rule in (raw.get("rules") or [])]
    except TypeError as e:
        raise ValueError(f"Malformed rule strategy entry: {e}") from e

    params = {k: v for k, v in raw.items() if k not in ("indicators", "rules")}
    return RuleStrategyDefinition(indicators=indicators, rules=rules, **params)


def load_rule_strategy(path: Union[str, Path]) -> RuleStrategyDefinition:
    """
    Load a rule strategy from YAML.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the definition is invalid
    """
    rules_path = Path(path)
    if not rules_path.exists():
        raise FileNotFoundError(f"Rule strategy file not found: {rules_path}")
    with open(rules_path, "r", encoding="utf-8") as f:
        return rule_strategy_from_dict(yaml.safe_load(f))


# ==============================================================================
# Evaluation
# ==============================================================================

def _at(series: Dict[str, np.ndarray], name: Optional[str], i: int) -> Optional[float]:
    if name is None or i < 0:
        return None
    values = series.get(name)
    if values is None or i >= len(values):
        return None
    v = float(values[i])
    return v if math.isfinite(v) else None


def evaluate_rules(rules: Sequence[Rule], series: Dict[str, np.ndarray], i: int) -> List[str]:
    """
    Evaluate rules at index i.

    Args:
        rules: Rules in order
        series: Named series (all the same length)
        i: Bar index into the series

    Returns:
        Actions of the rules that hit, in rule order
    """
    actions: List[str] = []
    for rule in rules:
        a = _at(series, rule.a, i)
        b = _at(series, rule.b, i)
        ap = _at(series, rule.a, i - 1)
        bp = _at(series, rule.b, i - 1)

        if a is None:
            continue
        if rule.type in BINARY_RULES and b is None:
            continue

        hit = False
        if rule.type == "cross":
            hit = ap is not None and bp is not None and ((ap <= bp and a > b) or (ap >= bp and a < b))
        elif rule.type == "above":
            hit = a > b
        elif rule.type == "below":
            hit = a < b
        elif rule.type in ("greater_than", "less_than"):
            threshold = rule.value if rule.value is not None else b
            if threshold is None:
                continue
            hit = a > threshold if rule.type == "greater_than" else a < threshold
        elif rule.type == "slope_positive":
            hit = ap is not None and a - ap > 0
        elif rule.type == "slope_negative":
            hit = ap is not None and a - ap < 0

        if hit:
            actions.append(rule.action)
    return actions


def compute_series(definition: RuleStrategyDefinition, bars: Sequence[Bar]) -> Dict[str, np.ndarray]:
    series = {name: bar_field(bars, name) for name in BUILTIN_SERIES}
    for name, spec in definition.indicators.items():
        series[name] = spec.compute(bars)
    return series


class RuleStrategy(Strategy):
    """Runs a RuleStrategyDefinition."""

    def __init__(self, definition: RuleStrategyDefinition):
        self.definition = definition

    @property
    def name(self) -> str:
        return self.definition.name

    def init(self, snapshot: StrategySnapshot) -> Dict[str, Any]:
        return {"fired": 0}

    def _open(self, side: Side) -> OpenOrder:
        d = self.definition
        return OpenOrder(
            side=side,
            size=d.size,
            stop_loss=d.stop_loss,
            take_profit=d.take_profit,
            trailing_stop=d.trailing_stop,
        )

    def on_bar(self, snapshot: StrategySnapshot, state: Dict[str, Any]) -> List[OrderIntent]:
        window = snapshot.history[-self.definition.lookback:]
        series = compute_series(self.definition, window)
        actions = evaluate_rules(self.definition.rules, series, len(window) - 1)
        if not actions:
            return []

        cap = self.definition.max_positions_per_side
        longs = snapshot.count(Direction.LONG)
        shorts = snapshot.count(Direction.SHORT)
        intents: List[OrderIntent] = []

        for action in dict.fromkeys(actions):
            if action == "close_long" and longs:
                intents.append(CloseOrder(side=Side.SELL))
                longs = 0
            elif action == "close_short" and shorts:
                intents.append(CloseOrder(side=Side.BUY))
                shorts = 0
            elif action == "buy" and longs < cap:
                intents.append(self._open(Side.BUY))
                longs += 1
            elif action == "sell" and shorts < cap:
                intents.append(self._open(Side.SELL))
                shorts += 1

        state["fired"] += len(intents)
        return intents
