# core/strategy/rules.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from core.models import Bar, Position
from infra.config.engine_config import RuleSettings
from infra.indicators import average_volume, rsi, sma

# Rules that read the trailing window need at least this many history bars.
MIN_HISTORY = 2


@dataclass(frozen=True)
class RuleContext:
    """
    Everything a rule may look at: the current bar and the bars before it.

    `history` never contains the current bar or anything after it.
    """
    bar: Bar
    history: Sequence[Bar]
    settings: RuleSettings
    position: Optional[Position] = None
    bar_index: int = 0


RulePredicate = Callable[[RuleContext], bool]


@dataclass(frozen=True)
class Rule:
    rule_id: str
    predicate: RulePredicate
    min_history: int = MIN_HISTORY
    description: str = ""


class RuleRegistry:
    """
    Rule id -> Rule mapping.

    Each predicate:
      (RuleContext) -> bool
    """

    def __init__(self) -> None:
        self._rules: Dict[str, Rule] = {}

    def register(
        self,
        rule_id: str,
        predicate: RulePredicate,
        min_history: int = MIN_HISTORY,
        description: str = "",
    ) -> None:
        if rule_id in self._rules:
            raise ValueError(f"Rule '{rule_id}' already registered")
        if min_history < 0:
            raise ValueError("min_history must be >= 0")
        self._rules[rule_id] = Rule(rule_id, predicate, min_history, description)

    def get(self, rule_id: str) -> Rule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise KeyError(f"Unknown rule id: {rule_id!r}") from None

    def unknown(self, rule_ids: Iterable[str]) -> List[str]:
        return [r for r in rule_ids if r not in self._rules]

    def list_rules(self) -> List[str]:
        return list(self._rules.keys())

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules


# ----------------------------------------------------------------------
# Built-in predicates
# ----------------------------------------------------------------------


def r_price_above_sma(ctx: RuleContext) -> bool:
    avg = sma(ctx.history, ctx.settings.sma_window)
    return avg is not None and ctx.bar.close > avg


def r_price_below_sma(ctx: RuleContext) -> bool:
    avg = sma(ctx.history, ctx.settings.sma_window)
    return avg is not None and ctx.bar.close < avg


def r_volume_spike(ctx: RuleContext) -> bool:
    avg = average_volume(ctx.history, ctx.settings.volume_window)
    return avg is not None and ctx.bar.volume > avg * ctx.settings.volume_spike_multiplier


def _rsi_now(ctx: RuleContext) -> Optional[float]:
    window = list(ctx.history[-ctx.settings.rsi_period:]) + [ctx.bar]
    return rsi(window, ctx.settings.rsi_period)


def r_rsi_oversold(ctx: RuleContext) -> bool:
    value = _rsi_now(ctx)
    return value is not None and value < ctx.settings.rsi_oversold


def r_rsi_overbought(ctx: RuleContext) -> bool:
    value = _rsi_now(ctx)
    return value is not None and value > ctx.settings.rsi_overbought


def r_time_exit(ctx: RuleContext) -> bool:
    if ctx.position is None:
        return False
    return ctx.bar_index - ctx.position.entry_index >= ctx.settings.max_holding_bars


def r_always(ctx: RuleContext) -> bool:
    return True


# ----------------------------------------------------------------------
# Helper to build default registry
# ----------------------------------------------------------------------


def create_default_rule_registry() -> RuleRegistry:
    reg = RuleRegistry()
    reg.register("price_above_sma", r_price_above_sma, description="close above the trailing SMA")
    reg.register("price_below_sma", r_price_below_sma, description="close below the trailing SMA")
    reg.register("volume_spike", r_volume_spike, description="volume above multiplier x trailing average")
    reg.register("rsi_oversold", r_rsi_oversold, description="RSI below the oversold level")
    reg.register("rsi_overbought", r_rsi_overbought, description="RSI above the overbought level")
    reg.register("time_exit", r_time_exit, min_history=0, description="position held max_holding_bars")
    reg.register("always", r_always, min_history=0, description="always true (buy and hold)")
    return reg
