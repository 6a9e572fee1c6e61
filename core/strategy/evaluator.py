# core/strategy/evaluator.py
from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from core.models import Bar, Position
from core.strategy.rules import RuleContext, RuleRegistry, create_default_rule_registry
from infra.config.engine_config import RuleSettings

if TYPE_CHECKING:
    from backtest.config import StrategyConfig

EXIT_STOP_LOSS = "stop_loss"
EXIT_TAKE_PROFIT = "take_profit"
EXIT_END_OF_SERIES = "end_of_series"


class RuleEvaluator:
    """
    Decides entries and exits for the simulation loop.

    Pure: the answer depends only on the rules, the current bar, the
    trailing history and the open position.
      - entry: ALL entry rules must pass; no rules -> never enter
      - exit:  stop-loss, then take-profit, then ANY exit rule
    """

    def __init__(
        self,
        registry: Optional[RuleRegistry] = None,
        settings: Optional[RuleSettings] = None,
    ) -> None:
        self.registry = registry or create_default_rule_registry()
        self.settings = settings or RuleSettings()

    @property
    def history_window(self) -> int:
        return self.settings.history_window

    def should_enter(
        self,
        rules: Sequence[str],
        bar: Bar,
        history: Sequence[Bar],
        bar_index: int = 0,
    ) -> bool:
        if not rules:
            return False

        resolved = [self.registry.get(r) for r in rules]

        # insufficient data is a plain "no"
        if len(history) < max(rule.min_history for rule in resolved):
            return False

        ctx = RuleContext(bar=bar, history=history, settings=self.settings, bar_index=bar_index)
        return all(rule.predicate(ctx) for rule in resolved)

    def exit_signal(
        self,
        rules: Sequence[str],
        bar: Bar,
        position: Position,
        strategy: StrategyConfig,
        history: Sequence[Bar] = (),
        bar_index: int = 0,
    ) -> Optional[str]:
        """
        Return why the position should close on this bar, or None.

        The reason is 'stop_loss', 'take_profit' or the id of the first
        exit rule that fired.
        """
        move_pct = position.unrealized_pct(bar.close)

        if strategy.stop_loss_pct and move_pct <= -strategy.stop_loss_pct:
            return EXIT_STOP_LOSS

        if strategy.take_profit_pct and move_pct >= strategy.take_profit_pct:
            return EXIT_TAKE_PROFIT

        if not rules:
            return None

        ctx = RuleContext(
            bar=bar,
            history=history,
            settings=self.settings,
            position=position,
            bar_index=bar_index,
        )
        for rule_id in rules:
            rule = self.registry.get(rule_id)
            if len(history) < rule.min_history:
                continue
            if rule.predicate(ctx):
                return rule_id

        return None

    def should_exit(
        self,
        rules: Sequence[str],
        bar: Bar,
        position: Position,
        strategy: StrategyConfig,
        history: Sequence[Bar] = (),
        bar_index: int = 0,
    ) -> bool:
        return self.exit_signal(rules, bar, position, strategy, history, bar_index) is not None
