# backtest/engine.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Union
from uuid import uuid4

from backtest.config import BacktestRequest, StrategyConfig
from backtest.validation import validate_request
from core.errors import DataIntegrityError, ProviderUnavailableError
from core.models import Bar, EquityState, Position
from core.results.metrics import compute_summary
from core.results.models import BacktestResult, EquityPoint, Trade
from core.results.report import assemble_result, publish_result
from core.results.repository import ResultSink
from core.strategy.evaluator import EXIT_END_OF_SERIES, RuleEvaluator
from core.strategy.rules import RuleRegistry, create_default_rule_registry
from infra.config import EngineConfig
from infra.data_source import BarSeriesProvider, SyntheticBarProvider
from infra.logging_setup import get_logger

log = get_logger("backtest.engine")


@dataclass
class SimulationOutcome:
    trades: List[Trade]
    equity: EquityState
    equity_curve: List[EquityPoint] = field(default_factory=list)
    bars_processed: int = 0


# ----------------------------------------------------------------
# Simulation loop
# ----------------------------------------------------------------


def _check_bar(bar: Bar, idx: int, prev: Optional[Bar]) -> None:
    problem = bar.integrity_problem()
    if problem is None and prev is not None and bar.date <= prev.date:
        problem = f"date {bar.date} not after previous bar date {prev.date}"
    if problem is not None:
        raise DataIntegrityError(f"Malformed bar #{idx} ({bar.date}): {problem}", index=idx)


def _close_position(
    position: Position,
    bar: Bar,
    idx: int,
    strategy: StrategyConfig,
    capital_at_entry: float,
    reason: str,
) -> Trade:
    exit_price = bar.close
    pnl = position.pnl_at(exit_price, strategy.position_size)
    pnl_percent = pnl / capital_at_entry * 100.0

    if not (math.isfinite(pnl) and math.isfinite(pnl_percent)):
        raise DataIntegrityError(
            f"Trade closed on bar #{idx} ({bar.date}) has non-finite P&L "
            f"(pnl={pnl!r}, pnl_percent={pnl_percent!r}); position_size={strategy.position_size!r} "
            f"is too large for these prices",
            index=idx,
        )

    return Trade(
        entry_date=position.entry_date,
        exit_date=bar.date,
        entry_price=position.entry_price,
        exit_price=exit_price,
        direction=position.direction,
        pnl=pnl,
        pnl_percent=pnl_percent,
        exit_reason=reason,
        bars_held=idx - position.entry_index,
    )


def _check_equity(equity: EquityState, initial_capital: float, bar: Bar, idx: int) -> None:
    # running totals can overflow even when every single trade is finite
    return_pct = (equity.capital - initial_capital) / initial_capital * 100.0
    if not (math.isfinite(equity.capital) and math.isfinite(return_pct)):
        raise DataIntegrityError(
            f"Equity overflowed after trade closed on bar #{idx} ({bar.date}): capital={equity.capital!r}",
            index=idx,
        )


def simulate(
    bars: Sequence[Bar],
    strategy: StrategyConfig,
    initial_capital: float,
    *,
    evaluator: Optional[RuleEvaluator] = None,
    max_bars: Optional[int] = None,
) -> SimulationOutcome:
    """
    Replay `bars` once, bar by bar.

    State machine:
      - Flat:       entry rules pass on bar i -> open at bar[i].close
      - InPosition: exit fires on bar i, or i is the last bar -> close at bar[i].close

    One position at a time (entry signals while in a position are ignored),
    no entry on the last bar, no entry once capital is used up.
    Every bar is integrity-checked when reached; the first bad bar, or a
    trade whose P&L or the running equity overflows, raises
    DataIntegrityError and nothing is returned.

    Deterministic: same bars + same strategy -> same trades.
    """
    if initial_capital <= 0:
        raise ValueError("initial_capital must be > 0")

    evaluator = evaluator or RuleEvaluator()

    if max_bars is not None and len(bars) > max_bars:
        log.info("Truncating series from %d to max_bars=%d", len(bars), max_bars)
        bars = bars[:max_bars]

    window = evaluator.history_window
    last_idx = len(bars) - 1

    equity = EquityState.start(initial_capital)
    curve: List[EquityPoint] = []
    trades: List[Trade] = []
    position: Optional[Position] = None
    prev: Optional[Bar] = None

    if bars:
        curve.append(EquityPoint(date=bars[0].date, equity=equity.capital))

    for idx, bar in enumerate(bars):
        _check_bar(bar, idx, prev)
        prev = bar

        history = bars[max(0, idx - window):idx]

        # -------------------------------
        # Flat
        # -------------------------------
        if position is None:
            if idx == last_idx or equity.capital <= 0:
                continue

            if evaluator.should_enter(strategy.entry_rules, bar, history, bar_index=idx):
                position = Position(
                    direction=strategy.direction,
                    entry_price=bar.close,
                    entry_date=bar.date,
                    entry_index=idx,
                )
                log.debug(
                    "Enter %s at %.4f on %s (bar %d)",
                    position.direction.value,
                    bar.close,
                    bar.date,
                    idx,
                )
            continue

        # -------------------------------
        # In position
        # -------------------------------
        reason = evaluator.exit_signal(
            strategy.exit_rules,
            bar,
            position,
            strategy,
            history=history,
            bar_index=idx,
        )
        if reason is None and idx == last_idx:
            reason = EXIT_END_OF_SERIES

        if reason is None:
            continue

        trade = _close_position(position, bar, idx, strategy, equity.capital, reason)
        trades.append(trade)
        equity.apply(trade.pnl)
        _check_equity(equity, initial_capital, bar, idx)
        curve.append(EquityPoint(date=bar.date, equity=equity.capital))
        position = None

        log.debug(
            "Exit at %.4f on %s (%s): pnl=%.4f capital=%.2f drawdown=%.2f%%",
            trade.exit_price,
            trade.exit_date,
            reason,
            trade.pnl,
            equity.capital,
            equity.max_drawdown_pct,
        )

        if equity.capital <= 0:
            log.warning("Capital exhausted on %s (capital=%.2f); no further entries", bar.date, equity.capital)

    return SimulationOutcome(
        trades=trades,
        equity=equity,
        equity_curve=curve,
        bars_processed=len(bars),
    )


# ----------------------------------------------------------------
# Engine
# ----------------------------------------------------------------


class BacktestEngine:
    """
    Backtest engine for one symbol & one strategy per run.

    run():
      validate request -> fetch bars -> simulate -> summary -> assemble
      -> hand to the result sink -> return the result

    All I/O (bars, persistence) happens before or after the loop. The
    engine keeps no per-run state on itself, so one engine can serve
    concurrent callers.
    """

    def __init__(
        self,
        engine_cfg: Optional[EngineConfig] = None,
        provider: Optional[BarSeriesProvider] = None,
        rule_registry: Optional[RuleRegistry] = None,
        result_sink: Optional[ResultSink] = None,
    ) -> None:
        self.engine_cfg = engine_cfg or EngineConfig()
        self.provider = provider or SyntheticBarProvider()
        self.rules = rule_registry or create_default_rule_registry()
        self.result_sink = result_sink
        self.evaluator = RuleEvaluator(self.rules, self.engine_cfg.rules)
        self.log = log

    # ----------------------------------------------------------------
    # Public API
    # ----------------------------------------------------------------
    def run(
        self,
        request: Union[BacktestRequest, Mapping[str, Any]],
        user_id: str = "local",
        run_id: Optional[str] = None,
    ) -> BacktestResult:
        """
        Run the full backtest and return BacktestResult.

        Raises ValidationError, ProviderUnavailableError or
        DataIntegrityError; a failure to persist is logged only.
        """
        req = validate_request(request, self.rules)
        run_id = run_id or str(uuid4())

        self.log.info(
            "Backtest started: run_id=%s symbol=%s start=%s end=%s strategy=%s initial_capital=%.2f",
            run_id,
            req.symbol,
            req.start_date,
            req.end_date,
            req.strategy.name,
            req.initial_capital,
        )

        bars = self._load_bars(req)
        if not bars:
            self.log.warning(
                "No bars for %s in %s → %s; result will contain no trades",
                req.symbol,
                req.start_date,
                req.end_date,
            )

        outcome = simulate(
            bars,
            req.strategy,
            req.initial_capital,
            evaluator=self.evaluator,
            max_bars=self.engine_cfg.max_bars,
        )

        summary = compute_summary(
            outcome.trades,
            req.initial_capital,
            outcome.equity.max_drawdown_pct,
            periods_per_year=self.engine_cfg.periods_per_year,
        )

        result = assemble_result(
            outcome.trades,
            summary,
            run_id=run_id,
            symbol=req.symbol,
            strategy_name=req.strategy.name,
            start_date=req.start_date,
            end_date=req.end_date,
            initial_capital=req.initial_capital,
            final_capital=outcome.equity.capital,
            bars_processed=outcome.bars_processed,
            equity_curve=outcome.equity_curve,
        )

        self.log.info("=== Backtest completed for symbol=%s ===", req.symbol)
        self.log.info(
            "Capital %.2f -> %.2f (total_pnl=%.2f%%), trades=%d, win_rate=%.2f%%, "
            "profit_factor=%.2f, max_drawdown=%.2f%%, sharpe=%.2f",
            result.initial_capital,
            result.final_capital,
            summary.total_pnl_percent,
            summary.total_trades,
            summary.win_rate,
            summary.profit_factor,
            summary.max_drawdown,
            summary.sharpe_ratio,
        )

        return publish_result(self.result_sink, user_id, req, result, logger=self.log)

    # ----------------------------------------------------------------
    # Data loading
    # ----------------------------------------------------------------
    def _load_bars(self, req: BacktestRequest) -> List[Bar]:
        try:
            bars = self.provider.get_bars(req.symbol, req.start_date, req.end_date)
        except ProviderUnavailableError:
            self.log.error("Bar provider failed for %s", req.symbol, exc_info=True)
            raise

        self.log.info(
            "Loaded %d bars for symbol=%s (%s → %s)",
            len(bars),
            req.symbol,
            req.start_date,
            req.end_date,
        )
        return list(bars)
