# core/results/report.py
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional, Sequence

from core.errors import PersistenceError
from infra.logging_setup import get_logger

from .models import BacktestResult, EquityPoint, SummaryStats, Trade
from .repository import ResultSink


def assemble_result(
    trades: Sequence[Trade],
    summary: SummaryStats,
    *,
    run_id: str = "",
    symbol: str = "",
    strategy_name: str = "",
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    initial_capital: float = 0.0,
    final_capital: float = 0.0,
    bars_processed: int = 0,
    equity_curve: Sequence[EquityPoint] = (),
) -> BacktestResult:
    """Shape only: bundle trades + summary (+ run metadata) into a BacktestResult."""
    return BacktestResult(
        trades=tuple(trades),
        summary=summary,
        run_id=run_id,
        symbol=symbol,
        strategy_name=strategy_name,
        start_date=start_date,
        end_date=end_date,
        initial_capital=initial_capital,
        final_capital=final_capital,
        bars_processed=bars_processed,
        equity_curve=tuple(equity_curve),
    )


def publish_result(
    sink: Optional[ResultSink],
    user_id: str,
    request: Any,
    result: BacktestResult,
    logger: Optional[logging.Logger] = None,
) -> BacktestResult:
    """
    Hand the result to the persistence collaborator and return it unchanged.

    A failing sink (PersistenceError or anything else it raises) is logged
    and swallowed: the computed result stands whether or not it was stored.
    """
    log = logger or get_logger("results.report")
    if sink is None:
        return result

    try:
        sink.persist_result(user_id, request, result)
    except PersistenceError:
        log.warning(
            "Persisting result run_id=%s for user=%s failed; returning result anyway",
            result.run_id,
            user_id,
            exc_info=True,
        )
    except Exception:
        # best-effort: any other sink failure is logged the same way
        log.warning(
            "Result sink %s raised while persisting run_id=%s for user=%s; returning result anyway",
            type(sink).__name__,
            result.run_id,
            user_id,
            exc_info=True,
        )
    else:
        log.debug("Persisted result run_id=%s for user=%s", result.run_id, user_id)
    return result
