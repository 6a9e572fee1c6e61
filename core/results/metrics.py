# core/results/metrics.py
from __future__ import annotations

import math
import statistics
from typing import List, Sequence

from .models import SummaryStats, Trade

TRADING_DAYS_PER_YEAR = 252


# ----------------------------------------------------------------------
# Concrete metric implementations
# ----------------------------------------------------------------------


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return math.fsum(values) / len(values)


def m_win_rate_pct(trades: Sequence[Trade]) -> float:
    if not trades:
        return 0.0
    wins = [t for t in trades if t.pnl > 0]
    return len(wins) / len(trades) * 100.0


def m_average_win(trades: Sequence[Trade]) -> float:
    return _mean([t.pnl for t in trades if t.pnl > 0])


def m_average_loss(trades: Sequence[Trade]) -> float:
    # reported as a positive magnitude
    return abs(_mean([t.pnl for t in trades if t.pnl < 0]))


def m_profit_factor(average_win: float, average_loss: float) -> float:
    # No losing trades -> 0, never Infinity
    if average_loss == 0:
        return 0.0
    return average_win / average_loss


def m_total_pnl(trades: Sequence[Trade]) -> float:
    return math.fsum(t.pnl for t in trades)


def m_sharpe_ratio(trades: Sequence[Trade], periods_per_year: int = TRADING_DAYS_PER_YEAR) -> float:
    """
    mean(pnl_percent) / population stdev(pnl_percent) * sqrt(periods_per_year).

    0 for fewer than two trades or zero dispersion.
    """
    if len(trades) < 2:
        return 0.0

    returns: List[float] = [t.pnl_percent for t in trades]
    std = statistics.pstdev(returns)
    if std == 0:
        return 0.0
    return _mean(returns) / std * math.sqrt(periods_per_year)


# ----------------------------------------------------------------------
# Summary
# ----------------------------------------------------------------------


def compute_summary(
    trades: Sequence[Trade],
    initial_capital: float,
    max_drawdown_pct: float = 0.0,
    periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> SummaryStats:
    """
    Recompute every summary statistic from the full trade list.

    max_drawdown_pct comes from the equity state of the simulation, since
    drawdown depends on the order of trades and not only their sizes.
    """
    if initial_capital <= 0:
        raise ValueError("initial_capital must be > 0")

    winning = sum(1 for t in trades if t.pnl > 0)
    losing = sum(1 for t in trades if t.pnl < 0)

    average_win = m_average_win(trades)
    average_loss = m_average_loss(trades)
    total_pnl = m_total_pnl(trades)

    return SummaryStats(
        total_trades=len(trades),
        winning_trades=winning,
        losing_trades=losing,
        break_even_trades=len(trades) - winning - losing,
        win_rate=m_win_rate_pct(trades),
        total_pnl=total_pnl,
        total_pnl_percent=total_pnl / initial_capital * 100.0,
        average_win=average_win,
        average_loss=average_loss,
        profit_factor=m_profit_factor(average_win, average_loss),
        max_drawdown=float(max_drawdown_pct),
        sharpe_ratio=m_sharpe_ratio(trades, periods_per_year),
    )
