# core/results/models.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Optional, Tuple

from core.models import Direction


@dataclass(frozen=True)
class EquityPoint:
    """
    Capital after a closed trade (the first point is the starting capital).
    """
    date: date
    equity: float


@dataclass(frozen=True)
class Trade:
    """
    Completed round-trip.
    """
    entry_date: date
    exit_date: date
    entry_price: float
    exit_price: float
    direction: Direction
    pnl: float
    pnl_percent: float  # pnl / capital at entry * 100

    exit_reason: str = ""
    bars_held: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entryDate": self.entry_date.isoformat(),
            "exitDate": self.exit_date.isoformat(),
            "entryPrice": self.entry_price,
            "exitPrice": self.exit_price,
            "direction": self.direction.value,
            "pnl": self.pnl,
            "pnlPercent": self.pnl_percent,
            "exitReason": self.exit_reason,
            "barsHeld": self.bars_held,
        }


@dataclass(frozen=True)
class SummaryStats:
    """
    Aggregate statistics, always recomputed from the full trade list.
    """
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    break_even_trades: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    total_pnl_percent: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    profit_factor: float = 0.0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalTrades": self.total_trades,
            "winningTrades": self.winning_trades,
            "losingTrades": self.losing_trades,
            "breakEvenTrades": self.break_even_trades,
            "winRate": self.win_rate,
            "totalPnL": self.total_pnl,
            "totalPnLPercent": self.total_pnl_percent,
            "averageWin": self.average_win,
            "averageLoss": self.average_loss,
            "profitFactor": self.profit_factor,
            "maxDrawdown": self.max_drawdown,
            "sharpeRatio": self.sharpe_ratio,
        }


@dataclass(frozen=True)
class BacktestResult:
    """
    Outcome of a single backtest run. Immutable once returned.
    """
    trades: Tuple[Trade, ...]
    summary: SummaryStats

    run_id: str = ""
    symbol: str = ""
    strategy_name: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    initial_capital: float = 0.0
    final_capital: float = 0.0
    bars_processed: int = 0
    equity_curve: Tuple[EquityPoint, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        """
        JSON wire shape. `trades` is always a list, never None.
        """
        return {
            "runId": self.run_id,
            "symbol": self.symbol,
            "strategyName": self.strategy_name,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "initialCapital": self.initial_capital,
            "finalCapital": self.final_capital,
            "barsProcessed": self.bars_processed,
            "trades": [t.to_dict() for t in self.trades],
            "summary": self.summary.to_dict(),
            "equityCurve": [
                {"date": p.date.isoformat(), "equity": p.equity} for p in self.equity_curve
            ],
        }

    def to_json(self, **kwargs: Any) -> str:
        # allow_nan=False: a non-finite number in a report is a bug, not data
        return json.dumps(self.to_dict(), allow_nan=False, **kwargs)
