# core/results/summary.py
from __future__ import annotations

from typing import Optional
import logging

from .models import BacktestResult

import pandas as pd


def print_result_summary(result: BacktestResult, logger: Optional[logging.Logger] = None) -> None:
    """
    Print a human-readable summary of the backtest.
    If logger is given, uses logger.info; otherwise, prints to stdout.
    """
    out = logger.info if logger else print
    s = result.summary

    out("")
    out("=== Backtest Summary ===")
    out(f"Run:       {result.run_id}")
    out(f"Symbol:    {result.symbol}")
    out(f"Strategy:  {result.strategy_name}")
    out(f"Range:     {result.start_date} -> {result.end_date} ({result.bars_processed} bars)")
    out(f"Capital:   {result.initial_capital:.2f} -> {result.final_capital:.2f}")

    out("")
    out("Metrics:")
    for name, value in s.to_dict().items():
        # try to format numbers nicely
        if isinstance(value, float):
            out(f"  {name:20s} {value: .4f}")
        else:
            out(f"  {name:20s} {value}")

    out("")
    out(f"Trades:    {len(result.trades)}")
    out(f"Equity points: {len(result.equity_curve)}")
    out("")


def result_to_dataframes(result: BacktestResult):
    """
    Convert BacktestResult into two DataFrames:
      - trades_df
      - equity_df
    """
    trades_rows = [
        {
            "entry_date": t.entry_date,
            "exit_date": t.exit_date,
            "direction": t.direction.value,
            "entry_price": t.entry_price,
            "exit_price": t.exit_price,
            "pnl": t.pnl,
            "pnl_percent": t.pnl_percent,
            "exit_reason": t.exit_reason,
            "bars_held": t.bars_held,
        }
        for t in result.trades
    ]

    equity_rows = [
        {
            "date": p.date,
            "equity": p.equity,
        }
        for p in result.equity_curve
    ]

    trades_df = pd.DataFrame(
        trades_rows,
        columns=[
            "entry_date", "exit_date", "direction", "entry_price", "exit_price",
            "pnl", "pnl_percent", "exit_reason", "bars_held",
        ],
    )
    equity_df = pd.DataFrame(equity_rows, columns=["date", "equity"])
    return trades_df, equity_df
