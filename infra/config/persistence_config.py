from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class PersistenceConfig(BaseModel):
    """
    Where finished results go.

    - results_path: append-only JSON-lines store, one line per run.
    - run_dir: optional folder for a per-run export (summary.json,
      trades.csv, equity_curve.csv); used by the CLI.
    """
    enabled: bool = True
    results_path: Path = Field(Path("output") / "backtest_results.jsonl")
    run_dir: Optional[Path] = Field(Path("output") / "runs")
