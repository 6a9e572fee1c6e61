# core/results/repository.py
from __future__ import annotations

import json
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from core.errors import PersistenceError

from .models import BacktestResult
from .summary import result_to_dataframes


FLOAT_DECIMALS = 4


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _request_payload(request: Any) -> Any:
    # pydantic models dump in their JSON (alias) shape
    if hasattr(request, "model_dump"):
        return request.model_dump(mode="json", by_alias=True)
    return request


class ResultSink(ABC):
    """
    Persistence collaborator: receives every finished result.

    Implementations raise PersistenceError on failure.
    """

    @abstractmethod
    def persist_result(self, user_id: str, request: Any, result: BacktestResult) -> None:
        raise NotImplementedError


class NullResultSink(ResultSink):
    """Discards results (persistence disabled)."""

    def persist_result(self, user_id: str, request: Any, result: BacktestResult) -> None:
        return None


class JsonlResultRepository(ResultSink):
    """
    Append-only JSON-lines store. One line per run:

      {"user_id": ..., "run_id": ..., "created_at": ..., "request": {...}, "result": {...}}

    Lines are never rewritten; history for a user is read back by filtering.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def persist_result(self, user_id: str, request: Any, result: BacktestResult) -> None:
        record = {
            "user_id": user_id,
            "run_id": result.run_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "request": _request_payload(request),
            "result": result.to_dict(),
        }
        try:
            line = json.dumps(record, allow_nan=False)
            with self._lock:
                _ensure_dir(self.path.parent)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Could not append result {result.run_id} to {self.path}: {exc}") from exc

    def iter_records(self, user_id: Optional[str] = None) -> Iterator[Dict[str, Any]]:
        if not self.path.is_file():
            return
        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                record = json.loads(line)
                if user_id is None or record.get("user_id") == user_id:
                    yield record

    def load_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        """All persisted runs of one user, newest first."""
        return list(reversed(list(self.iter_records(user_id))))


def save_backtest_result(result: BacktestResult, base_dir: Path | str = "results") -> Path:
    """
    Save a BacktestResult into:
      <base_dir>/<timestamp>_<run_id>/
        - summary.json
        - trades.csv
        - equity_curve.csv
    """
    base_dir = Path(base_dir)
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = base_dir / f"{ts}_{result.run_id[:8]}" if result.run_id else base_dir / ts
    _ensure_dir(run_dir)

    # ------------------------------------------------------------------
    # 1) Summary (JSON)
    # ------------------------------------------------------------------
    summary: Dict[str, Any] = {
        "run_id": result.run_id,
        "symbol": result.symbol,
        "strategy_name": result.strategy_name,
        "start_date": result.start_date.isoformat() if result.start_date else None,
        "end_date": result.end_date.isoformat() if result.end_date else None,
        "initial_capital": round(result.initial_capital, FLOAT_DECIMALS),
        "final_capital": round(result.final_capital, FLOAT_DECIMALS),
        "bars_processed": result.bars_processed,
        "summary": {k: round(v, FLOAT_DECIMALS) if isinstance(v, float) else v
                    for k, v in result.summary.to_dict().items()},
    }

    with (run_dir / "summary.json").open("w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)

    # ------------------------------------------------------------------
    # 2) Trades + equity curve (CSV, via DataFrames)
    # ------------------------------------------------------------------
    trades_df, equity_df = result_to_dataframes(result)
    float_format = f"%.{FLOAT_DECIMALS}f"

    trades_df.to_csv(run_dir / "trades.csv", index=False, float_format=float_format)
    equity_df.to_csv(run_dir / "equity_curve.csv", index=False, float_format=float_format)

    return run_dir
