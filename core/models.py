# core/models.py
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"


@dataclass(frozen=True)
class Bar:
    """
    One daily OHLCV observation.

    Construction does not validate: providers may hand over whatever the
    feed delivered, and the simulation loop rejects malformed bars via
    integrity_problem().
    """
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float

    def integrity_problem(self) -> Optional[str]:
        """
        Return a short description of what is wrong with this bar,
        or None if the bar is well-formed.
        """
        prices = {
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
        }
        for name, value in prices.items():
            if value is None or not math.isfinite(value):
                return f"{name} is not a finite number ({value!r})"
            if value <= 0:
                return f"{name} must be positive ({value!r})"

        if self.volume is None or not math.isfinite(self.volume) or self.volume < 0:
            return f"volume must be a non-negative number ({self.volume!r})"

        if self.low > min(self.open, self.close):
            return f"low={self.low} above min(open, close)"
        if self.high < max(self.open, self.close):
            return f"high={self.high} below max(open, close)"

        return None


@dataclass(frozen=True)
class Position:
    """
    The single open position of a run (if any).
    """
    direction: Direction
    entry_price: float
    entry_date: date
    entry_index: int  # bar index of the fill

    def unrealized_pct(self, price: float) -> float:
        """Price move since entry in percent, positive when the position gains."""
        move = (price - self.entry_price) / self.entry_price * 100.0
        return move if self.direction == Direction.LONG else -move

    def pnl_at(self, price: float, size: float) -> float:
        delta = price - self.entry_price
        if self.direction == Direction.SHORT:
            delta = -delta
        return size * delta


@dataclass
class EquityState:
    """
    Running capital / drawdown state, updated once per closed trade.
    """
    capital: float
    peak_capital: float
    max_drawdown_pct: float = 0.0

    @classmethod
    def start(cls, initial_capital: float) -> "EquityState":
        return cls(capital=initial_capital, peak_capital=initial_capital)

    def apply(self, pnl: float) -> None:
        self.capital += pnl
        if self.capital > self.peak_capital:
            self.peak_capital = self.capital

        if self.peak_capital > 0:
            dd = (self.peak_capital - self.capital) / self.peak_capital * 100.0
            if dd > self.max_drawdown_pct:
                self.max_drawdown_pct = dd
