# infra/indicators.py
from __future__ import annotations

from typing import Optional, Sequence

import pandas as pd

from core.models import Bar


# ---------------------------------------------------------------------------
# Window helpers – every indicator reads a bounded trailing slice only
# ---------------------------------------------------------------------------

def closes(bars: Sequence[Bar]) -> pd.Series:
    return pd.Series([b.close for b in bars], dtype="float64")


def volumes(bars: Sequence[Bar]) -> pd.Series:
    return pd.Series([b.volume for b in bars], dtype="float64")


# ---------------------------------------------------------------------------
# Indicator implementations
# ---------------------------------------------------------------------------

def sma(bars: Sequence[Bar], period: int) -> Optional[float]:
    """
    Mean close over the last `period` bars.

    With fewer bars than `period` the mean of what is available is used
    None for an empty window.
    """
    window = bars[-period:]
    if not window:
        return None
    return float(closes(window).mean())


def average_volume(bars: Sequence[Bar], period: int) -> Optional[float]:
    """
    Mean volume over the last `period` bars (or fewer, if that is all there is).
    """
    window = bars[-period:]
    if not window:
        return None
    return float(volumes(window).mean())


def rsi(bars: Sequence[Bar], period: int = 14) -> Optional[float]:
    """
    Simple-average RSI over the last `period` close-to-close changes.

    Needs period+1 bars; returns None when there are fewer.
    A window without losses reads 100 (50 when prices did not move at all).
    """
    if len(bars) < period + 1:
        return None

    delta = closes(bars[-(period + 1):]).diff().dropna()

    gain = float(delta.clip(lower=0).mean())
    loss = float((-delta.clip(upper=0)).mean())

    if loss == 0.0:
        return 100.0 if gain > 0.0 else 50.0

    rs = gain / loss
    return 100.0 - (100.0 / (1.0 + rs))
