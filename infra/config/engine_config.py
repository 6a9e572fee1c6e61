# infra/config/engine_config.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, model_validator


class RuleSettings(BaseModel):
    """
    Parameters of the built-in entry/exit rules.

    Every rule only looks at the trailing history window; history_window is
    the largest look-back any rule needs.
    """
    sma_window: int = Field(20, ge=1, description="Bars in the moving average.")
    volume_window: int = Field(10, ge=1, description="Bars in the volume baseline.")
    volume_spike_multiplier: float = Field(1.5, gt=0.0)

    rsi_period: int = Field(14, ge=2)
    rsi_oversold: float = Field(30.0, ge=0.0, le=100.0)
    rsi_overbought: float = Field(70.0, ge=0.0, le=100.0)

    max_holding_bars: int = Field(10, ge=1, description="Bars after which time_exit closes.")

    @model_validator(mode="after")
    def _check_rsi_band(self) -> "RuleSettings":
        if self.rsi_oversold >= self.rsi_overbought:
            raise ValueError("rsi_oversold must be below rsi_overbought")
        return self

    @property
    def history_window(self) -> int:
        # RSI needs period+1 closes, the current bar supplies one of them
        return max(self.sma_window, self.volume_window, self.rsi_period)


class EngineConfig(BaseModel):
    """
    Configuration for BacktestEngine.

    Notes:
    - max_bars is a hard ceiling on the bars a single run may replay; the
      series is truncated before the loop starts and the last kept bar is
      the forced-liquidation bar.
    - periods_per_year annualizes the Sharpe ratio (trading days).
    """
    max_bars: Optional[int] = Field(None, ge=1)
    periods_per_year: int = Field(252, ge=1)

    rules: RuleSettings = Field(default_factory=RuleSettings)
