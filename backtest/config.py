# backtest/config.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from core.models import Direction


class StrategyConfig(BaseModel):
    """
    Declarative trading strategy: which rules open and close a position,
    optional stop-loss / take-profit, and the unit size of each position.

    YAML example:

      strategy:
        name: "SMA trend"
        entry_rules: ["price_above_sma", "volume_spike"]
        exit_rules: ["price_below_sma"]
        stop_loss_pct: 2.0
        take_profit_pct: 5.0
        position_size: 10

    The camelCase keys sent by the web client (entryRules, stopLoss,
    positionSize, ...) are accepted as well.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, description="Human-readable strategy name.")

    entry_rules: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("entry_rules", "entryRules"),
        serialization_alias="entryRules",
        description="Rule ids that must ALL pass to open a position. Empty list never enters.",
    )
    exit_rules: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("exit_rules", "exitRules"),
        serialization_alias="exitRules",
        description="Rule ids of which ANY closes the position.",
    )

    stop_loss_pct: Optional[float] = Field(
        None,
        gt=0.0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("stop_loss_pct", "stopLossPct", "stopLoss"),
        serialization_alias="stopLossPct",
        description="Close when the unrealized move reaches -stop_loss_pct percent.",
    )
    take_profit_pct: Optional[float] = Field(
        None,
        gt=0.0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("take_profit_pct", "takeProfitPct", "takeProfit"),
        serialization_alias="takeProfitPct",
        description="Close when the unrealized move reaches +take_profit_pct percent.",
    )

    position_size: float = Field(
        ...,
        gt=0.0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("position_size", "positionSize"),
        serialization_alias="positionSize",
        description="Unit multiplier applied to price deltas (contracts/shares).",
    )

    direction: Direction = Direction.LONG

    @field_validator("entry_rules", "exit_rules")
    @classmethod
    def _strip_rule_ids(cls, v: List[str]) -> List[str]:
        return [r.strip() for r in v]

    @field_validator("direction", mode="before")
    @classmethod
    def _norm_direction(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class BacktestRequest(BaseModel):
    """
    One backtest invocation: a strategy against one symbol over one date range.

    All fields are required. Accepts snake_case (YAML) and the camelCase
    keys of the JSON API (startDate, endDate, initialCapital).
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    symbol: str = Field(..., min_length=1, description="Instrument, e.g. 'ES' or 'AAPL'.")
    start_date: date = Field(
        ...,
        validation_alias=AliasChoices("start_date", "startDate"),
        serialization_alias="startDate",
    )
    end_date: date = Field(
        ...,
        validation_alias=AliasChoices("end_date", "endDate"),
        serialization_alias="endDate",
    )
    strategy: StrategyConfig
    initial_capital: float = Field(
        ...,
        gt=0.0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("initial_capital", "initialCapital"),
        serialization_alias="initialCapital",
    )

    @field_validator("symbol")
    @classmethod
    def _norm_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must not be blank")
        return v

    @model_validator(mode="after")
    def _check_date_range(self) -> "BacktestRequest":
        if self.start_date > self.end_date:
            raise ValueError(
                f"start_date ({self.start_date}) must not be after end_date ({self.end_date})"
            )
        return self
