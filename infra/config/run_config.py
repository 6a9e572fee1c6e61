# infra/config/run_config.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from backtest.config import BacktestRequest
from .data_config import BarSourceConfig
from .engine_config import EngineConfig
from .logging_config import LoggingConfig
from .persistence_config import PersistenceConfig


class RunConfig(BaseModel):
    """
    Top-level configuration for a single run.
    One YAML/JSON file → one RunConfig.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field("default", description="Human-readable run name.")
    description: Optional[str] = Field(None, description="Optional free-text description for this run.")
    user_id: str = Field("local", description="Owner of the run; key for persisted results.")

    request: BacktestRequest
    data: BarSourceConfig = Field(default_factory=BarSourceConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
