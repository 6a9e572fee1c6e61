from __future__ import annotations

from .data_config import BarSourceConfig, CacheConfig
from .engine_config import EngineConfig, RuleSettings
from backtest.config import StrategyConfig
from .logging_config import LoggingConfig
from .persistence_config import PersistenceConfig
from .run_config import RunConfig

__all__ = [
    # Data
    "BarSourceConfig",
    "CacheConfig",

    # Engine
    "EngineConfig",
    "RuleSettings",

    # Strategy
    "StrategyConfig",

    # Logging
    "LoggingConfig",

    # Persistence
    "PersistenceConfig",

    # Top-level run config
    "RunConfig",
]
