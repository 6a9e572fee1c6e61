from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from infra.data_source import HIST_DATA_ROOT


class CacheConfig(BaseModel):
    """
    Bounded TTL cache in front of the bar provider.

    Defaults: 100 entries, 60 seconds.
    """
    enabled: bool = True
    max_entries: int = Field(100, ge=1)
    ttl_sec: float = Field(60.0, gt=0.0)


class BarSourceConfig(BaseModel):
    """
    Where bars come from.

    YAML example:

      data:
        source: synthetic      # synthetic | local | yahoo
        seed: 7
        cache:
          enabled: true
          max_entries: 100
          ttl_sec: 60

    - synthetic: seeded random walk (weekdays only), for tests and demos.
    - local: <root>/<SYMBOL>/<SYMBOL>.parquet.gzip or <SYMBOL>.csv
    - yahoo: daily bars from the public chart endpoint.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    source: Literal["synthetic", "local", "yahoo"] = "synthetic"

    # synthetic
    seed: int = 42
    start_price: float = Field(100.0, gt=0.0)

    # local
    root: Path = Field(
        default_factory=lambda: HIST_DATA_ROOT,
        description="Root folder where historical_data/<SYMBOL> lives.",
    )

    # yahoo
    base_url: str = "https://query1.finance.yahoo.com"
    request_timeout: float = Field(10.0, gt=0.0)

    cache: CacheConfig = Field(default_factory=CacheConfig)
