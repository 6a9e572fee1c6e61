# infra/data_source.py
from __future__ import annotations

import random
from abc import ABC, abstractmethod
from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional

import pandas as pd

from core.errors import ProviderUnavailableError
from core.models import Bar
from infra.bar_cache import BarCache
from infra.logging_setup import get_logger

# Root folder where all historical data is stored:
#   historical_data/<SYMBOL>/<SYMBOL>.parquet.gzip
# or
#   historical_data/<SYMBOL>/<SYMBOL>.csv
HIST_DATA_ROOT = Path(__file__).resolve().parents[1] / "historical_data"

OHLCV_COLUMNS = ["Open", "High", "Low", "Close", "Volume"]


class BarSeriesProvider(ABC):
    """
    Source of daily OHLCV bars.

    get_bars() returns bars ordered by date, trading days only, covering
    [start, end] inclusive. Any failure to reach or read the source is
    raised as ProviderUnavailableError.
    """

    @abstractmethod
    def get_bars(self, symbol: str, start: date, end: date) -> List[Bar]:
        raise NotImplementedError


def frame_to_bars(df: pd.DataFrame) -> List[Bar]:
    """
    Map an OHLCV DataFrame (DatetimeIndex, columns Open/High/Low/Close/Volume)
    to a list of Bars. Values are passed through as-is; bad values are the
    simulation loop's business.
    """
    missing = set(OHLCV_COLUMNS) - set(df.columns)
    if missing:
        raise ProviderUnavailableError(f"Bar data is missing columns: {sorted(missing)}")

    bars: List[Bar] = []
    for ts, row in df.iterrows():
        bars.append(
            Bar(
                date=pd.Timestamp(ts).date(),
                open=float(row["Open"]),
                high=float(row["High"]),
                low=float(row["Low"]),
                close=float(row["Close"]),
                volume=float(row["Volume"]),
            )
        )
    return bars


# ----------------------------------------------------------------------
# Synthetic (seeded random walk)
# ----------------------------------------------------------------------


class SyntheticBarProvider(BarSeriesProvider):
    """
    Seeded random-walk bars, weekdays only.

    Stand-in for a real market-data feed in tests and demos: the same
    (seed, symbol, start, end) always produces the same series.

    Each day the close moves by a uniform step in [-1, 1] from the start
    price; open is close +- 0.25, high/low extend up to 0.5 beyond the
    body, volume is drawn from [500_000, 1_500_000).
    """

    MIN_PRICE = 1.0

    def __init__(self, seed: int = 42, start_price: float = 100.0) -> None:
        if start_price <= 0:
            raise ValueError("start_price must be > 0")
        self.seed = seed
        self.start_price = float(start_price)
        self.log = get_logger("data.synthetic")

    def get_bars(self, symbol: str, start: date, end: date) -> List[Bar]:
        rng = random.Random(f"{self.seed}:{symbol.upper()}")
        price = self.start_price
        bars: List[Bar] = []

        day = start
        while day <= end:
            if day.weekday() < 5:
                price = max(self.MIN_PRICE, price + (rng.random() - 0.5) * 2.0)
                open_ = price + (rng.random() - 0.5) * 0.5
                high = max(open_, price) + rng.random() * 0.5
                low = min(open_, price) - rng.random() * 0.5
                volume = float(rng.randrange(500_000, 1_500_000))

                bars.append(
                    Bar(date=day, open=open_, high=high, low=low, close=price, volume=volume)
                )
            day += timedelta(days=1)

        self.log.debug(
            "Generated %d synthetic bars for %s (%s → %s, seed=%s)",
            len(bars),
            symbol,
            start,
            end,
            self.seed,
        )
        return bars


# ----------------------------------------------------------------------
# Local files
# ----------------------------------------------------------------------


class LocalFileBarProvider(BarSeriesProvider):
    """
    Loads daily OHLCV data from local files.

    - Files are expected under: root / <SYMBOL> / <SYMBOL>.parquet.gzip (preferred)
      or root / <SYMBOL> / <SYMBOL>.csv (with a 'Date' column).
    - Columns: ["Open", "High", "Low", "Close", "Volume"].
    """

    def __init__(self, root: Path | str = HIST_DATA_ROOT) -> None:
        self.root = Path(root)
        self.log = get_logger("data.local")

    # ------------------------------------------------------------------
    # Low-level file discovery
    # ------------------------------------------------------------------
    def find_file_for_symbol(self, symbol: str) -> Path:
        """
        Return the path to the data file for a given symbol.

        Preference order:
        1. <root>/<symbol>/<symbol>.parquet.gzip
        2. <root>/<symbol>/<symbol>.csv
        """
        symbol_dir = self.root / symbol
        self.log.debug("Looking for data for symbol=%s under %s", symbol, symbol_dir)

        if not symbol_dir.is_dir():
            msg = f"No folder found for symbol {symbol!r} under {self.root}"
            self.log.error(msg)
            raise ProviderUnavailableError(msg)

        parquet_candidate = symbol_dir / f"{symbol}.parquet.gzip"
        csv_candidate = symbol_dir / f"{symbol}.csv"

        if parquet_candidate.is_file():
            self.log.info("Using parquet data file for %s: %s", symbol, parquet_candidate)
            return parquet_candidate
        if csv_candidate.is_file():
            self.log.info("Using CSV data file for %s: %s", symbol, csv_candidate)
            return csv_candidate

        msg = (
            f"No data file found for symbol {symbol!r} in {symbol_dir}. "
            f"Expected {symbol}.parquet.gzip or {symbol}.csv"
        )
        self.log.error(msg)
        raise ProviderUnavailableError(msg)

    # ------------------------------------------------------------------
    # High-level load entry point
    # ------------------------------------------------------------------
    def load_frame(self, symbol: str, start: Optional[date] = None, end: Optional[date] = None) -> pd.DataFrame:
        """
        Load the symbol's file and return the [start, end] slice as a DataFrame.
        """
        data_path = self.find_file_for_symbol(symbol)

        try:
            if ".parquet" in data_path.suffixes:
                df = pd.read_parquet(data_path)
            else:
                df = pd.read_csv(data_path, parse_dates=["Date"], index_col="Date")
        except (OSError, ValueError, ImportError) as exc:
            msg = f"Failed to read {data_path}: {exc}"
            self.log.error(msg)
            raise ProviderUnavailableError(msg) from exc

        # Ensure DatetimeIndex and sorted index
        if not isinstance(df.index, pd.DatetimeIndex):
            if "Date" in df.columns:
                df["Date"] = pd.to_datetime(df["Date"])
                df.set_index("Date", inplace=True)
            else:
                msg = f"Data for {symbol} has no DatetimeIndex and no 'Date' column."
                self.log.error(msg)
                raise ProviderUnavailableError(msg)

        df.sort_index(inplace=True)
        if df.empty:
            self.log.warning("Data file %s has no rows", data_path)
            return df

        lo = pd.Timestamp(start) if start else df.index[0]
        # inclusive end date: include every timestamp on that day
        hi = pd.Timestamp(end) + pd.Timedelta(days=1) - pd.Timedelta(microseconds=1) if end else df.index[-1]

        sliced = df.loc[lo:hi]

        if sliced.empty:
            self.log.warning(
                "No data for %s in requested range (%s – %s). Available range is %s – %s",
                symbol,
                start,
                end,
                df.index[0],
                df.index[-1],
            )
        else:
            self.log.info(
                "Loaded %d rows for %s (%s → %s)",
                len(sliced),
                symbol,
                sliced.index[0],
                sliced.index[-1],
            )
        return sliced

    def get_bars(self, symbol: str, start: date, end: date) -> List[Bar]:
        return frame_to_bars(self.load_frame(symbol, start, end))


# ----------------------------------------------------------------------
# Caching decorator
# ----------------------------------------------------------------------


class CachedBarProvider(BarSeriesProvider):
    """
    Wraps any provider with an injected BarCache.

    Failures of the inner provider are not cached.
    """

    def __init__(self, inner: BarSeriesProvider, cache: BarCache) -> None:
        self.inner = inner
        self.cache = cache
        self.log = get_logger("data.cache")

    def get_bars(self, symbol: str, start: date, end: date) -> List[Bar]:
        key = self.cache.key(symbol, start, end)
        cached = self.cache.get(key)
        if cached is not None:
            self.log.debug("Cache hit for %s (%s → %s): %d bars", symbol, start, end, len(cached))
            return list(cached)

        bars = self.inner.get_bars(symbol, start, end)
        self.cache.put(key, bars)
        return list(bars)


# ----------------------------------------------------------------------
# Factory
# ----------------------------------------------------------------------


def build_bar_provider(cfg, cache: Optional[BarCache] = None) -> BarSeriesProvider:
    """
    Build a provider from a BarSourceConfig.

    When cfg.cache.enabled, the provider is wrapped in CachedBarProvider;
    pass `cache` to share one BarCache between several engines.
    """
    if cfg.source == "synthetic":
        provider: BarSeriesProvider = SyntheticBarProvider(seed=cfg.seed, start_price=cfg.start_price)
    elif cfg.source == "local":
        provider = LocalFileBarProvider(root=cfg.root)
    elif cfg.source == "yahoo":
        from infra.yahoo_source import YahooChartBarProvider

        provider = YahooChartBarProvider(base_url=cfg.base_url, request_timeout=cfg.request_timeout)
    else:
        raise ValueError(f"Unknown bar source: {cfg.source!r}")

    if not cfg.cache.enabled:
        return provider

    cache = cache or BarCache(max_entries=cfg.cache.max_entries, ttl_sec=cfg.cache.ttl_sec)
    return CachedBarProvider(provider, cache)
