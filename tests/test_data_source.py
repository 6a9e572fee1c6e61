# tests/test_data_source.py
from __future__ import annotations

from datetime import date
from pathlib import Path

import pandas as pd
import pytest
import requests

from core.errors import ProviderUnavailableError
from core.models import Bar
from infra.bar_cache import BarCache
from infra.config import BarSourceConfig, CacheConfig
from infra.data_source import (
    BarSeriesProvider,
    CachedBarProvider,
    LocalFileBarProvider,
    SyntheticBarProvider,
    build_bar_provider,
    frame_to_bars,
)
from infra.yahoo_source import YahooChartBarProvider


# ---------------------------------------------------------------------------
# Helpers / Test Doubles
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingProvider(BarSeriesProvider):
    def __init__(self, bars=None, error: Exception = None):
        self.calls = []
        self._bars = bars or []
        self._error = error

    def get_bars(self, symbol, start, end):
        self.calls.append((symbol, start, end))
        if self._error is not None:
            raise self._error
        return list(self._bars)


def write_csv(root: Path, symbol: str, n: int = 10) -> pd.DataFrame:
    idx = pd.date_range("2024-01-01", periods=n, freq="D", name="Date")
    prices = [100.0 + i for i in range(n)]
    df = pd.DataFrame(
        {
            "Open": prices,
            "High": [p + 1.0 for p in prices],
            "Low": [p - 1.0 for p in prices],
            "Close": prices,
            "Volume": [1000.0] * n,
        },
        index=idx,
    )
    (root / symbol).mkdir(parents=True)
    df.to_csv(root / symbol / f"{symbol}.csv")
    return df


# ---------------------------------------------------------------------------
# Synthetic provider
# ---------------------------------------------------------------------------


def test_synthetic_is_seeded_and_deterministic():
    start, end = date(2024, 1, 1), date(2024, 3, 31)

    a = SyntheticBarProvider(seed=42).get_bars("ES", start, end)
    b = SyntheticBarProvider(seed=42).get_bars("ES", start, end)
    c = SyntheticBarProvider(seed=43).get_bars("ES", start, end)
    d = SyntheticBarProvider(seed=42).get_bars("NQ", start, end)

    assert a == b
    assert a != c
    assert a != d


def test_synthetic_bars_are_weekdays_in_range_and_well_formed():
    start, end = date(2024, 1, 1), date(2024, 1, 31)
    bars = SyntheticBarProvider().get_bars("ES", start, end)

    # January 2024 has 23 weekdays
    assert len(bars) == 23
    assert bars[0].date == start
    for prev, cur in zip(bars, bars[1:]):
        assert prev.date < cur.date
    for b in bars:
        assert b.date.weekday() < 5
        assert start <= b.date <= end
        assert b.integrity_problem() is None
        assert 500_000 <= b.volume < 1_500_000


def test_synthetic_empty_for_weekend_only_range():
    assert SyntheticBarProvider().get_bars("ES", date(2024, 1, 6), date(2024, 1, 7)) == []


def test_synthetic_rejects_non_positive_start_price():
    with pytest.raises(ValueError):
        SyntheticBarProvider(start_price=0)


# ---------------------------------------------------------------------------
# Local files
# ---------------------------------------------------------------------------


def test_local_csv_slice_is_inclusive(tmp_path: Path):
    write_csv(tmp_path, "ES", n=10)
    provider = LocalFileBarProvider(root=tmp_path)

    bars = provider.get_bars("ES", date(2024, 1, 3), date(2024, 1, 5))

    assert [b.date for b in bars] == [date(2024, 1, 3), date(2024, 1, 4), date(2024, 1, 5)]
    assert bars[0].close == 102.0
    assert bars[0].volume == 1000.0


def test_local_missing_symbol_raises(tmp_path: Path):
    provider = LocalFileBarProvider(root=tmp_path)
    with pytest.raises(ProviderUnavailableError):
        provider.get_bars("NOPE", date(2024, 1, 1), date(2024, 1, 5))


def test_local_folder_without_file_raises(tmp_path: Path):
    (tmp_path / "ES").mkdir()
    with pytest.raises(ProviderUnavailableError):
        LocalFileBarProvider(root=tmp_path).find_file_for_symbol("ES")


def test_local_range_outside_data_is_empty(tmp_path: Path):
    write_csv(tmp_path, "ES", n=5)
    bars = LocalFileBarProvider(root=tmp_path).get_bars("ES", date(2025, 1, 1), date(2025, 2, 1))
    assert bars == []


def test_frame_missing_columns_raises():
    df = pd.DataFrame({"Close": [1.0]}, index=pd.DatetimeIndex(["2024-01-01"]))
    with pytest.raises(ProviderUnavailableError):
        frame_to_bars(df)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


def test_bar_cache_ttl_expiry():
    clock = FakeClock()
    cache = BarCache(max_entries=10, ttl_sec=60, clock=clock)
    key = cache.key("es", date(2024, 1, 1), date(2024, 1, 31))
    assert key[0] == "ES"

    cache.put(key, [])
    clock.now = 59.0
    assert cache.get(key) == ()

    clock.now = 60.0
    assert cache.get(key) is None
    assert len(cache) == 0


def test_bar_cache_evicts_oldest_entry():
    cache = BarCache(max_entries=2, ttl_sec=60, clock=FakeClock())
    k1 = cache.key("A", date(2024, 1, 1), date(2024, 1, 2))
    k2 = cache.key("B", date(2024, 1, 1), date(2024, 1, 2))
    k3 = cache.key("C", date(2024, 1, 1), date(2024, 1, 2))

    cache.put(k1, [])
    cache.put(k2, [])
    cache.put(k3, [])

    assert len(cache) == 2
    assert cache.get(k1) is None
    assert cache.get(k2) == ()
    assert cache.get(k3) == ()


def test_bar_cache_rejects_bad_bounds():
    with pytest.raises(ValueError):
        BarCache(max_entries=0)
    with pytest.raises(ValueError):
        BarCache(ttl_sec=0)


def test_cached_provider_hits_inner_once_until_expiry():
    bars = SyntheticBarProvider().get_bars("ES", date(2024, 1, 1), date(2024, 1, 10))
    inner = CountingProvider(bars)
    clock = FakeClock()
    provider = CachedBarProvider(inner, BarCache(ttl_sec=60, clock=clock))

    first = provider.get_bars("ES", date(2024, 1, 1), date(2024, 1, 10))
    second = provider.get_bars("ES", date(2024, 1, 1), date(2024, 1, 10))
    assert first == second == bars
    assert len(inner.calls) == 1

    clock.now = 120.0
    provider.get_bars("ES", date(2024, 1, 1), date(2024, 1, 10))
    assert len(inner.calls) == 2


def test_cached_provider_does_not_cache_failures():
    inner = CountingProvider(error=ProviderUnavailableError("down"))
    cache = BarCache()
    provider = CachedBarProvider(inner, cache)

    with pytest.raises(ProviderUnavailableError):
        provider.get_bars("ES", date(2024, 1, 1), date(2024, 1, 10))
    assert len(cache) == 0


def test_build_bar_provider_from_config(tmp_path: Path):
    cached = build_bar_provider(BarSourceConfig(source="synthetic", seed=1))
    assert isinstance(cached, CachedBarProvider)
    assert isinstance(cached.inner, SyntheticBarProvider)

    plain = build_bar_provider(
        BarSourceConfig(source="local", root=tmp_path, cache=CacheConfig(enabled=False))
    )
    assert isinstance(plain, LocalFileBarProvider)

    yahoo = build_bar_provider(BarSourceConfig(source="yahoo", cache=CacheConfig(enabled=False)))
    assert isinstance(yahoo, YahooChartBarProvider)


# ---------------------------------------------------------------------------
# Yahoo chart provider
# ---------------------------------------------------------------------------

# 2024-01-02 .. 2024-01-05, 14:30 UTC
TS = [1704205800 + i * 86400 for i in range(4)]


def chart_payload():
    return {
        "chart": {
            "result": [
                {
                    "timestamp": TS,
                    "indicators": {
                        "quote": [
                            {
                                "open": [100.0, 101.0, None, 103.0],
                                "high": [101.0, 102.0, 103.0, 104.0],
                                "low": [99.0, 100.0, 101.0, 102.0],
                                "close": [100.5, None, 102.5, 103.5],
                                "volume": [1000, 2000, None, 4000],
                            }
                        ]
                    },
                }
            ]
        }
    }


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.text = "" if payload is None else str(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error: Exception = None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.requests.append((url, params, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def test_parse_chart_skips_rows_without_close():
    bars = YahooChartBarProvider.parse_chart(chart_payload())

    assert [b.date for b in bars] == [date(2024, 1, 2), date(2024, 1, 4), date(2024, 1, 5)]
    # missing open falls back to close, missing volume reads 0
    assert bars[1].open == 102.5
    assert bars[1].volume == 0.0
    assert bars[0] == Bar(date(2024, 1, 2), 100.0, 101.0, 99.0, 100.5, 1000.0)


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"chart": {"result": []}},
        {"chart": {"result": [{"timestamp": TS}]}},
        {"chart": {"result": [{"indicators": {"quote": [{}]}}]}},
    ],
)
def test_parse_chart_rejects_bad_payloads(payload):
    with pytest.raises(ProviderUnavailableError):
        YahooChartBarProvider.parse_chart(payload)


def test_yahoo_get_bars_requests_daily_range_and_filters():
    session = FakeSession(FakeResponse(200, chart_payload()))
    provider = YahooChartBarProvider(base_url="https://example.test/", request_timeout=3, session=session)

    bars = provider.get_bars("ES", date(2024, 1, 3), date(2024, 1, 4))

    assert [b.date for b in bars] == [date(2024, 1, 4)]
    url, params, timeout = session.requests[0]
    assert url == "https://example.test/v8/finance/chart/ES"
    assert params["interval"] == "1d"
    assert params["period1"] == 1704240000  # 2024-01-03 00:00 UTC
    assert params["period2"] == 1704412800  # 2024-01-05 00:00 UTC
    assert timeout == 3


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(FakeResponse(500, {"error": "boom"})),
        FakeSession(FakeResponse(200, None)),
        FakeSession(error=requests.ConnectionError("no route")),
    ],
)
def test_yahoo_failures_become_provider_unavailable(session):
    provider = YahooChartBarProvider(session=session)
    with pytest.raises(ProviderUnavailableError):
        provider.get_bars("ES", date(2024, 1, 1), date(2024, 1, 31))
