# infra/yahoo_source.py
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

import requests

from core.errors import ProviderUnavailableError
from core.models import Bar
from infra.data_source import BarSeriesProvider
from infra.logging_setup import get_logger

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


def _epoch(d: date) -> int:
    return int(datetime.combine(d, time.min, tzinfo=timezone.utc).timestamp())


class YahooChartBarProvider(BarSeriesProvider):
    """
    Daily bars from the public Yahoo Finance chart endpoint.

    Only implements what the backtester needs: one GET per request,
    interval=1d. Rows without a close are skipped; missing open/high/low
    fall back to the close and a missing volume reads as 0.
    """

    def __init__(
        self,
        base_url: str = "https://query1.finance.yahoo.com",
        request_timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        self.log = get_logger("data.yahoo")

    # ------------------------------------------------------------------
    # Low-level HTTP helper
    # ------------------------------------------------------------------
    def _get(self, endpoint: str, params: dict) -> dict:
        url = self.base_url + endpoint
        try:
            resp = self.session.get(
                url,
                params=params,
                headers={"User-Agent": USER_AGENT},
                timeout=self.request_timeout,
            )
        except requests.RequestException as exc:
            raise ProviderUnavailableError(f"Request to {url} failed: {exc}") from exc

        if resp.status_code != 200:
            raise ProviderUnavailableError(f"Error {resp.status_code} from {url}: {resp.text[:200]}")

        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderUnavailableError(f"Invalid JSON from {url}") from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get_bars(self, symbol: str, start: date, end: date) -> List[Bar]:
        params = {
            "period1": _epoch(start),
            "period2": _epoch(end + timedelta(days=1)),
            "interval": "1d",
        }
        self.log.info("Fetching daily bars for %s (%s → %s)", symbol, start, end)
        payload = self._get(f"/v8/finance/chart/{symbol}", params)

        bars = self.parse_chart(payload)
        bars = [b for b in bars if start <= b.date <= end]

        self.log.info("Received %d bars for %s", len(bars), symbol)
        return bars

    @staticmethod
    def parse_chart(payload: dict) -> List[Bar]:
        """
        Turn a chart API payload into Bars (ordered as delivered).
        """
        chart = (payload or {}).get("chart") or {}
        results = chart.get("result") or []
        if not results:
            raise ProviderUnavailableError("No data available for symbol")

        result = results[0]
        timestamps = result.get("timestamp")
        quotes = (result.get("indicators") or {}).get("quote") or []
        if not timestamps or not quotes:
            raise ProviderUnavailableError("Invalid data format")

        quote = quotes[0]
        opens = quote.get("open") or []
        highs = quote.get("high") or []
        lows = quote.get("low") or []
        closes = quote.get("close") or []
        vols = quote.get("volume") or []

        def _at(values: list, i: int):
            return values[i] if i < len(values) else None

        bars: List[Bar] = []
        for i, ts in enumerate(timestamps):
            close = _at(closes, i)
            if close is None:
                continue

            o = _at(opens, i)
            h = _at(highs, i)
            lo = _at(lows, i)
            v = _at(vols, i)

            bars.append(
                Bar(
                    date=datetime.fromtimestamp(ts, tz=timezone.utc).date(),
                    open=float(o if o is not None else close),
                    high=float(h if h is not None else close),
                    low=float(lo if lo is not None else close),
                    close=float(close),
                    volume=float(v or 0),
                )
            )
        return bars
