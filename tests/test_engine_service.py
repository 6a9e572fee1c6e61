# tests/test_engine_service.py
from __future__ import annotations

import logging
from datetime import date, timedelta

import pytest

from backtest.config import BacktestRequest
from backtest.engine import BacktestEngine
from backtest.validation import validate_request
from core.errors import DataIntegrityError, PersistenceError, ProviderUnavailableError, ValidationError
from core.models import Bar
from core.results.repository import ResultSink
from infra.config import EngineConfig
from infra.data_source import BarSeriesProvider


# ---------------------------------------------------------------------------
# Helpers / Test Doubles
# ---------------------------------------------------------------------------


class FakeProvider(BarSeriesProvider):
    """Returns the injected bars and records every call."""

    def __init__(self, bars=None, error: Exception = None):
        self.bars = bars or []
        self.error = error
        self.calls = []

    def get_bars(self, symbol, start, end):
        self.calls.append((symbol, start, end))
        if self.error is not None:
            raise self.error
        return list(self.bars)


class RecordingSink(ResultSink):
    def __init__(self):
        self.records = []

    def persist_result(self, user_id, request, result):
        self.records.append((user_id, request, result))


class FailingSink(ResultSink):
    def persist_result(self, user_id, request, result):
        raise PersistenceError("disk full")


class BrokenSink(ResultSink):
    """Sink whose backend blows up with something other than PersistenceError."""

    def persist_result(self, user_id, request, result):
        raise ConnectionError("db down")


def make_bars(closes, start: date = date(2024, 1, 1)):
    return [
        Bar(start + timedelta(days=i), c, c + 0.5, c - 0.5, c, 1000.0)
        for i, c in enumerate(closes)
    ]


def raw_request(**overrides):
    req = {
        "symbol": "es",
        "startDate": "2024-01-01",
        "endDate": "2024-01-05",
        "initialCapital": 10_000,
        "strategy": {
            "name": "Buy and hold",
            "entryRules": ["always"],
            "exitRules": [],
            "positionSize": 10,
        },
    }
    req.update(overrides)
    return req


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_camel_case_request_is_accepted():
    req = validate_request(raw_request())

    assert isinstance(req, BacktestRequest)
    assert req.symbol == "ES"
    assert req.start_date == date(2024, 1, 1)
    assert req.strategy.entry_rules == ["always"]
    assert req.strategy.position_size == 10.0
    assert req.strategy.stop_loss_pct is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"initialCapital": 0},
        {"initialCapital": -100},
        {"startDate": "2024-02-01", "endDate": "2024-01-01"},
        {"symbol": "   "},
        {"startDate": "not-a-date"},
        {"unexpected": 1},
    ],
)
def test_invalid_request_is_rejected_before_fetching(overrides):
    provider = FakeProvider(make_bars([100, 101]))
    engine = BacktestEngine(provider=provider)

    with pytest.raises(ValidationError):
        engine.run(raw_request(**overrides))

    assert provider.calls == []


def test_invalid_strategy_fields_are_rejected():
    bad = raw_request()
    bad["strategy"] = dict(bad["strategy"], positionSize=0, stopLoss=-1)

    with pytest.raises(ValidationError) as exc_info:
        validate_request(bad)

    assert exc_info.value.errors


def test_unknown_rule_id_is_rejected():
    bad = raw_request()
    bad["strategy"] = dict(bad["strategy"], entryRules=["moon_phase"])
    provider = FakeProvider(make_bars([100, 101]))

    with pytest.raises(ValidationError, match="moon_phase"):
        BacktestEngine(provider=provider).run(bad)

    assert provider.calls == []


def test_non_mapping_request_is_rejected():
    with pytest.raises(ValidationError):
        validate_request(["not", "a", "request"])


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


def test_run_returns_result_and_persists_it():
    provider = FakeProvider(make_bars([100, 101, 102, 103, 104]))
    sink = RecordingSink()
    engine = BacktestEngine(provider=provider, result_sink=sink)

    result = engine.run(raw_request(), user_id="alice", run_id="run-1")

    assert provider.calls == [("ES", date(2024, 1, 1), date(2024, 1, 5))]
    assert result.run_id == "run-1"
    assert result.symbol == "ES"
    assert result.strategy_name == "Buy and hold"
    assert result.bars_processed == 5
    assert len(result.trades) == 1
    assert result.summary.total_pnl == pytest.approx(40.0)
    assert result.final_capital == pytest.approx(10_040.0)

    assert len(sink.records) == 1
    user_id, request, stored = sink.records[0]
    assert user_id == "alice"
    assert isinstance(request, BacktestRequest)
    assert stored is result


def test_run_generates_run_id():
    engine = BacktestEngine(provider=FakeProvider(make_bars([100, 101])))
    a = engine.run(raw_request())
    b = engine.run(raw_request())
    assert a.run_id and b.run_id and a.run_id != b.run_id


def test_empty_series_gives_empty_result():
    engine = BacktestEngine(provider=FakeProvider([]))
    result = engine.run(raw_request())

    assert result.trades == ()
    assert result.to_dict()["trades"] == []
    assert result.summary.total_trades == 0
    assert result.final_capital == 10_000.0


def test_provider_failure_propagates():
    engine = BacktestEngine(provider=FakeProvider(error=ProviderUnavailableError("feed down")))
    with pytest.raises(ProviderUnavailableError):
        engine.run(raw_request())


def test_data_integrity_failure_propagates_and_nothing_is_persisted():
    bars = make_bars([100, 101, 102])
    bars[1] = Bar(bars[1].date, 101, 101.5, 100.5, float("nan"), 1000.0)
    sink = RecordingSink()
    engine = BacktestEngine(provider=FakeProvider(bars), result_sink=sink)

    with pytest.raises(DataIntegrityError):
        engine.run(raw_request())
    assert sink.records == []


def test_persistence_failure_does_not_fail_the_run(caplog):
    engine = BacktestEngine(provider=FakeProvider(make_bars([100, 101, 102])), result_sink=FailingSink())

    with caplog.at_level(logging.WARNING):
        result = engine.run(raw_request())

    assert result.summary.total_trades == 1
    assert "failed" in caplog.text


def test_unexpected_sink_error_does_not_fail_the_run(caplog):
    engine = BacktestEngine(provider=FakeProvider(make_bars([100, 101, 102])), result_sink=BrokenSink())

    with caplog.at_level(logging.WARNING):
        result = engine.run(raw_request(), run_id="run-x")

    assert result.run_id == "run-x"
    assert result.summary.total_trades == 1
    assert result.final_capital == pytest.approx(10_020.0)
    assert "BrokenSink" in caplog.text
    assert "db down" in caplog.text


def test_overflowing_position_size_is_rejected_not_reported_as_infinity():
    bad = raw_request()
    bad["strategy"] = dict(bad["strategy"], positionSize=1e308)
    sink = RecordingSink()
    engine = BacktestEngine(provider=FakeProvider(make_bars([100, 104, 108])), result_sink=sink)

    with pytest.raises(DataIntegrityError):
        engine.run(bad)
    assert sink.records == []


def test_max_bars_from_engine_config():
    engine = BacktestEngine(
        engine_cfg=EngineConfig(max_bars=3),
        provider=FakeProvider(make_bars([100, 101, 102, 103, 104])),
    )
    result = engine.run(raw_request())

    assert result.bars_processed == 3
    assert result.trades[0].exit_price == 102


def test_engine_is_reusable_across_runs():
    engine = BacktestEngine(provider=FakeProvider(make_bars([100, 99, 98, 97, 101])))
    first = engine.run(raw_request(), run_id="a")
    second = engine.run(raw_request(), run_id="b")

    assert first.trades == second.trades
    assert first.summary == second.summary
