"""Timeframe alignment, base-candle coalescing and multi-timeframe aggregation."""

from datetime import UTC, datetime

import pytest

from candlebook.candles.aggregator import CandleAggregator, MultiTimeframeAggregator
from candlebook.candles.coalescer import BaseCandleCoalescer
from candlebook.candles.timeframes import (
    REFERENCE_MONDAY,
    SUPPORTED_TIMEFRAMES,
    align_bar_start,
    resolve_timeframes,
    timeframe_seconds,
)
from candlebook.models.candle import Candle


def _c(t, o=1.0, h=None, l=None, c=None, v=0.0):
    return Candle(time=t, open=o, high=o if h is None else h, low=o if l is None else l, close=o if c is None else c, volume=v)


def test_weekly_bars_start_on_monday():
    assert align_bar_start(REFERENCE_MONDAY, "1w") == REFERENCE_MONDAY
    for t in (REFERENCE_MONDAY + 1, 1_700_000_000, 1_718_000_123, 2_000_000_000):
        start = align_bar_start(t, "1w")
        assert start <= t < start + timeframe_seconds("1w")
        d = datetime.fromtimestamp(start, tz=UTC)
        assert d.weekday() == 0
        assert (d.hour, d.minute, d.second) == (0, 0, 0)


def test_weekly_before_reference_monday():
    # 1970-01-01 (Thursday) belongs to the week starting Monday 1969-12-29
    assert align_bar_start(0, "1w") == REFERENCE_MONDAY - 7 * 86400


def test_intraday_alignment():
    assert align_bar_start(3_725, "1h") == 3_600
    assert align_bar_start(3_725, "5m") == 3_600
    assert align_bar_start(3_725, "1m") == 3_720
    assert align_bar_start(86_400 * 3 + 5, "3d") == 86_400 * 3


def test_unknown_timeframe_rejected():
    with pytest.raises(ValueError):
        timeframe_seconds("7m")
    with pytest.raises(ValueError):
        resolve_timeframes(["1m", "2w"])


def test_resolve_timeframes_keeps_canonical_order():
    assert resolve_timeframes([]) == list(SUPPORTED_TIMEFRAMES)
    assert resolve_timeframes(["1d", "1m", "1h"]) == ["1m", "1h", "1d"]


def test_coalescer_merges_updates_for_same_bucket():
    co = BaseCandleCoalescer()
    assert co.push(_c(100, o=10, h=10, l=10, c=10, v=1)) is None
    assert co.push(_c(100, o=10, h=12, l=9, c=11, v=2)) is None
    assert co.push(_c(100, o=10, h=11, l=9.5, c=10.5, v=3)) is None
    out = co.push(_c(160, o=10.5, v=1))
    assert out is not None
    assert (out.time, out.open, out.high, out.low, out.close) == (100, 10, 12, 9, 10.5)
    assert out.volume == 3  # cumulative: latest running total
    assert co.current.time == 160


def test_coalescer_incremental_volume_sums():
    co = BaseCandleCoalescer(volume_mode="incremental")
    co.push(_c(100, v=1))
    co.push(_c(100, v=2))
    out = co.push(_c(160, v=5))
    assert out.volume == 3


def test_coalescer_discards_stale_updates():
    co = BaseCandleCoalescer()
    co.push(_c(100))
    assert co.push(_c(160)) is not None
    assert co.push(_c(100, h=999)) is None
    assert co.discarded == 1
    assert co.flush().time == 160
    assert co.flush() is None


def test_coalescer_rejects_unknown_volume_mode():
    with pytest.raises(ValueError):
        BaseCandleCoalescer(volume_mode="average")  # type: ignore[arg-type]


def test_aggregator_five_minute_bar():
    agg = CandleAggregator("BTC", "5m")
    finished = []
    for i, (o, h, l, c) in enumerate([(10, 11, 9, 10.5), (10.5, 13, 10, 12), (12, 12.5, 8, 9), (9, 9.5, 8.5, 9.2), (9.2, 10, 9, 9.8)]):
        out = agg.ingest_base_candle(_c(300 + 60 * i, o=o, h=h, l=l, c=c, v=1))
        assert out is None
    finished.append(agg.ingest_base_candle(_c(600, o=9.8, v=2)))
    bar = finished[0]
    assert (bar.time, bar.open, bar.high, bar.low, bar.close, bar.volume) == (300, 10, 13, 8, 9.8, 5)
    last = agg.flush()
    assert last.time == 600 and last.volume == 2
    assert agg.flush() is None


def test_aggregator_ignores_out_of_order_bucket():
    agg = CandleAggregator("BTC", "1h")
    agg.ingest_base_candle(_c(7_200))
    assert agg.ingest_base_candle(_c(3_600)) is None
    assert agg.discarded == 1
    assert agg.current.time == 7_200


def test_multi_timeframe_fan_out():
    multi = MultiTimeframeAggregator("BTC", ["1m", "5m"])
    out = []
    for t in range(0, 660, 60):
        out.extend(multi.ingest(_c(t, v=1)))
    one_minute = [c.time for tf, c in out if tf == "1m"]
    five_minute = [c.time for tf, c in out if tf == "5m"]
    assert one_minute == list(range(0, 600, 60))
    assert five_minute == [0, 300]
    rest = multi.flush()
    assert sorted(tf for tf, _ in rest) == ["1m", "5m"]
    assert dict(rest)["5m"].time == 600
