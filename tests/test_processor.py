"""Candle pipeline: coalescing raw OHLC, fan-out, watermark idempotency."""

import asyncio
import json
from pathlib import Path

from candlebook.processor.pipeline import base_candle_from_record, process_symbol

T0S = 1_704_067_200  # 2024-01-01T00:00:00Z


def _ohlc(minute: int, offset: int, price: float, volume: float, **extra) -> dict:
    start = T0S + 60 * minute
    payload = {
        "time_sec": start + offset,
        "end_time_sec": start + 60,
        "interval_min": 1,
        "open": 100.0 + minute,
        "high": price + 1,
        "low": price - 1,
        "close": price,
        "vwap": price,
        "volume": volume,
        "count": 1,
        "pair": "XBT/USD",
        "channel": "ohlc-1",
    }
    payload.update(extra)
    return {
        "v": 1,
        "ts_capture_ms": (start + offset) * 1000,
        "exchange": "kraken",
        "stream": "ohlc",
        "symbol": "BTC",
        "ts_event_ms": (start + offset) * 1000,
        "seq": minute * 2 + (offset > 30),
        "payload": payload,
        "raw": None,
    }


def _write_raw(data_dir: Path, name: str, minutes: range) -> None:
    d = data_dir / "raw" / "kraken" / "ohlc" / "BTC" / "2024" / "01" / "01"
    d.mkdir(parents=True, exist_ok=True)
    with open(d / name, "a", encoding="utf-8") as f:
        for m in minutes:
            # two updates per bar: running volume 1 then 2
            f.write(json.dumps(_ohlc(m, 10, 100.0 + m, 1.0)) + "\n")
            f.write(json.dumps(_ohlc(m, 50, 100.5 + m, 2.0)) + "\n")


def _candles(derived: Path, tf: str) -> list[dict]:
    path = derived / "candles" / "BTC" / tf / "2024" / "01" / "01.ndjson"
    return [json.loads(line) for line in path.read_text().splitlines() if line]


def _run(data_dir: Path, derived: Path, **kwargs):
    return asyncio.run(
        process_symbol("BTC", data_dir, derived, timeframes=["1m", "5m"], checkpoint_every=3, **kwargs)
    )


def test_base_candle_from_record():
    rec = _ohlc(2, 10, 101.0, 4.0)
    c = base_candle_from_record(rec, "BTC", 60)
    assert c.time == T0S + 120
    assert (c.close, c.volume) == (101.0, 4.0)
    no_end = _ohlc(2, 10, 101.0, 4.0, end_time_sec=None)
    assert base_candle_from_record(no_end, "BTC", 60).time == T0S + 120
    assert base_candle_from_record(_ohlc(2, 10, 1.0, 1.0, interval_min=5), "BTC", 60) is None
    assert base_candle_from_record(rec, "ETH", 60) is None
    assert base_candle_from_record({**rec, "payload": {"time_sec": "soon"}}, "BTC", 60) is None


def test_pipeline_writes_every_timeframe(tmp_path):
    data_dir, derived = tmp_path / "data", tmp_path / "derived"
    _write_raw(data_dir, "00.ndjson", range(10))
    stats = _run(data_dir, derived)
    assert stats.files == 1
    assert stats.records == 20
    assert stats.base_candles == 10
    assert stats.written == {"1m": 10, "5m": 2}

    one = _candles(derived, "1m")
    assert [c["time"] for c in one] == [T0S + 60 * m for m in range(10)]
    assert all(c["volume"] == 2.0 for c in one)
    assert one[3]["high"] == 104.5 and one[3]["low"] == 102.0 and one[3]["close"] == 103.5
    assert all(c["timeframe"] == "1m" and c["symbol"] == "BTC" for c in one)

    five = _candles(derived, "5m")
    assert [c["time"] for c in five] == [T0S, T0S + 300]
    assert five[0]["open"] == 100.0 and five[0]["close"] == 104.5
    assert five[0]["volume"] == 10.0

    cp = json.loads((derived / "state" / "processor" / "BTC" / "1m.json").read_text())
    assert cp["lastWrittenTime"] == T0S + 540
    assert not list(derived.rglob("*.tmp"))


def test_rerun_on_same_input_changes_nothing(tmp_path):
    data_dir, derived = tmp_path / "data", tmp_path / "derived"
    _write_raw(data_dir, "00.ndjson", range(10))
    _run(data_dir, derived)
    path = derived / "candles" / "BTC" / "1m" / "2024" / "01" / "01.ndjson"
    before = path.read_bytes()
    stats = _run(data_dir, derived)
    assert stats.written == {"1m": 0, "5m": 0}
    assert stats.below_watermark == 12
    assert path.read_bytes() == before


def test_new_data_is_appended_after_watermark(tmp_path):
    data_dir, derived = tmp_path / "data", tmp_path / "derived"
    _write_raw(data_dir, "00.ndjson", range(10))
    _run(data_dir, derived)
    _write_raw(data_dir, "00_0001.ndjson", range(10, 12))
    stats = _run(data_dir, derived)
    assert stats.written == {"1m": 2, "5m": 1}
    times = [c["time"] for c in _candles(derived, "1m")]
    assert times == [T0S + 60 * m for m in range(12)]
    assert all(a < b for a, b in zip(times, times[1:]))
    assert [c["time"] for c in _candles(derived, "5m")] == [T0S, T0S + 300, T0S + 600]


def test_tmp_partitions_only_with_include_tmp(tmp_path):
    data_dir, derived = tmp_path / "data", tmp_path / "derived"
    _write_raw(data_dir, "00.ndjson.tmp", range(3))
    assert _run(data_dir, derived).files == 0
    stats = _run(data_dir, derived, include_tmp=True)
    assert stats.files == 1
    assert stats.written["1m"] == 3


def test_out_of_range_bar_times_are_skipped(tmp_path):
    data_dir, derived = tmp_path / "data", tmp_path / "derived"
    _write_raw(data_dir, "00.ndjson", range(2))
    d = data_dir / "raw" / "kraken" / "ohlc" / "BTC" / "2024" / "01" / "01"
    with open(d / "00.ndjson", "a", encoding="utf-8") as f:
        f.write(json.dumps(_ohlc(2, 10, 102.0, 1.0, time_sec=10**300, end_time_sec=None)) + "\n")
        f.write(json.dumps(_ohlc(2, 10, 102.0, 1.0, end_time_sec=10**300)) + "\n")
    _write_raw(data_dir, "00_0001.ndjson", range(2, 4))

    async def bounded():
        return await asyncio.wait_for(
            process_symbol("BTC", data_dir, derived, timeframes=["1m"], checkpoint_every=1), timeout=10
        )

    stats = asyncio.run(bounded())
    assert stats.records == 10
    assert stats.base_updates == 8
    assert [c["time"] for c in _candles(derived, "1m")] == [T0S + 60 * m for m in range(4)]
    assert base_candle_from_record(_ohlc(0, 10, 1.0, 1.0, time_sec=-5, end_time_sec=None), "BTC", 60) is None
