"""Partition paths, atomic state, watermark checkpoints and the rotating NDJSON writer."""

import asyncio
import json
from pathlib import Path

from candlebook.models.envelope import Envelope
from candlebook.storage.checkpoint import WatermarkGate, load_checkpoint
from candlebook.storage.paths import PartitionPath, candle_partition, latest_continuation, raw_partition
from candlebook.storage.reader import (
    iter_records,
    iter_timestamped,
    list_files_recursive,
    list_ndjson_files,
    record_timestamp,
)
from candlebook.storage.state import read_json_if_exists, write_json_atomic
from candlebook.storage.writer import RotatingNdjsonWriter, finalize_partition

HOUR_MS = 3_600_000
# 2024-01-01T00:00:00Z
T0 = 1_704_067_200_000


def _read_lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines() if line]


def test_raw_and_candle_partition_layout(tmp_path):
    part = raw_partition(tmp_path, "kraken", "book", "BTC", T0 + 13 * HOUR_MS + 5)
    assert part.final_path == tmp_path / "raw" / "kraken" / "book" / "BTC" / "2024" / "01" / "01" / "13.ndjson"
    assert part.tmp_path.name == "13.ndjson.tmp"
    assert part.key == "2024010113"
    cpart = candle_partition(tmp_path, "BTC", "1h", T0 + 2 * 86_400_000)
    assert cpart.final_path == tmp_path / "candles" / "BTC" / "1h" / "2024" / "01" / "03.ndjson"
    assert cpart.key == "20240103"


def test_continuation_names_sort_after_base(tmp_path):
    part = PartitionPath(final_path=tmp_path / "13.ndjson", key="k")
    assert part.continuation(0) is part
    cont = part.continuation(1)
    assert cont.final_path.name == "13_0001.ndjson"
    assert cont.key == "k"
    assert sorted([str(cont.final_path), str(part.final_path)]) == [str(part.final_path), str(cont.final_path)]


def test_state_roundtrip_and_fallbacks(tmp_path):
    path = tmp_path / "state" / "x.json"
    assert read_json_if_exists(path, {"seq": 0}) == {"seq": 0}
    write_json_atomic(path, {"seq": 5})
    assert read_json_if_exists(path, None) == {"seq": 5}
    assert not path.with_name("x.json.tmp").exists()
    path.write_text("{not json")
    assert read_json_if_exists(path, "fallback") == "fallback"


def test_watermark_gate_persists_and_filters(tmp_path):
    path = tmp_path / "state" / "processor" / "BTC" / "1m.json"
    gate = WatermarkGate(path, checkpoint_every=2)
    assert gate.last_written_time == 0
    assert gate.admit(60)
    gate.mark_written(60)
    assert not gate.save_due
    gate.mark_written(120)
    assert gate.save_due
    gate.save()
    assert not gate.save_due
    raw = json.loads(path.read_text())
    assert raw["lastWrittenTime"] == 120
    assert raw["ts"] > 0

    reopened = WatermarkGate(path)
    assert reopened.last_written_time == 120
    assert not reopened.admit(60)
    assert not reopened.admit(120)
    assert reopened.admit(180)
    assert reopened.dropped == 2


def test_corrupt_checkpoint_starts_from_zero(tmp_path):
    path = tmp_path / "cp.json"
    path.write_text('{"lastWrittenTime": "soon"}')
    assert load_checkpoint(path).last_written_time == 0
    path.write_text("garbage")
    assert load_checkpoint(path).last_written_time == 0


def _env(ts: int, seq: int) -> Envelope:
    return Envelope(ts_capture_ms=ts, exchange="kraken", stream="ticker", symbol="BTC", seq=seq, payload={"price": seq})


def _raw_writer(tmp_path, **kwargs) -> RotatingNdjsonWriter:
    return RotatingNdjsonWriter(lambda ts: raw_partition(tmp_path, "kraken", "ticker", "BTC", ts), **kwargs)


def test_writer_rotates_on_hour_and_finalizes(tmp_path):
    async def scenario():
        w = _raw_writer(tmp_path)
        await w.write(_env(T0 + 1, 1))
        await w.write(_env(T0 + 2, 2))
        await w.drain()
        day = tmp_path / "raw" / "kraken" / "ticker" / "BTC" / "2024" / "01" / "01"
        assert (day / "00.ndjson.tmp").exists()
        assert not (day / "00.ndjson").exists()
        await w.write(_env(T0 + HOUR_MS + 1, 3))
        await w.drain()
        assert (day / "00.ndjson").exists()
        assert not (day / "00.ndjson.tmp").exists()
        await w.close()
        return day

    day = asyncio.run(scenario())
    assert [r["seq"] for r in _read_lines(day / "00.ndjson")] == [1, 2]
    assert [r["seq"] for r in _read_lines(day / "01.ndjson")] == [3]
    assert list(day.glob("*.tmp")) == []


def test_writer_appends_when_final_exists(tmp_path):
    async def scenario():
        w = _raw_writer(tmp_path)
        await w.write(_env(T0 + 1, 1))
        await w.close()
        w2 = _raw_writer(tmp_path)
        await w2.write(_env(T0 + 2, 2))
        await w2.close()

    asyncio.run(scenario())
    final = tmp_path / "raw" / "kraken" / "ticker" / "BTC" / "2024" / "01" / "01" / "00.ndjson"
    assert [r["seq"] for r in _read_lines(final)] == [1, 2]
    assert not final.with_name("00.ndjson.tmp").exists()


def test_finalize_falls_back_to_append_when_rename_fails(tmp_path, monkeypatch):
    part = PartitionPath(final_path=tmp_path / "05.ndjson", key="k")
    part.tmp_path.write_text('{"a":1}\n')

    def refuse(self, target):
        raise OSError("rename refused")

    monkeypatch.setattr(Path, "rename", refuse)
    assert finalize_partition(part) == part.final_path
    assert part.final_path.read_text() == '{"a":1}\n'
    assert not part.tmp_path.exists()


def test_finalize_keeps_tmp_when_everything_fails(tmp_path):
    part = PartitionPath(final_path=tmp_path / "part" / "05.ndjson", key="k")
    part.final_path.parent.mkdir()
    part.tmp_path.write_text('{"a":1}\n')
    # final is a directory: rename is skipped (exists) and append cannot open it
    part.final_path.mkdir()
    assert finalize_partition(part) is None
    assert part.tmp_path.exists()


def test_writer_size_continuation(tmp_path):
    async def scenario():
        w = _raw_writer(tmp_path, max_bytes=300)
        for i in range(1, 9):
            await w.write(_env(T0 + i, i))
        await w.close()

    asyncio.run(scenario())
    day = tmp_path / "raw" / "kraken" / "ticker" / "BTC" / "2024" / "01" / "01"
    files = list_ndjson_files(day)
    assert len(files) > 1
    assert files[0].name == "00.ndjson"
    assert files[1].name == "00_0001.ndjson"
    for f in files:
        assert f.stat().st_size <= 300
    assert [r["seq"] for r in iter_records(files)] == list(range(1, 9))


def test_concurrent_producers_never_interleave(tmp_path):
    async def producer(w, base):
        for i in range(50):
            await w.write(_env(T0 + i, base + i))
            await asyncio.sleep(0)

    async def scenario():
        w = _raw_writer(tmp_path, queue_size=4)
        await asyncio.gather(producer(w, 0), producer(w, 1000), producer(w, 2000))
        await w.close()
        return w

    w = asyncio.run(scenario())
    assert w.records_written == 150
    final = tmp_path / "raw" / "kraken" / "ticker" / "BTC" / "2024" / "01" / "01" / "00.ndjson"
    records = _read_lines(final)
    assert len(records) == 150
    for base in (0, 1000, 2000):
        assert [r["seq"] for r in records if base <= r["seq"] < base + 1000] == [base + i for i in range(50)]


def test_reader_skips_bad_lines_and_filters_window(tmp_path):
    d = tmp_path / "logs"
    (d / "a").mkdir(parents=True)
    (d / "a" / "01.ndjson").write_text('{"ts_capture_ms": 10}\nnot json\n\n{"ts_event_ms": 20}\n[1,2]\n')
    (d / "a" / "02.ndjson.tmp").write_text('{"ts_capture_ms": 30}\n')
    (d / "notes.txt").write_text("ignore")
    assert [p.name for p in list_files_recursive(d)] == ["01.ndjson", "02.ndjson.tmp", "notes.txt"]
    assert [p.name for p in list_ndjson_files(d)] == ["01.ndjson"]
    files = list_ndjson_files(d, include_tmp=True)
    assert [ts for ts, _ in iter_timestamped(files)] == [10, 20, 30]
    assert [ts for ts, _ in iter_timestamped(files, from_ms=15, to_ms=25)] == [20]
    assert record_timestamp({}) == 0
    assert list_files_recursive(tmp_path / "nope") == []


def test_writer_survives_bad_records(tmp_path):
    async def scenario():
        w = _raw_writer(tmp_path)
        await w.write({"ts_capture_ms": 10**300, "seq": 0})  # timestamp out of range
        await w.write({"ts_capture_ms": T0 + 1, "seq": 1, "x": object()})  # not serializable
        await w.write(_env(T0 + 2, 2))
        await asyncio.wait_for(w.drain(), timeout=2)
        await w.write(_env(T0 + 3, 3))
        await w.close()
        return w

    w = asyncio.run(scenario())
    assert w.errors == 2
    assert w.records_written == 2
    final = tmp_path / "raw" / "kraken" / "ticker" / "BTC" / "2024" / "01" / "01" / "00.ndjson"
    assert [r["seq"] for r in _read_lines(final)] == [2, 3]


def test_latest_continuation_counts_final_and_tmp(tmp_path):
    part = PartitionPath(final_path=tmp_path / "07.ndjson", key="k")
    assert latest_continuation(part) == 0
    (tmp_path / "07.ndjson").write_text("")
    (tmp_path / "07_0002.ndjson").write_text("")
    (tmp_path / "07_0003.ndjson.tmp").write_text("")
    (tmp_path / "08_0009.ndjson").write_text("")
    assert latest_continuation(part) == 3
    assert latest_continuation(PartitionPath(final_path=tmp_path / "nope" / "07.ndjson", key="k")) == 0


def test_restart_keeps_continuations_in_time_order(tmp_path):
    async def session(seqs):
        w = _raw_writer(tmp_path, max_bytes=300)
        for i in seqs:
            await w.write(_env(T0 + i, i))
        await w.close()

    asyncio.run(session(range(1, 9)))
    day = tmp_path / "raw" / "kraken" / "ticker" / "BTC" / "2024" / "01" / "01"
    before = [f.name for f in list_ndjson_files(day)]
    assert len(before) > 1
    asyncio.run(session([9]))
    files = list_ndjson_files(day)
    assert [f.name for f in files][: len(before)] == before
    assert [r["seq"] for r in iter_records(files)] == list(range(1, 10))
    assert [r["seq"] for r in _read_lines(files[-1])][-1] == 9
