"""Raw Kraken OHLC log -> coalesced base candles -> every timeframe -> watermark gate -> candle logs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from candlebook.candles.aggregator import MultiTimeframeAggregator
from candlebook.candles.coalescer import BaseCandleCoalescer, VolumeMode
from candlebook.candles.timeframes import resolve_timeframes, timeframe_seconds
from candlebook.models.candle import Candle, CandleRecord, OhlcBar
from candlebook.storage.checkpoint import WatermarkGate
from candlebook.storage.paths import candle_checkpoint_path, candle_partition, raw_stream_dir
from candlebook.storage.reader import iter_records, list_ndjson_files
from candlebook.storage.writer import RotatingNdjsonWriter

log = structlog.get_logger(__name__)

# 9999-12-31T23:59:59Z, the last second datetime can represent
MAX_EPOCH_SEC = 253_402_300_799


@dataclass
class ProcessStats:
    symbol: str
    files: int = 0
    records: int = 0
    base_updates: int = 0
    base_candles: int = 0
    written: dict[str, int] = field(default_factory=dict)
    below_watermark: int = 0


def base_candle_from_record(
    rec: dict[str, Any],
    symbol: str,
    base_seconds: int,
) -> Candle | None:
    """One raw ohlc record -> base candle keyed by its bucket start, or None if it does not apply."""
    if rec.get("exchange") != "kraken" or rec.get("stream") != "ohlc" or rec.get("symbol") != symbol:
        return None
    payload = rec.get("payload")
    if not isinstance(payload, dict):
        return None
    try:
        bar = OhlcBar.model_validate(payload)
    except ValidationError:
        return None
    if bar.interval_min * 60 != base_seconds or not 0 < bar.time_sec <= MAX_EPOCH_SEC:
        return None
    if bar.end_time_sec and not base_seconds <= bar.end_time_sec <= MAX_EPOCH_SEC:
        return None
    if bar.end_time_sec:
        bucket = bar.end_time_sec - base_seconds
    else:
        bucket = (bar.time_sec // base_seconds) * base_seconds
    return Candle(
        time=bucket,
        open=bar.open,
        high=bar.high,
        low=bar.low,
        close=bar.close,
        volume=bar.volume,
    )


class CandlePipeline:
    """Per-symbol state: one coalescer, one aggregator per timeframe, one gate and writer per timeframe."""

    def __init__(
        self,
        symbol: str,
        derived_dir: str | Path,
        *,
        timeframes: list[str] | None = None,
        base_timeframe: str = "1m",
        volume_mode: VolumeMode = "cumulative",
        checkpoint_every: int = 200,
        max_partition_bytes: int = 0,
    ) -> None:
        self.symbol = symbol
        self.derived_dir = Path(derived_dir)
        self.base_seconds = timeframe_seconds(base_timeframe)
        tfs = resolve_timeframes(timeframes)
        too_fine = [tf for tf in tfs if timeframe_seconds(tf) < self.base_seconds]
        if too_fine:
            log.warning("timeframes_below_base_skipped", symbol=symbol, timeframes=too_fine, base=base_timeframe)
        self.timeframes = [tf for tf in tfs if tf not in too_fine]
        self.coalescer = BaseCandleCoalescer(volume_mode)
        self.aggregator = MultiTimeframeAggregator(symbol, self.timeframes)
        self.gates = {
            tf: WatermarkGate(candle_checkpoint_path(self.derived_dir, symbol, tf), checkpoint_every)
            for tf in self.timeframes
        }
        self.writers = {tf: self._writer(tf, max_partition_bytes) for tf in self.timeframes}
        self.stats = ProcessStats(symbol=symbol, written={tf: 0 for tf in self.timeframes})

    def _writer(self, tf: str, max_bytes: int) -> RotatingNdjsonWriter:
        derived, symbol = self.derived_dir, self.symbol
        return RotatingNdjsonWriter(
            lambda ts_ms: candle_partition(derived, symbol, tf, ts_ms),
            max_bytes=max_bytes,
            name=f"{symbol}:{tf}",
        )

    async def _emit(self, finished: list[tuple[str, Candle]]) -> None:
        for tf, candle in finished:
            gate = self.gates[tf]
            if not gate.admit(candle.time):
                self.stats.below_watermark += 1
                continue
            writer = self.writers[tf]
            await writer.write(CandleRecord.from_candle(self.symbol, tf, candle))
            gate.mark_written(candle.time)
            self.stats.written[tf] += 1
            if gate.save_due:
                # the checkpoint must never get ahead of what is on disk
                await writer.drain()
                await asyncio.to_thread(gate.save)

    async def push(self, base_update: Candle) -> None:
        self.stats.base_updates += 1
        finished = self.coalescer.push(base_update)
        if finished is not None:
            self.stats.base_candles += 1
            await self._emit(self.aggregator.ingest(finished))

    async def finish(self) -> ProcessStats:
        """Flush the open base bar and every open bucket, finalize files, save watermarks."""
        last = self.coalescer.flush()
        if last is not None:
            self.stats.base_candles += 1
            await self._emit(self.aggregator.ingest(last))
        await self._emit(self.aggregator.flush())
        for w in self.writers.values():
            await w.close()
        for gate in self.gates.values():
            await asyncio.to_thread(gate.save)
        return self.stats


async def process_symbol(
    symbol: str,
    data_dir: str | Path,
    derived_dir: str | Path,
    *,
    timeframes: list[str] | None = None,
    base_timeframe: str = "1m",
    volume_mode: VolumeMode = "cumulative",
    include_tmp: bool = False,
    checkpoint_every: int = 200,
    max_partition_bytes: int = 0,
) -> ProcessStats:
    """Read every raw kraken/ohlc partition for symbol in order and write derived candles for each timeframe."""
    raw_dir = raw_stream_dir(data_dir, "kraken", "ohlc", symbol)
    files = list_ndjson_files(raw_dir, include_tmp=include_tmp)
    if not files:
        log.warning("processor_no_raw_files", symbol=symbol, raw_dir=str(raw_dir))
        return ProcessStats(symbol=symbol)

    pipeline = CandlePipeline(
        symbol,
        derived_dir,
        timeframes=timeframes,
        base_timeframe=base_timeframe,
        volume_mode=volume_mode,
        checkpoint_every=checkpoint_every,
        max_partition_bytes=max_partition_bytes,
    )
    pipeline.stats.files = len(files)
    for rec in iter_records(files):
        pipeline.stats.records += 1
        candle = base_candle_from_record(rec, symbol, pipeline.base_seconds)
        if candle is not None:
            await pipeline.push(candle)
    stats = await pipeline.finish()
    log.info(
        "processor_symbol_done",
        symbol=symbol,
        files=stats.files,
        records=stats.records,
        base_candles=stats.base_candles,
        written=sum(stats.written.values()),
        below_watermark=stats.below_watermark,
    )
    return stats
