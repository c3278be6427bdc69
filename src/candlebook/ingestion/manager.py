"""Recorder orchestrator - connectors + partitioned raw log writers + seq checkpoints."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

import structlog

from candlebook.config.symbols import get_exchange_symbol
from candlebook.ingestion.base import Connector, EnvelopeSink
from candlebook.ingestion.bitstamp.connectors import BitstampBookConnector, BitstampTradesConnector
from candlebook.ingestion.coinbase.connectors import CoinbaseLevel2Connector, CoinbaseTickerConnector
from candlebook.ingestion.kraken.connectors import (
    KrakenBookConnector,
    KrakenOhlcConnector,
    KrakenTickerConnector,
)
from candlebook.models.envelope import Envelope, now_ms
from candlebook.storage.paths import raw_partition, recorder_checkpoint_path
from candlebook.storage.state import read_json_if_exists, write_json_atomic
from candlebook.storage.writer import DEFAULT_QUEUE_SIZE, RotatingNdjsonWriter

if TYPE_CHECKING:
    from candlebook.config.settings import Settings

log = structlog.get_logger(__name__)

META_KEY = ("meta", "meta", "_")


class NoConnectorsError(RuntimeError):
    """No (symbol, stream) combination produced a connector."""


# stream name -> (exchange, factory(symbol, native_id, book_opts, conn_opts))
ConnectorFactory = Callable[[str, str, dict[str, Any], dict[str, Any]], Connector]

STREAMS: dict[str, tuple[str, ConnectorFactory]] = {
    "kraken_ohlc_1m": ("kraken", lambda s, n, b, o: KrakenOhlcConnector(s, n, interval_min=1, **o)),
    "kraken_book": ("kraken", lambda s, n, b, o: KrakenBookConnector(s, n, **b, **o)),
    "kraken_ticker": ("kraken", lambda s, n, b, o: KrakenTickerConnector(s, n, **o)),
    "coinbase_level2": ("coinbase", lambda s, n, b, o: CoinbaseLevel2Connector(s, n, **b, **o)),
    "coinbase_ticker": ("coinbase", lambda s, n, b, o: CoinbaseTickerConnector(s, n, **o)),
    "bitstamp_book": ("bitstamp", lambda s, n, b, o: BitstampBookConnector(s, n, **b, **o)),
    "bitstamp_trades": ("bitstamp", lambda s, n, b, o: BitstampTradesConnector(s, n, **o)),
}


class RecorderManager:
    """Runs one connector per (symbol, stream) and appends every record to its partitioned log."""

    def __init__(
        self,
        data_dir: str | Path,
        symbols: list[str],
        streams: list[str],
        *,
        book_depth: int = 100,
        sample_interval_ms: int = 60_000,
        checkpoint_every: int = 200,
        max_partition_bytes: int = 0,
        write_queue_size: int = DEFAULT_QUEUE_SIZE,
        connector_options: dict[str, Any] | None = None,
    ):
        self.data_dir = Path(data_dir)
        self.symbols = [s.upper() for s in symbols]
        self.streams = list(streams)
        self.book_options = {"depth": book_depth, "sample_interval_ms": sample_interval_ms}
        self.checkpoint_every = max(1, checkpoint_every)
        self.max_partition_bytes = max_partition_bytes
        self.write_queue_size = write_queue_size
        self.connector_options = dict(connector_options or {})
        self.connectors: list[Connector] = []
        self.writers: dict[tuple[str, str, str], RotatingNdjsonWriter] = {}
        self._last_seq: dict[str, int] = {}
        self._record_count = 0
        self._start_ts: float | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        symbols: list[str] | None = None,
        streams: list[str] | None = None,
        out_dir: str | Path | None = None,
    ) -> RecorderManager:
        return cls(
            data_dir=out_dir or settings.out_dir,
            symbols=symbols or settings.symbols,
            streams=streams or settings.streams,
            book_depth=settings.book_depth,
            sample_interval_ms=settings.sample_interval_ms,
            checkpoint_every=settings.recorder_checkpoint_every,
            max_partition_bytes=settings.max_partition_bytes,
            write_queue_size=settings.write_queue_size,
            connector_options={
                "reconnect_base_delay_sec": settings.reconnect_base_delay_sec,
                "reconnect_max_delay_sec": settings.reconnect_max_delay_sec,
                "recv_timeout_sec": settings.recv_timeout_sec,
                "stale_after_sec": settings.stale_after_sec,
                "watchdog_interval_sec": settings.watchdog_interval_sec,
            },
        )

    # --- connectors ---

    def _checkpoint_path(self, connector_key: str) -> Path:
        return recorder_checkpoint_path(self.data_dir, connector_key)

    def build_connectors(self) -> list[Connector]:
        """Create connectors for every supported (symbol, stream); resume each from its seq checkpoint."""
        connectors: list[Connector] = []
        for stream in self.streams:
            if stream not in STREAMS:
                log.warning("unknown_stream", stream=stream, known=sorted(STREAMS))
        for symbol in self.symbols:
            for stream in self.streams:
                if stream not in STREAMS:
                    continue
                exchange, factory = STREAMS[stream]
                native = get_exchange_symbol(exchange, symbol)
                if not native:
                    log.warning("symbol_unsupported", exchange=exchange, symbol=symbol, stream=stream)
                    continue
                c = factory(symbol, native, self.book_options, self.connector_options)
                state = read_json_if_exists(self._checkpoint_path(c.name), {"seq": 0})
                if isinstance(state, dict) and isinstance(state.get("seq"), int):
                    c.seq = state["seq"]
                c.on_envelope = self._sink(c)
                connectors.append(c)
        if not connectors:
            raise NoConnectorsError("No connectors started (check symbols and streams)")
        self.connectors = connectors
        return connectors

    def _sink(self, connector: Connector) -> EnvelopeSink:
        async def sink(env: Envelope) -> None:
            await self.record(connector.name, env)

        return sink

    # --- writers ---

    def writer_for(self, exchange: str, stream: str, symbol: str) -> RotatingNdjsonWriter:
        key = (exchange, stream, symbol or "_")
        w = self.writers.get(key)
        if w is None:
            data_dir = self.data_dir
            w = RotatingNdjsonWriter(
                lambda ts_ms: raw_partition(data_dir, key[0], key[1], key[2], ts_ms),
                max_bytes=self.max_partition_bytes,
                queue_size=self.write_queue_size,
                name=":".join(key),
            )
            self.writers[key] = w
        return w

    async def record(self, connector_key: str, env: Envelope) -> None:
        if env.exchange == "meta" and env.stream == "meta":
            await self.writer_for(*META_KEY).write(env)
        else:
            await self.writer_for(env.exchange, env.stream, env.symbol).write(env)
        self._record_count += 1
        self._last_seq[connector_key] = env.seq
        if env.seq % self.checkpoint_every == 0:
            await asyncio.to_thread(self._save_seq, connector_key, env.seq)

    def _save_seq(self, connector_key: str, seq: int) -> None:
        try:
            write_json_atomic(self._checkpoint_path(connector_key), {"seq": seq, "ts": now_ms()})
        except OSError as e:
            log.warning("seq_checkpoint_failed", connector=connector_key, error=str(e))

    # --- lifecycle ---

    async def _stop_on(self, stop: asyncio.Event) -> None:
        await stop.wait()
        log.info("recorder_stopping", connectors=len(self.connectors))
        for c in self.connectors:
            await c.stop()

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Run all connectors until stop_event is set, then flush writers and checkpoints."""
        if not self.connectors:
            self.build_connectors()
        stop = stop_event or asyncio.Event()
        self._start_ts = time.time()
        log.info(
            "recorder_started",
            out_dir=str(self.data_dir),
            symbols=self.symbols,
            streams=self.streams,
            connectors=[c.name for c in self.connectors],
        )
        stopper = asyncio.create_task(self._stop_on(stop))
        try:
            await asyncio.gather(*(c.run() for c in self.connectors))
        finally:
            stopper.cancel()
            await self.close()
        log.info("recorder_stopped", total_records=self._record_count)

    def get_status(self) -> dict[str, Any]:
        elapsed = (time.time() - self._start_ts) if self._start_ts else 0
        return {
            "record_count": self._record_count,
            "elapsed_sec": round(elapsed, 1),
            "records_per_sec": round(self._record_count / elapsed, 2) if elapsed > 0 else 0,
            "connectors": {c.name: c.state.value for c in self.connectors},
        }

    async def close(self) -> None:
        """Drain and finalize every writer, then persist the last seq of every connector."""
        for key, w in list(self.writers.items()):
            try:
                await w.close()
            except OSError as e:
                log.error("writer_close_failed", writer=":".join(key), error=str(e))
        for connector_key, seq in self._last_seq.items():
            await asyncio.to_thread(self._save_seq, connector_key, seq)
