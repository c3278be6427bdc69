"""Exchange connector base - connect, subscribe, receive, watchdog, reconnect with backoff.

A connector owns one websocket subscription for one canonical symbol. Subclasses
provide the subscription frames and a pure ``handle_message`` that turns one
decoded exchange message into zero or more Envelopes. Everything about the
connection lifecycle lives here:

    DISCONNECTED -> CONNECTING -> CONNECTED -> (error | stale | close) -> BACKOFF -> CONNECTING ...

Setting ``stop_event`` ends the loop from any state.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog
import websockets

from candlebook.ingestion.parsing import parse_json
from candlebook.models.envelope import Envelope, Stream, now_ms
from candlebook.models.orderbook import SampledSnapshot

log = structlog.get_logger(__name__)

EnvelopeSink = Callable[[Envelope], Awaitable[None]]


class ConnectorState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    BACKOFF = "backoff"


async def _discard(_: Envelope) -> None:
    return None


class Connector(ABC):
    """Abstract exchange connector. Implement subscribe_messages and handle_message per exchange/stream."""

    exchange: str = ""
    url: str = ""

    def __init__(
        self,
        symbol: str,
        *,
        name: str,
        on_envelope: EnvelopeSink | None = None,
        reconnect_base_delay_sec: float = 1.0,
        reconnect_max_delay_sec: float = 30.0,
        recv_timeout_sec: float = 30.0,
        stale_after_sec: float = 90.0,
        watchdog_interval_sec: float = 5.0,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.symbol = symbol
        self.name = name
        self.on_envelope = on_envelope or _discard
        self.reconnect_base_delay_sec = reconnect_base_delay_sec
        self.reconnect_max_delay_sec = reconnect_max_delay_sec
        self.recv_timeout_sec = recv_timeout_sec
        self.stale_after_sec = stale_after_sec
        self.watchdog_interval_sec = watchdog_interval_sec
        self.clock = clock
        self.seq = 0
        self.state = ConnectorState.DISCONNECTED
        self.stop_event = asyncio.Event()
        self._last_data_at = time.monotonic()

    # --- records ---

    def next_seq(self) -> int:
        self.seq += 1
        return self.seq

    def envelope(
        self,
        stream: Stream,
        payload: dict[str, Any],
        *,
        ts_capture_ms: int,
        ts_event_ms: int | None = None,
        raw: Any = None,
    ) -> Envelope:
        return Envelope(
            ts_capture_ms=ts_capture_ms,
            exchange=self.exchange,
            stream=stream,
            symbol=self.symbol,
            ts_event_ms=ts_event_ms,
            seq=self.next_seq(),
            payload=payload,
            raw=raw,
        )

    def meta(self, event: str, **fields: Any) -> Envelope:
        """Connection lifecycle record, routed to the shared meta log."""
        return Envelope(
            ts_capture_ms=self.clock(),
            exchange="meta",
            stream="meta",
            symbol="",
            seq=self.next_seq(),
            payload={"event": event, "connector": self.name, **fields},
        )

    def exchange_meta(self, msg: dict[str, Any], ts_capture_ms: int, raw: Any = None) -> Envelope:
        """Exchange status/subscription frame, kept under this exchange's meta stream."""
        return self.envelope("meta", msg, ts_capture_ms=ts_capture_ms, raw=raw)

    def sampled_book(self, snap: SampledSnapshot, **extra: Any) -> Envelope:
        """Book record stamped with the sample boundary, not the wall clock."""
        payload = {
            "type": "snapshot",
            "sampled": True,
            "interval_ms": snap.interval_ms,
            "depth": snap.depth,
            **extra,
            "bids": [list(p) for p in snap.bids],
            "asks": [list(p) for p in snap.asks],
        }
        return self.envelope(
            "book",
            payload,
            ts_capture_ms=snap.capture_time_ms,
            ts_event_ms=snap.capture_time_ms,
        )

    # --- subclass hooks ---

    @abstractmethod
    def subscribe_messages(self) -> list[dict[str, Any]]:
        """Frames sent right after every (re)connect."""
        ...

    @abstractmethod
    def handle_message(self, msg: Any, ts_capture_ms: int) -> list[Envelope]:
        """Decoded message -> records. Must not do I/O."""
        ...

    def on_open(self) -> None:
        """Called on every (re)connect before subscribing. Reset per-session state here."""

    def mark_data(self) -> None:
        """Record that market data (not a heartbeat) arrived; feeds the stale watchdog."""
        self._last_data_at = time.monotonic()

    # --- message path ---

    def process_raw(self, raw: str | bytes, ts_capture_ms: int | None = None) -> list[Envelope]:
        """Decode and handle one frame. A failure drops that frame only."""
        msg = parse_json(raw)
        if msg is None:
            log.debug("connector_bad_json", connector=self.name)
            return []
        ts = self.clock() if ts_capture_ms is None else ts_capture_ms
        try:
            return self.handle_message(msg, ts)
        except Exception:
            log.exception("connector_message_failed", connector=self.name)
            return []

    async def _emit(self, envelopes: list[Envelope]) -> None:
        for env in envelopes:
            await self.on_envelope(env)

    def _set_state(self, state: ConnectorState) -> None:
        if state != self.state:
            log.debug("connector_state", connector=self.name, state=state.value, prev=self.state.value)
            self.state = state

    # --- lifecycle ---

    async def stop(self) -> None:
        self.stop_event.set()

    async def _sleep_or_stop(self, delay: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self.stop_event.wait(), timeout=delay)

    async def _watchdog(self, ws: Any) -> None:
        """Close the socket when stop is requested or no market data arrived for stale_after_sec."""
        while True:
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.watchdog_interval_sec)
                await ws.close()
                return
            except asyncio.TimeoutError:
                pass
            idle = time.monotonic() - self._last_data_at
            if self.stale_after_sec and idle > self.stale_after_sec:
                log.warning("connector_stale", connector=self.name, idle_sec=round(idle, 1))
                await self._emit([self.meta("stale", idle_sec=round(idle, 1))])
                await ws.close()
                return

    async def _session(self, ws: Any) -> None:
        self.mark_data()
        watchdog = asyncio.create_task(self._watchdog(ws), name=f"watchdog:{self.name}")
        try:
            while not self.stop_event.is_set():
                raw = await asyncio.wait_for(ws.recv(), timeout=self.recv_timeout_sec)
                await self._emit(self.process_raw(raw))
        finally:
            watchdog.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watchdog

    async def run(self) -> None:
        """Connect and stream until stop_event is set. Retries forever with capped exponential backoff."""
        delay = self.reconnect_base_delay_sec
        while not self.stop_event.is_set():
            self._set_state(ConnectorState.CONNECTING)
            connected = False
            try:
                async with websockets.connect(
                    self.url,
                    ping_interval=20,
                    ping_timeout=20,
                    close_timeout=5,
                ) as ws:
                    connected = True
                    self._set_state(ConnectorState.CONNECTED)
                    delay = self.reconnect_base_delay_sec
                    self.on_open()
                    await self._emit([self.meta("connect", url=self.url)])
                    for sub in self.subscribe_messages():
                        await ws.send(json.dumps(sub))
                    log.info("connector_connected", connector=self.name, url=self.url)
                    await self._session(ws)
            except asyncio.CancelledError:
                log.info("connector_cancelled", connector=self.name)
                raise
            except Exception as e:
                if not self.stop_event.is_set():
                    log.warning("connector_error", connector=self.name, error=str(e) or type(e).__name__, delay=delay)
                    await self._emit([self.meta("error", message=str(e) or type(e).__name__)])
            if connected:
                await self._emit([self.meta("disconnect")])
            if self.stop_event.is_set():
                break
            self._set_state(ConnectorState.BACKOFF)
            await self._sleep_or_stop(delay)
            delay = min(delay * 2, self.reconnect_max_delay_sec)
        self._set_state(ConnectorState.DISCONNECTED)
        log.info("connector_stopped", connector=self.name)
