"""Kraken connectors: sampled order book, 1m OHLC, ticker."""

from __future__ import annotations

from typing import Any

from candlebook.ingestion.base import Connector
from candlebook.ingestion.kraken import normalize
from candlebook.models.envelope import Envelope
from candlebook.orderbook.reconstructor import (
    DEFAULT_DEPTH,
    DEFAULT_SAMPLE_INTERVAL_MS,
    OrderBookReconstructor,
)


class _KrakenConnector(Connector):
    exchange = "kraken"
    url = normalize.URL

    def __init__(self, symbol: str, pair: str, *, name: str, **kwargs: Any) -> None:
        super().__init__(symbol, name=name, **kwargs)
        self.pair = pair

    def _event(self, msg: dict[str, Any], ts_capture_ms: int) -> list[Envelope]:
        if normalize.is_heartbeat(msg):
            return []
        return [self.exchange_meta(msg, ts_capture_ms)]


class KrakenBookConnector(_KrakenConnector):
    """Keeps the full book locally and records one top-N snapshot per sample interval."""

    def __init__(
        self,
        symbol: str,
        pair: str,
        *,
        depth: int = DEFAULT_DEPTH,
        sample_interval_ms: int = DEFAULT_SAMPLE_INTERVAL_MS,
        **kwargs: Any,
    ) -> None:
        super().__init__(symbol, pair, name=f"kraken_book_{symbol}", **kwargs)
        # sample depth; the subscribed depth is rounded up to one Kraken accepts
        self.depth = depth
        self.book = OrderBookReconstructor(
            "kraken", symbol, depth=depth, sample_interval_ms=sample_interval_ms
        )

    def on_open(self) -> None:
        self.book.reset()

    def subscribe_messages(self) -> list[dict[str, Any]]:
        depth = normalize.subscription_depth(self.depth)
        return [normalize.subscribe_message(self.pair, {"name": "book", "depth": depth})]

    def handle_message(self, msg: Any, ts_capture_ms: int) -> list[Envelope]:
        if normalize.is_event(msg):
            return self._event(msg, ts_capture_ms)
        update = normalize.parse_book_message(msg, self.symbol)
        if update is None:
            return []
        self.mark_data()
        self.book.apply_update(update)
        snap = self.book.maybe_emit(ts_capture_ms)
        if snap is None:
            return []
        return [self.sampled_book(snap, pair=self.pair)]


class KrakenOhlcConnector(_KrakenConnector):
    """Records every OHLC update; the processor coalesces them into one bar per bucket."""

    def __init__(self, symbol: str, pair: str, *, interval_min: int = 1, **kwargs: Any) -> None:
        super().__init__(symbol, pair, name=f"kraken_ohlc_{symbol}_{interval_min}m", **kwargs)
        self.interval_min = interval_min

    def subscribe_messages(self) -> list[dict[str, Any]]:
        return [normalize.subscribe_message(self.pair, {"name": "ohlc", "interval": self.interval_min})]

    def handle_message(self, msg: Any, ts_capture_ms: int) -> list[Envelope]:
        if normalize.is_event(msg):
            return self._event(msg, ts_capture_ms)
        bar = normalize.parse_ohlc_message(msg, self.interval_min)
        if bar is None:
            return []
        self.mark_data()
        return [
            self.envelope(
                "ohlc",
                bar.model_dump(),
                ts_capture_ms=ts_capture_ms,
                ts_event_ms=bar.time_sec * 1000 if bar.time_sec else None,
            )
        ]


class KrakenTickerConnector(_KrakenConnector):
    def __init__(self, symbol: str, pair: str, **kwargs: Any) -> None:
        super().__init__(symbol, pair, name=f"kraken_ticker_{symbol}", **kwargs)

    def subscribe_messages(self) -> list[dict[str, Any]]:
        return [normalize.subscribe_message(self.pair, {"name": "ticker"})]

    def handle_message(self, msg: Any, ts_capture_ms: int) -> list[Envelope]:
        if normalize.is_event(msg):
            return self._event(msg, ts_capture_ms)
        ticker = normalize.parse_ticker_message(msg)
        if ticker is None:
            return []
        self.mark_data()
        return [self.envelope("ticker", ticker.model_dump(exclude={"time"}), ts_capture_ms=ts_capture_ms)]
