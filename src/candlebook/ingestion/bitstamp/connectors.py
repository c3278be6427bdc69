"""Bitstamp connectors: sampled order book, live trades."""

from __future__ import annotations

from typing import Any

from candlebook.ingestion.base import Connector
from candlebook.ingestion.bitstamp import normalize
from candlebook.models.envelope import Envelope
from candlebook.orderbook.reconstructor import (
    DEFAULT_DEPTH,
    DEFAULT_SAMPLE_INTERVAL_MS,
    OrderBookReconstructor,
)


class _BitstampConnector(Connector):
    exchange = "bitstamp"
    url = normalize.URL

    def __init__(self, symbol: str, pair: str, *, name: str, **kwargs: Any) -> None:
        super().__init__(symbol, name=name, **kwargs)
        self.pair = pair

    def _lifecycle(self, msg: Any, ts_capture_ms: int) -> list[Envelope]:
        if normalize.is_lifecycle(msg):
            return [self.exchange_meta(msg, ts_capture_ms)]
        return []


class BitstampBookConnector(_BitstampConnector):
    """Each message replaces the book; one snapshot is recorded per sample interval."""

    def __init__(
        self,
        symbol: str,
        pair: str,
        *,
        depth: int = DEFAULT_DEPTH,
        sample_interval_ms: int = DEFAULT_SAMPLE_INTERVAL_MS,
        **kwargs: Any,
    ) -> None:
        super().__init__(symbol, pair, name=f"bitstamp_book_{symbol}", **kwargs)
        self.depth = depth
        self.book = OrderBookReconstructor(
            "bitstamp", symbol, depth=depth, sample_interval_ms=sample_interval_ms
        )

    def on_open(self) -> None:
        self.book.reset()

    def subscribe_messages(self) -> list[dict[str, Any]]:
        return [normalize.subscribe_message(f"order_book_{self.pair}")]

    def handle_message(self, msg: Any, ts_capture_ms: int) -> list[Envelope]:
        update = normalize.parse_book_message(msg, self.symbol, self.depth)
        if update is None:
            return self._lifecycle(msg, ts_capture_ms)
        self.mark_data()
        self.book.apply_update(update)
        snap = self.book.maybe_emit(ts_capture_ms)
        if snap is None:
            return []
        return [self.sampled_book(snap, pair=self.pair)]


class BitstampTradesConnector(_BitstampConnector):
    def __init__(self, symbol: str, pair: str, **kwargs: Any) -> None:
        super().__init__(symbol, pair, name=f"bitstamp_trades_{symbol}", **kwargs)

    def subscribe_messages(self) -> list[dict[str, Any]]:
        return [normalize.subscribe_message(f"live_trades_{self.pair}")]

    def handle_message(self, msg: Any, ts_capture_ms: int) -> list[Envelope]:
        trade = normalize.parse_trade_message(msg, self.pair)
        if trade is None:
            return self._lifecycle(msg, ts_capture_ms)
        self.mark_data()
        return [
            self.envelope(
                "trade",
                trade.model_dump(),
                ts_capture_ms=ts_capture_ms,
                ts_event_ms=trade.ts_trade_ms,
            )
        ]
