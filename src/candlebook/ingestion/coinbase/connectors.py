"""Coinbase connectors: sampled level2 book, ticker."""

from __future__ import annotations

from typing import Any

from candlebook.ingestion.base import Connector
from candlebook.ingestion.coinbase import normalize
from candlebook.models.envelope import Envelope
from candlebook.orderbook.reconstructor import (
    DEFAULT_DEPTH,
    DEFAULT_SAMPLE_INTERVAL_MS,
    OrderBookReconstructor,
)


class _CoinbaseConnector(Connector):
    exchange = "coinbase"
    url = normalize.URL

    def __init__(self, symbol: str, product_id: str, *, name: str, **kwargs: Any) -> None:
        super().__init__(symbol, name=name, **kwargs)
        self.product_id = product_id

    def _status(self, msg: Any, ts_capture_ms: int) -> list[Envelope]:
        err = normalize.parse_error(msg)
        if err is not None:
            return [self.exchange_meta(err, ts_capture_ms, raw=msg)]
        if normalize.is_subscription_ack(msg):
            return [self.exchange_meta(msg, ts_capture_ms)]
        return []


class CoinbaseLevel2Connector(_CoinbaseConnector):
    """level2_batch channel folded into a local book, sampled once per interval."""

    def __init__(
        self,
        symbol: str,
        product_id: str,
        *,
        depth: int = DEFAULT_DEPTH,
        sample_interval_ms: int = DEFAULT_SAMPLE_INTERVAL_MS,
        **kwargs: Any,
    ) -> None:
        super().__init__(symbol, product_id, name=f"coinbase_level2_{symbol}", **kwargs)
        self.book = OrderBookReconstructor(
            "coinbase", symbol, depth=depth, sample_interval_ms=sample_interval_ms
        )

    def on_open(self) -> None:
        self.book.reset()

    def subscribe_messages(self) -> list[dict[str, Any]]:
        return [normalize.subscribe_message(self.product_id, "level2_batch")]

    def handle_message(self, msg: Any, ts_capture_ms: int) -> list[Envelope]:
        update = normalize.parse_book_message(msg, self.symbol)
        if update is None:
            return self._status(msg, ts_capture_ms)
        self.mark_data()
        self.book.apply_update(update)
        snap = self.book.maybe_emit(ts_capture_ms)
        if snap is None:
            return []
        return [self.sampled_book(snap, product_id=self.product_id)]


class CoinbaseTickerConnector(_CoinbaseConnector):
    def __init__(self, symbol: str, product_id: str, **kwargs: Any) -> None:
        super().__init__(symbol, product_id, name=f"coinbase_ticker_{symbol}", **kwargs)

    def subscribe_messages(self) -> list[dict[str, Any]]:
        return [normalize.subscribe_message(self.product_id, "ticker")]

    def handle_message(self, msg: Any, ts_capture_ms: int) -> list[Envelope]:
        ticker = normalize.parse_ticker_message(msg)
        if ticker is None:
            return self._status(msg, ts_capture_ms)
        self.mark_data()
        payload = ticker.model_dump()
        payload["product_id"] = payload.pop("pair") or self.product_id
        return [
            self.envelope(
                "ticker",
                payload,
                ts_capture_ms=ts_capture_ms,
                ts_event_ms=normalize.iso_to_ms(ticker.time),
            )
        ]
