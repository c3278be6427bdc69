"""Book aggregator - one engine per (exchange, symbol), fed from persisted book envelopes."""

from __future__ import annotations

from typing import Any, Mapping

from candlebook.models.envelope import Envelope
from candlebook.orderbook.engine import OrderBookEngine


class OrderBookAggregator:
    """Holds OrderBookEngine per (exchange, symbol), applies sampled book records from the raw log."""

    def __init__(self) -> None:
        self._engines: dict[tuple[str, str], OrderBookEngine] = {}

    def _engine(self, exchange: str, symbol: str) -> OrderBookEngine:
        key = (exchange, symbol)
        if key not in self._engines:
            self._engines[key] = OrderBookEngine(exchange, symbol)
        return self._engines[key]

    def on_record(self, record: Envelope | Mapping[str, Any]) -> OrderBookEngine | None:
        """Apply one book record and return the engine it touched. Non-book records are ignored."""
        if isinstance(record, Envelope):
            record = record.model_dump()
        if record.get("stream") != "book":
            return None
        payload = record.get("payload") or {}
        bids = payload.get("bids")
        asks = payload.get("asks")
        if not isinstance(bids, list) or not isinstance(asks, list):
            return None
        eng = self._engine(str(record.get("exchange") or ""), str(record.get("symbol") or ""))
        # Sampled records carry the full top-N view, so each one replaces the book.
        eng.apply_snapshot(
            [tuple(lev[:2]) for lev in bids if isinstance(lev, (list, tuple)) and len(lev) >= 2],
            [tuple(lev[:2]) for lev in asks if isinstance(lev, (list, tuple)) and len(lev) >= 2],
        )
        return eng

    def get_engine(self, exchange: str, symbol: str) -> OrderBookEngine | None:
        return self._engines.get((exchange, symbol))

    def engines(self) -> dict[tuple[str, str], OrderBookEngine]:
        return dict(self._engines)
