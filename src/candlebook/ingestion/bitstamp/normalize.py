"""Bitstamp websocket message -> BookUpdate / TradePrint.

Every order_book message is a complete top-of-book snapshot, never a delta.
"""

from __future__ import annotations

from typing import Any

from candlebook.ingestion.parsing import parse_levels, to_float, to_int
from candlebook.models.orderbook import BookUpdate
from candlebook.models.trade import TradePrint

URL = "wss://ws.bitstamp.net"


def subscribe_message(channel: str) -> dict[str, Any]:
    return {"event": "bts:subscribe", "data": {"channel": channel}}


def is_lifecycle(msg: Any) -> bool:
    return isinstance(msg, dict) and str(msg.get("event") or "").startswith("bts:")


def parse_book_message(msg: Any, symbol: str, depth: int = 100) -> BookUpdate | None:
    if not isinstance(msg, dict) or msg.get("event") != "data" or not isinstance(msg.get("data"), dict):
        return None
    data = msg["data"]
    ts = to_int(data.get("microtimestamp"))
    return BookUpdate(
        exchange="bitstamp",
        symbol=symbol,
        is_snapshot=True,
        bids=parse_levels(data.get("bids"), keep_zero=False, limit=depth),
        asks=parse_levels(data.get("asks"), keep_zero=False, limit=depth),
        exchange_ts=ts // 1000 if ts is not None else None,
    )


def parse_trade_message(msg: Any, pair: str) -> TradePrint | None:
    """type 0 = buy, 1 = sell; timestamp is in seconds."""
    if not isinstance(msg, dict) or msg.get("event") != "trade" or not isinstance(msg.get("data"), dict):
        return None
    d = msg["data"]
    price = to_float(d.get("price"))
    if price is None:
        return None
    size = to_float(d.get("amount")) if d.get("amount") is not None else to_float(d.get("size"))
    side_code = d.get("type")
    ts_sec = to_int(d.get("timestamp"))
    return TradePrint(
        trade_id=d.get("id"),
        price=price,
        size=size,
        side="buy" if side_code == 0 else "sell" if side_code == 1 else None,
        ts_trade_ms=ts_sec * 1000 if ts_sec else None,
        pair=pair,
    )
