"""Coinbase Exchange websocket message -> BookUpdate / Ticker."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from candlebook.ingestion.parsing import parse_levels, to_float
from candlebook.models.orderbook import BookUpdate, PriceLevel
from candlebook.models.trade import Ticker

URL = "wss://ws-feed.exchange.coinbase.com"


def subscribe_message(product_id: str, channel: str) -> dict[str, Any]:
    return {"type": "subscribe", "product_ids": [product_id], "channels": [channel]}


def iso_to_ms(s: Any) -> int | None:
    if not isinstance(s, str) or not s:
        return None
    try:
        return int(datetime.fromisoformat(s.replace("Z", "+00:00")).timestamp() * 1000)
    except ValueError:
        return None


def parse_book_message(msg: Any, symbol: str) -> BookUpdate | None:
    """'snapshot' replaces the book; 'l2update' changes are [side, price, size] with buy=bid, sell=ask."""
    if not isinstance(msg, dict):
        return None
    kind = msg.get("type")
    if kind == "snapshot":
        return BookUpdate(
            exchange="coinbase",
            symbol=symbol,
            is_snapshot=True,
            bids=parse_levels(msg.get("bids"), keep_zero=False),
            asks=parse_levels(msg.get("asks"), keep_zero=False),
        )
    if kind == "l2update" and isinstance(msg.get("changes"), list):
        bids: list[PriceLevel] = []
        asks: list[PriceLevel] = []
        for change in msg["changes"]:
            if not isinstance(change, list) or len(change) < 3:
                continue
            side = str(change[0] or "")
            target = bids if side == "buy" else asks if side == "sell" else None
            if target is None:
                continue
            target.extend(parse_levels([change[1:3]]))
        return BookUpdate(
            exchange="coinbase",
            symbol=symbol,
            bids=bids,
            asks=asks,
            exchange_ts=iso_to_ms(msg.get("time")),
        )
    return None


def parse_ticker_message(msg: Any) -> Ticker | None:
    if not isinstance(msg, dict) or msg.get("type") != "ticker":
        return None
    price = to_float(msg.get("price"))
    if price is None:
        return None
    return Ticker(
        price=price,
        best_bid=to_float(msg.get("best_bid")),
        best_ask=to_float(msg.get("best_ask")),
        volume_24h=to_float(msg.get("volume_24h")),
        pair=str(msg.get("product_id") or ""),
        time=msg.get("time") or None,
    )


def parse_error(msg: Any) -> dict[str, Any] | None:
    if not isinstance(msg, dict) or msg.get("type") != "error":
        return None
    return {"event": "error", "message": msg.get("message"), "reason": msg.get("reason")}


def is_subscription_ack(msg: Any) -> bool:
    return isinstance(msg, dict) and msg.get("type") == "subscriptions"
