"""Kraken v1 websocket message -> BookUpdate / OhlcBar / Ticker.

Channel frames are arrays: [channelID, data, (data2,) channelName, pair].
Book updates may carry bid and ask changes as two separate dicts, in which
case the frame has five elements.
"""

from __future__ import annotations

from typing import Any

from candlebook.ingestion.parsing import parse_levels, to_float, to_int
from candlebook.models.candle import OhlcBar
from candlebook.models.orderbook import BookUpdate, PriceLevel
from candlebook.models.trade import Ticker

URL = "wss://ws.kraken.com"

# depths the v1 book channel accepts
BOOK_DEPTHS = (10, 25, 100, 500, 1000)


def subscription_depth(depth: int) -> int:
    """Smallest accepted book depth that still covers the sampled depth."""
    for d in BOOK_DEPTHS:
        if d >= depth:
            return d
    return BOOK_DEPTHS[-1]


def is_event(msg: Any) -> bool:
    """Status/subscription/heartbeat frames are objects with an 'event' key."""
    return isinstance(msg, dict) and "event" in msg


def is_heartbeat(msg: Any) -> bool:
    return is_event(msg) and msg.get("event") == "heartbeat"


def _channel(msg: Any) -> str | None:
    if not isinstance(msg, list) or len(msg) < 4:
        return None
    name = msg[-2]
    return name if isinstance(name, str) else None


def subscribe_message(pair: str, subscription: dict[str, Any]) -> dict[str, Any]:
    return {"event": "subscribe", "pair": [pair], "subscription": subscription}


def parse_book_message(msg: Any, symbol: str) -> BookUpdate | None:
    """Snapshot uses 'as'/'bs'; updates use 'a'/'b'. Zero sizes in updates are removals."""
    channel = _channel(msg)
    if channel is None or not channel.startswith("book"):
        return None
    parts = [d for d in msg[1:-2] if isinstance(d, dict)]
    if not parts:
        return None
    if any("as" in d or "bs" in d for d in parts):
        bids: list[PriceLevel] = []
        asks: list[PriceLevel] = []
        for d in parts:
            bids.extend(parse_levels(d.get("bs"), keep_zero=False))
            asks.extend(parse_levels(d.get("as"), keep_zero=False))
        return BookUpdate(exchange="kraken", symbol=symbol, is_snapshot=True, bids=bids, asks=asks)
    bids, asks = [], []
    for d in parts:
        bids.extend(parse_levels(d.get("b")))
        asks.extend(parse_levels(d.get("a")))
    return BookUpdate(exchange="kraken", symbol=symbol, is_snapshot=False, bids=bids, asks=asks)


def parse_ohlc_message(msg: Any, interval_min: int) -> OhlcBar | None:
    """[channelID, [time, etime, open, high, low, close, vwap, volume, count], "ohlc-N", pair]."""
    channel = _channel(msg)
    if channel is None or not channel.startswith("ohlc"):
        return None
    arr = msg[1]
    if not isinstance(arr, list) or len(arr) < 8:
        return None
    time_sec = to_int(arr[0])
    o, h, l, c = (to_float(x) for x in arr[2:6])
    if time_sec is None or None in (o, h, l, c):
        return None
    return OhlcBar(
        time_sec=time_sec,
        end_time_sec=to_int(arr[1]),
        interval_min=interval_min,
        open=o,
        high=h,
        low=l,
        close=c,
        vwap=to_float(arr[6]),
        volume=to_float(arr[7]) or 0.0,
        count=to_int(arr[8]) if len(arr) > 8 else None,
        pair=str(msg[-1]),
        channel=channel,
    )


def _first(d: dict[str, Any], key: str, idx: int = 0) -> float | None:
    v = d.get(key)
    if isinstance(v, list) and len(v) > idx:
        return to_float(v[idx])
    return None


def parse_ticker_message(msg: Any) -> Ticker | None:
    """c = last trade [price, volume], b/a = best bid/ask, v = volume [today, last 24h]."""
    if _channel(msg) != "ticker":
        return None
    d = msg[1] if isinstance(msg[1], dict) else {}
    return Ticker(
        price=_first(d, "c"),
        best_bid=_first(d, "b"),
        best_ask=_first(d, "a"),
        volume_24h=_first(d, "v", 1),
        pair=str(msg[-1]),
    )
