"""TradePrint and Ticker - canonical trade/ticker payloads."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class TradePrint(BaseModel):
    """Executed trade."""

    trade_id: str | int | None = None
    price: float
    size: float | None = None
    side: Literal["buy", "sell"] | None = None
    ts_trade_ms: int | None = None
    pair: str = ""


class Ticker(BaseModel):
    """Last price and top of book as reported by the exchange ticker channel."""

    price: float | None = None
    best_bid: float | None = None
    best_ask: float | None = None
    volume_24h: float | None = None
    pair: str = ""
    time: str | None = None
