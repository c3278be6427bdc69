"""Canonical schema (Pydantic) - Envelope, OrderBook, Candle, Trade."""

from candlebook.models.candle import Candle, CandleRecord, OhlcBar
from candlebook.models.envelope import SCHEMA_VERSION, Envelope, Stream, now_ms
from candlebook.models.orderbook import BookUpdate, PriceLevel, SampledSnapshot, Side
from candlebook.models.trade import Ticker, TradePrint

__all__ = [
    "SCHEMA_VERSION",
    "Envelope",
    "Stream",
    "now_ms",
    "PriceLevel",
    "BookUpdate",
    "SampledSnapshot",
    "Side",
    "Candle",
    "CandleRecord",
    "OhlcBar",
    "TradePrint",
    "Ticker",
]
