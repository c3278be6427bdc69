"""Candle (base and derived OHLCV bar) and its persisted record."""

from __future__ import annotations

from pydantic import BaseModel


class Candle(BaseModel):
    """OHLCV bar identified by its bucket start (seconds)."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class OhlcBar(BaseModel):
    """Payload of a raw `ohlc` record: one in-progress exchange bar as last reported."""

    time_sec: int
    end_time_sec: int | None = None
    interval_min: int = 1
    open: float
    high: float
    low: float
    close: float
    vwap: float | None = None
    volume: float = 0.0
    count: int | None = None
    pair: str = ""
    channel: str = ""


class CandleRecord(BaseModel):
    """One line of a derived candle log. ts_capture_ms is the candle time so partitions follow candle time."""

    v: int = 1
    ts_capture_ms: int
    symbol: str
    timeframe: str
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def from_candle(cls, symbol: str, timeframe: str, candle: Candle) -> CandleRecord:
        return cls(
            ts_capture_ms=candle.time * 1000,
            symbol=symbol,
            timeframe=timeframe,
            time=candle.time,
            open=candle.open,
            high=candle.high,
            low=candle.low,
            close=candle.close,
            volume=candle.volume,
        )
