"""Envelope - the persisted unit of every raw log line."""

from __future__ import annotations

import time
from typing import Any, Literal

from pydantic import BaseModel, Field

SCHEMA_VERSION = 1

Stream = Literal["ohlc", "book", "ticker", "trade", "meta"]


def now_ms() -> int:
    return int(time.time() * 1000)


class Envelope(BaseModel):
    """{v, ts_capture_ms, exchange, stream, symbol, ts_event_ms, seq, payload, raw}."""

    v: int = SCHEMA_VERSION
    ts_capture_ms: int
    exchange: str
    stream: Stream
    symbol: str = ""
    ts_event_ms: int | None = None
    seq: int = 0
    payload: dict[str, Any] = Field(default_factory=dict)
    raw: Any = None
