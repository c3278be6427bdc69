"""PriceLevel, BookUpdate, SampledSnapshot - canonical orderbook."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Side = Literal["bid", "ask"]


class PriceLevel(BaseModel):
    """Single price level (price -> size). Size 0 in a delta means remove the level."""

    price: float = Field(..., gt=0)
    size: float = Field(..., ge=0)

    def as_pair(self) -> tuple[float, float]:
        return (self.price, self.size)


class BookUpdate(BaseModel):
    """Normalized book message from any exchange: a full snapshot or a batch of per-side deltas."""

    exchange: str
    symbol: str
    is_snapshot: bool = False
    bids: list[PriceLevel] = Field(default_factory=list)
    asks: list[PriceLevel] = Field(default_factory=list)
    exchange_ts: int | None = None  # ms epoch


class SampledSnapshot(BaseModel):
    """Bounded-depth view of a book, aligned to a sample boundary."""

    model_config = ConfigDict(frozen=True)

    capture_time_ms: int
    interval_ms: int
    depth: int
    bids: list[tuple[float, float]] = Field(default_factory=list)  # descending by price
    asks: list[tuple[float, float]] = Field(default_factory=list)  # ascending by price
