"""Order book reconstruction with boundary-aligned sampling.

One reconstructor is owned by one connector. It is fed snapshots and deltas in
arrival order and, on every inbound message, asked whether a new sample
boundary has been reached. Emission is therefore driven by data arrival but the
emitted content is deterministic: the top-N book as of the last applied message,
stamped with the boundary rather than the wall clock.

Nothing is sampled before the first full snapshot ("priming"). A reconnect must
call ``reset()`` so no level from a previous session survives.
"""

from __future__ import annotations

from typing import Iterable

from candlebook.models.orderbook import BookUpdate, SampledSnapshot, Side
from candlebook.orderbook.engine import OrderBookEngine

DEFAULT_DEPTH = 100
DEFAULT_SAMPLE_INTERVAL_MS = 60_000


def sample_boundary(ts_ms: int, interval_ms: int) -> int:
    return (ts_ms // interval_ms) * interval_ms


class OrderBookReconstructor:
    """Price ladder for one exchange/symbol plus the sampling schedule."""

    def __init__(
        self,
        exchange: str,
        symbol: str,
        *,
        depth: int = DEFAULT_DEPTH,
        sample_interval_ms: int = DEFAULT_SAMPLE_INTERVAL_MS,
    ) -> None:
        if sample_interval_ms <= 0:
            raise ValueError("sample_interval_ms must be positive")
        self.engine = OrderBookEngine(exchange, symbol)
        self.depth = depth
        self.sample_interval_ms = sample_interval_ms
        self.last_emitted_boundary: int | None = None

    @property
    def primed(self) -> bool:
        return self.engine.has_snapshot

    @property
    def bids(self) -> dict[float, float]:
        return self.engine.bids

    @property
    def asks(self) -> dict[float, float]:
        return self.engine.asks

    def reset(self) -> None:
        self.engine.reset()
        self.last_emitted_boundary = None

    def apply_full_snapshot(
        self,
        bids: Iterable[tuple[object, object]],
        asks: Iterable[tuple[object, object]],
    ) -> None:
        self.engine.apply_snapshot(bids, asks)

    def apply_delta(self, side: Side, price: object, size: object) -> bool:
        return self.engine.apply_delta(side, price, size)

    def apply_update(self, update: BookUpdate) -> None:
        """Apply a normalized exchange message (snapshot or per-side deltas)."""
        if update.is_snapshot:
            self.apply_full_snapshot(
                [lev.as_pair() for lev in update.bids],
                [lev.as_pair() for lev in update.asks],
            )
            return
        for lev in update.bids:
            self.apply_delta("bid", lev.price, lev.size)
        for lev in update.asks:
            self.apply_delta("ask", lev.price, lev.size)

    def maybe_emit(self, now_ms: int) -> SampledSnapshot | None:
        """Emit at most one sample per interval once primed; None otherwise."""
        if not self.primed:
            return None
        boundary = sample_boundary(now_ms, self.sample_interval_ms)
        if self.last_emitted_boundary is not None and boundary <= self.last_emitted_boundary:
            return None
        bids, asks = self.engine.depth_at_levels(self.depth)
        self.last_emitted_boundary = boundary
        return SampledSnapshot(
            capture_time_ms=boundary,
            interval_ms=self.sample_interval_ms,
            depth=self.depth,
            bids=bids,
            asks=asks,
        )
