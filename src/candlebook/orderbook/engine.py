"""L2 orderbook state - apply snapshot/delta, track best bid/ask/mid, expose sorted depth."""

from __future__ import annotations

import math
from typing import Iterable

import structlog

from candlebook.models.orderbook import Side

log = structlog.get_logger(__name__)


def _finite_pair(price: object, size: object) -> tuple[float, float] | None:
    """Parse (price, size) to floats; None if either is missing or non-finite."""
    try:
        p, s = float(price), float(size)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(p) and math.isfinite(s)):
        return None
    return p, s


class OrderBookEngine:
    """In-memory L2 orderbook per exchange/symbol. Deterministic application of snapshot and deltas."""

    __slots__ = ("exchange", "symbol", "bids", "asks", "_has_snapshot", "_warned_delta_before_snapshot")

    def __init__(self, exchange: str, symbol: str) -> None:
        self.exchange = exchange
        self.symbol = symbol
        # price -> size (bids: higher is better, asks: lower is better); every stored size > 0
        self.bids: dict[float, float] = {}
        self.asks: dict[float, float] = {}
        self._has_snapshot = False
        self._warned_delta_before_snapshot = False

    def reset(self) -> None:
        """Drop all levels and forget the snapshot (reconnect)."""
        self.bids = {}
        self.asks = {}
        self._has_snapshot = False
        self._warned_delta_before_snapshot = False

    def apply_snapshot(
        self,
        bids: Iterable[tuple[object, object]],
        asks: Iterable[tuple[object, object]],
    ) -> None:
        """Replace book with snapshot. Levels with size <= 0 or non-finite fields are dropped."""
        self.bids = {}
        self.asks = {}
        for book, levels in ((self.bids, bids), (self.asks, asks)):
            for price, size in levels:
                pair = _finite_pair(price, size)
                if pair is None:
                    continue
                if pair[1] > 0:
                    book[pair[0]] = pair[1]
        self._has_snapshot = True

    def apply_delta(self, side: Side, price: object, size: object) -> bool:
        """Apply a single price level update. If size is 0, remove the level. Returns False if ignored."""
        pair = _finite_pair(price, size)
        if pair is None or pair[1] < 0:
            return False
        if side == "bid":
            book = self.bids
        elif side == "ask":
            book = self.asks
        else:
            return False
        if not self._has_snapshot and not self._warned_delta_before_snapshot:
            # Applied onto whatever state exists; the first snapshot replaces it.
            self._warned_delta_before_snapshot = True
            log.warning("orderbook_delta_before_snapshot", exchange=self.exchange, symbol=self.symbol)
        p, s = pair
        if s == 0:
            book.pop(p, None)
        else:
            book[p] = s
        return True

    @property
    def best_bid(self) -> float | None:
        return max(self.bids) if self.bids else None

    @property
    def best_ask(self) -> float | None:
        return min(self.asks) if self.asks else None

    @property
    def mid_price(self) -> float | None:
        bb, ba = self.best_bid, self.best_ask
        if bb is not None and ba is not None:
            return (bb + ba) / 2.0
        return bb if bb is not None else ba

    @property
    def spread(self) -> float | None:
        bb, ba = self.best_bid, self.best_ask
        if bb is not None and ba is not None:
            return ba - bb
        return None

    @property
    def has_snapshot(self) -> bool:
        return self._has_snapshot

    def depth_at_levels(self, n: int = 5) -> tuple[list[tuple[float, float]], list[tuple[float, float]]]:
        """Return (top N bids, top N asks) as [(price, size), ...]; bids descending, asks ascending."""
        bid_list = sorted(self.bids.items(), reverse=True)[:n]
        ask_list = sorted(self.asks.items())[:n]
        return (bid_list, ask_list)
