"""Base-candle coalescer.

Exchange OHLC feeds re-send the still-forming bar on every tick. The coalescer
keeps one in-progress bar per bucket and releases it only when a later bucket
arrives (or on flush), so the aggregator sees exactly one bar per base period.
"""

from __future__ import annotations

from typing import Literal

from candlebook.models.candle import Candle

VolumeMode = Literal["cumulative", "incremental"]


class BaseCandleCoalescer:
    """Collapse repeated updates for one bucket into a single finalized base candle.

    volume_mode="cumulative" (default) means the upstream reports the running total
    for the open bar, so the latest value wins. "incremental" sums updates instead.
    """

    def __init__(self, volume_mode: VolumeMode = "cumulative") -> None:
        if volume_mode not in ("cumulative", "incremental"):
            raise ValueError(f"Unknown volume_mode: {volume_mode!r}")
        self.volume_mode = volume_mode
        self.current: Candle | None = None
        self.discarded = 0

    def push(self, candle: Candle) -> Candle | None:
        """Feed one update. Returns the previous bar when its bucket has closed."""
        current = self.current
        if current is None:
            self.current = candle.model_copy()
            return None
        if candle.time == current.time:
            current.high = max(current.high, candle.high)
            current.low = min(current.low, candle.low)
            current.close = candle.close
            if self.volume_mode == "cumulative":
                current.volume = candle.volume
            else:
                current.volume += candle.volume
            return None
        if candle.time > current.time:
            self.current = candle.model_copy()
            return current
        # stale update for a bucket already released
        self.discarded += 1
        return None

    def flush(self) -> Candle | None:
        finished, self.current = self.current, None
        return finished
