"""Multi-timeframe candle aggregation from finalized base candles."""

from __future__ import annotations

from typing import Iterable

from candlebook.candles.timeframes import align_bar_start, timeframe_seconds
from candlebook.models.candle import Candle


class CandleAggregator:
    """Fold base candles into one timeframe. One instance per (symbol, timeframe)."""

    def __init__(self, symbol: str, timeframe: str) -> None:
        timeframe_seconds(timeframe)  # validate
        self.symbol = symbol
        self.timeframe = timeframe
        self.current: Candle | None = None
        self.discarded = 0

    def _start(self, bar_start: int, c: Candle) -> None:
        self.current = Candle(
            time=bar_start,
            open=c.open,
            high=c.high,
            low=c.low,
            close=c.close,
            volume=c.volume or 0.0,
        )

    def ingest_base_candle(self, c: Candle) -> Candle | None:
        """Merge one finalized base candle; returns the finished bar when its bucket closes."""
        bar_start = align_bar_start(c.time, self.timeframe)
        current = self.current
        if current is None:
            self._start(bar_start, c)
            return None
        if bar_start == current.time:
            current.high = max(current.high, c.high)
            current.low = min(current.low, c.low)
            current.close = c.close
            # base candles are discrete periods, so volume adds up
            current.volume += c.volume or 0.0
            return None
        if bar_start > current.time:
            self._start(bar_start, c)
            return current
        # out-of-order; ignore to keep outputs append-only
        self.discarded += 1
        return None

    def flush(self) -> Candle | None:
        finished, self.current = self.current, None
        return finished


class MultiTimeframeAggregator:
    """Fans each base candle out to an independent CandleAggregator per timeframe."""

    def __init__(self, symbol: str, timeframes: Iterable[str]) -> None:
        self.symbol = symbol
        self.aggregators = {tf: CandleAggregator(symbol, tf) for tf in timeframes}

    def ingest(self, c: Candle) -> list[tuple[str, Candle]]:
        out: list[tuple[str, Candle]] = []
        for tf, agg in self.aggregators.items():
            finished = agg.ingest_base_candle(c)
            if finished is not None:
                out.append((tf, finished))
        return out

    def flush(self) -> list[tuple[str, Candle]]:
        out: list[tuple[str, Candle]] = []
        for tf, agg in self.aggregators.items():
            finished = agg.flush()
            if finished is not None:
                out.append((tf, finished))
        return out
