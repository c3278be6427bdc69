"""Deterministic replay from partitioned raw logs - merged multi-exchange timeline and book reconstruction."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterator

from candlebook.orderbook.aggregator import OrderBookAggregator
from candlebook.replay.merge import MergedRecord, merge_by_timestamp
from candlebook.storage.paths import raw_stream_dir
from candlebook.storage.reader import iter_timestamped, list_ndjson_files


def stream_records(
    data_dir: str | Path,
    exchange: str,
    stream: str,
    symbol: str,
    *,
    from_ms: int | None = None,
    to_ms: int | None = None,
    include_tmp: bool = False,
) -> Iterator[tuple[int, dict[str, Any]]]:
    """(timestamp, record) for one raw stream, in partition order."""
    files = list_ndjson_files(raw_stream_dir(data_dir, exchange, stream, symbol), include_tmp=include_tmp)
    return iter_timestamped(files, from_ms=from_ms, to_ms=to_ms)


def replay_merged(
    data_dir: str | Path,
    symbol: str,
    exchanges: list[str],
    stream: str = "book",
    *,
    from_ms: int | None = None,
    to_ms: int | None = None,
    include_tmp: bool = False,
) -> Iterator[MergedRecord]:
    """One time-ordered stream across exchanges. Ties go to the exchange listed first."""
    sources = [
        (
            ex,
            stream_records(
                data_dir, ex, stream, symbol, from_ms=from_ms, to_ms=to_ms, include_tmp=include_tmp
            ),
        )
        for ex in exchanges
    ]
    return merge_by_timestamp(sources)


def book_timeline(merged: Iterator[MergedRecord]) -> Iterator[dict[str, Any]]:
    """Apply each merged book record and yield the touched book's top of book."""
    aggregator = OrderBookAggregator()
    for rec in merged:
        eng = aggregator.on_record(rec.item)
        if eng is None:
            continue
        yield {
            "ts": rec.ts,
            "exchange": rec.source,
            "symbol": eng.symbol,
            "best_bid": eng.best_bid,
            "best_ask": eng.best_ask,
            "mid": eng.mid_price,
            "spread": eng.spread,
        }


def replay_to_mid_series(
    data_dir: str | Path,
    symbol: str,
    exchange: str,
    *,
    from_ms: int | None = None,
    to_ms: int | None = None,
    include_tmp: bool = False,
) -> list[tuple[int, float | None]]:
    """
    Replay sampled books for one exchange and return [(ts, mid), ...].
    Deterministic: same files + params -> same output.
    """
    merged = replay_merged(
        data_dir, symbol, [exchange], "book", from_ms=from_ms, to_ms=to_ms, include_tmp=include_tmp
    )
    return [(row["ts"], row["mid"]) for row in book_timeline(merged)]


def write_merged_ndjson(merged: Iterator[MergedRecord], output: str | Path) -> int:
    """Write merged records to one NDJSON file in merge order. Returns count."""
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with open(path, "w", encoding="utf-8") as f:
        for rec in merged:
            f.write(json.dumps(rec.item, separators=(",", ":")))
            f.write("\n")
            n += 1
    return n
