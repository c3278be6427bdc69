"""K-way merge of time-ordered record sources."""

from __future__ import annotations

from typing import Any, Iterable, Iterator, NamedTuple, Sequence, TypeVar

T = TypeVar("T")


class MergedRecord(NamedTuple):
    source: str
    ts: int
    item: Any


def merge_by_timestamp(sources: Sequence[tuple[str, Iterable[tuple[int, T]]]]) -> Iterator[MergedRecord]:
    """Merge (name, iterable of (ts, item)) sources, each already ascending, into one ascending stream.

    Each step scans the current head of every source and takes the smallest
    timestamp; on a tie the source listed first wins, so output is stable for a
    given source order. Items keep the name of the source they came from.
    Sources are consumed lazily, one item ahead.
    """
    names: list[str] = []
    iters: list[Iterator[tuple[int, T]]] = []
    heads: list[tuple[int, T] | None] = []
    for name, src in sources:
        it = iter(src)
        names.append(name)
        iters.append(it)
        heads.append(next(it, None))

    while True:
        best = -1
        best_ts = 0
        for i, head in enumerate(heads):
            if head is None:
                continue
            if best < 0 or head[0] < best_ts:
                best, best_ts = i, head[0]
        if best < 0:
            return
        ts, item = heads[best]  # type: ignore[misc]
        heads[best] = next(iters[best], None)
        yield MergedRecord(names[best], ts, item)
