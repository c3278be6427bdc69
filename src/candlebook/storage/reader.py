"""Read partitioned NDJSON logs back in file order."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Iterator

import structlog

from candlebook.storage.paths import NDJSON_SUFFIX, TMP_SUFFIX

log = structlog.get_logger(__name__)


def list_files_recursive(directory: str | Path) -> list[Path]:
    """All files under directory, sorted by path. Missing directory yields nothing."""
    root = Path(directory)
    if not root.is_dir():
        return []
    return sorted((p for p in root.rglob("*") if p.is_file()), key=lambda p: str(p))


def is_ndjson_file(path: Path, include_tmp: bool = False) -> bool:
    name = path.name
    if name.endswith(NDJSON_SUFFIX):
        return True
    return include_tmp and name.endswith(NDJSON_SUFFIX + TMP_SUFFIX)


def list_ndjson_files(directory: str | Path, include_tmp: bool = False) -> list[Path]:
    return [p for p in list_files_recursive(directory) if is_ndjson_file(p, include_tmp)]


def iter_ndjson_lines(files: Iterable[Path]) -> Iterator[str]:
    for path in files:
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield line


def iter_records(files: Iterable[Path]) -> Iterator[dict[str, Any]]:
    """Parsed objects; malformed lines (e.g. a torn last line in a temp file) are skipped."""
    skipped = 0
    for line in iter_ndjson_lines(files):
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            skipped += 1
            continue
        if isinstance(obj, dict):
            yield obj
        else:
            skipped += 1
    if skipped:
        log.warning("ndjson_lines_skipped", count=skipped)


def record_timestamp(obj: dict[str, Any]) -> int:
    ts = obj.get("ts_capture_ms") or obj.get("ts_event_ms") or 0
    try:
        return int(ts)
    except (TypeError, ValueError):
        return 0


def iter_timestamped(
    files: Iterable[Path],
    from_ms: int | None = None,
    to_ms: int | None = None,
) -> Iterator[tuple[int, dict[str, Any]]]:
    """(timestamp, record) pairs within [from_ms, to_ms]."""
    for obj in iter_records(files):
        ts = record_timestamp(obj)
        if from_ms is not None and ts < from_ms:
            continue
        if to_ms is not None and ts > to_ms:
            continue
        yield ts, obj
