"""Partition addressing for raw logs, derived candles and checkpoints."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

NDJSON_SUFFIX = ".ndjson"
TMP_SUFFIX = ".tmp"


@dataclass(frozen=True)
class PartitionPath:
    """Final file for a partition and the key that decides rollover."""

    final_path: Path
    key: str

    @property
    def tmp_path(self) -> Path:
        return self.final_path.with_name(self.final_path.name + TMP_SUFFIX)

    def continuation(self, index: int) -> PartitionPath:
        """Size-based continuation within the same time partition: HH.ndjson -> HH_0001.ndjson."""
        if index <= 0:
            return self
        name = f"{self.final_path.stem}_{index:04d}{self.final_path.suffix}"
        return PartitionPath(final_path=self.final_path.with_name(name), key=self.key)


def utc_parts_from_ms(ts_ms: int) -> tuple[str, str, str, str]:
    """(YYYY, MM, DD, HH) in UTC."""
    d = datetime.fromtimestamp(ts_ms / 1000, tz=UTC)
    return (f"{d.year:04d}", f"{d.month:02d}", f"{d.day:02d}", f"{d.hour:02d}")


def raw_partition(data_dir: str | Path, exchange: str, stream: str, symbol: str, ts_ms: int) -> PartitionPath:
    """raw/{exchange}/{stream}/{symbol}/YYYY/MM/DD/HH.ndjson, rotated hourly."""
    yyyy, mm, dd, hh = utc_parts_from_ms(ts_ms)
    base = Path(data_dir) / "raw" / exchange / stream / (symbol or "_") / yyyy / mm / dd
    return PartitionPath(final_path=base / f"{hh}{NDJSON_SUFFIX}", key=f"{yyyy}{mm}{dd}{hh}")


def raw_stream_dir(data_dir: str | Path, exchange: str, stream: str, symbol: str) -> Path:
    return Path(data_dir) / "raw" / exchange / stream / (symbol or "_")


def candle_partition(derived_dir: str | Path, symbol: str, timeframe: str, ts_ms: int) -> PartitionPath:
    """candles/{symbol}/{timeframe}/YYYY/MM/DD.ndjson, rotated daily by candle time."""
    yyyy, mm, dd, _ = utc_parts_from_ms(ts_ms)
    base = Path(derived_dir) / "candles" / symbol / timeframe / yyyy / mm
    return PartitionPath(final_path=base / f"{dd}{NDJSON_SUFFIX}", key=f"{yyyy}{mm}{dd}")


def recorder_checkpoint_path(data_dir: str | Path, connector_key: str) -> Path:
    return Path(data_dir) / "state" / "recorder" / f"{connector_key}.json"


def candle_checkpoint_path(derived_dir: str | Path, symbol: str, timeframe: str) -> Path:
    return Path(derived_dir) / "state" / "processor" / symbol / f"{timeframe}.json"


def latest_continuation(part: PartitionPath) -> int:
    """Highest continuation index already on disk for this partition (final or temp), 0 if none."""
    parent = part.final_path.parent
    if not parent.is_dir():
        return 0
    stem, suffix = part.final_path.stem, part.final_path.suffix
    pattern = re.compile(rf"{re.escape(stem)}_(\d+){re.escape(suffix)}(?:{re.escape(TMP_SUFFIX)})?")
    highest = 0
    for p in parent.iterdir():
        m = pattern.fullmatch(p.name)
        if m:
            highest = max(highest, int(m.group(1)))
    return highest
