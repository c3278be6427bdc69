"""Partitioned NDJSON writer.

Lines are appended to `<final>.tmp`; when the partition key changes (or the
size cap is hit) the temp file is closed and renamed to its final name. If
the rename cannot be done (final already exists, platform refuses), the temp
contents are appended to the final file and the temp is removed. If that
fails too the temp file is left in place so nothing is lost.

`RotatingNdjsonWriter` serializes all file I/O through one asyncio.Queue and
a single consumer task, so concurrent producers never interleave partial
lines and the queue bound gives backpressure.
"""

from __future__ import annotations

import asyncio
import json
import shutil
from pathlib import Path
from typing import IO, Any, Callable

import structlog
from pydantic import BaseModel

from candlebook.storage.paths import PartitionPath, latest_continuation

log = structlog.get_logger(__name__)

PartitionFn = Callable[[int], PartitionPath]

DEFAULT_QUEUE_SIZE = 10_000

_CLOSE = object()


def serialize_record(record: BaseModel | dict[str, Any]) -> str:
    if isinstance(record, BaseModel):
        return record.model_dump_json()
    return json.dumps(record, separators=(",", ":"))


def record_time_ms(record: BaseModel | dict[str, Any]) -> int:
    if isinstance(record, BaseModel):
        record = record.model_dump(include={"ts_capture_ms", "ts_event_ms"})
    return int(record.get("ts_capture_ms") or record.get("ts_event_ms") or 0)


def _append_and_remove(tmp: Path, final: Path) -> Path | None:
    try:
        with open(tmp, "rb") as src, open(final, "ab") as dst:
            shutil.copyfileobj(src, dst)
        tmp.unlink()
        return final
    except OSError as e:
        log.error("partition_finalize_failed", tmp=str(tmp), final=str(final), error=str(e))
        return None


def finalize_partition(part: PartitionPath) -> Path | None:
    """Move part.tmp_path to part.final_path. Returns the final path, or None if the temp was kept."""
    tmp, final = part.tmp_path, part.final_path
    if not tmp.exists():
        return None
    if not final.exists():
        try:
            tmp.rename(final)
            return final
        except OSError as e:
            log.warning("partition_rename_failed", tmp=str(tmp), final=str(final), error=str(e))
    return _append_and_remove(tmp, final)


class NdjsonPartitionFile:
    """Synchronous core: at most one open temp file, rotated by partition key and size."""

    def __init__(self, partition_for: PartitionFn, *, max_bytes: int = 0) -> None:
        self._partition_for = partition_for
        self.max_bytes = max(0, max_bytes)
        self._base: PartitionPath | None = None
        self._active: PartitionPath | None = None
        self._fh: IO[str] | None = None
        self._bytes = 0
        self._continuation = 0
        self.finalized: list[Path] = []

    def _open(self, part: PartitionPath) -> None:
        part.final_path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(part.tmp_path, "a", encoding="utf-8")
        self._active = part
        self._bytes = 0
        # a leftover temp or an earlier final both count toward the cap
        for existing in (part.tmp_path, part.final_path):
            try:
                self._bytes += existing.stat().st_size
            except OSError:
                pass

    def _finalize_active(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
        if self._active is not None:
            final = finalize_partition(self._active)
            if final is not None:
                self.finalized.append(final)
                log.debug("partition_finalized", path=str(final))
            self._active = None
        self._bytes = 0

    def write_line(self, ts_ms: int, line: str) -> None:
        part = self._partition_for(ts_ms)
        if self._base is None or part.key != self._base.key:
            self._finalize_active()
            self._base = part
            # resume after what an earlier run left so new lines land in the file that sorts last
            self._continuation = latest_continuation(part)
            self._open(part.continuation(self._continuation))
        data = line + "\n"
        size = len(data.encode("utf-8"))
        if self.max_bytes and self._bytes > 0 and self._bytes + size > self.max_bytes:
            self._finalize_active()
            self._continuation += 1
            self._open(self._base.continuation(self._continuation))
        if self._fh is None:
            raise RuntimeError(f"no open partition for {part.final_path}")
        self._fh.write(data)
        self._bytes += size

    def flush(self) -> None:
        if self._fh is not None:
            self._fh.flush()

    def close(self) -> None:
        self._finalize_active()
        self._base = None
        self._continuation = 0


class RotatingNdjsonWriter:
    """Async front for NdjsonPartitionFile. write() awaits queue space; drain() waits until the file has everything."""

    def __init__(
        self,
        partition_for: PartitionFn,
        *,
        max_bytes: int = 0,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        name: str = "",
    ) -> None:
        self.name = name
        self._file = NdjsonPartitionFile(partition_for, max_bytes=max_bytes)
        self._queue_size = max(1, queue_size)
        self._queue: asyncio.Queue[Any] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._closed = False
        self.records_written = 0
        self.errors = 0

    @property
    def finalized(self) -> list[Path]:
        return self._file.finalized

    def _ensure_consumer(self) -> asyncio.Queue[Any]:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self._queue_size)
            self._consumer = asyncio.create_task(self._consume(self._queue), name=f"ndjson-writer:{self.name}")
        return self._queue

    async def write(self, record: BaseModel | dict[str, Any]) -> None:
        if self._closed:
            raise RuntimeError(f"writer {self.name!r} is closed")
        await self._ensure_consumer().put(record)

    async def _consume(self, queue: asyncio.Queue[Any]) -> None:
        while True:
            record = await queue.get()
            try:
                if record is _CLOSE:
                    return
                self._file.write_line(record_time_ms(record), serialize_record(record))
                self.records_written += 1
            except Exception:
                # one bad record must not stop the consumer, or drain() would wait forever
                self.errors += 1
                log.exception("ndjson_write_failed", writer=self.name)
            finally:
                queue.task_done()

    async def drain(self) -> None:
        if self._queue is not None:
            await self._queue.join()
        self._file.flush()

    async def close(self) -> None:
        """Write everything queued, then finalize the open partition."""
        if self._closed:
            return
        self._closed = True
        if self._queue is not None and self._consumer is not None:
            await self._queue.put(_CLOSE)
            await self._consumer
        self._file.close()
