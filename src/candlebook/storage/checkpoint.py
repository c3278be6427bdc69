"""Per-output-stream watermarks that make candle logs safe to regenerate."""

from __future__ import annotations

from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from candlebook.models.envelope import now_ms
from candlebook.storage.state import read_json_if_exists, write_json_atomic

log = structlog.get_logger(__name__)


class Checkpoint(BaseModel):
    """Latest bucket time durably written for one (symbol, timeframe) stream."""

    model_config = ConfigDict(populate_by_name=True)

    last_written_time: int = Field(0, alias="lastWrittenTime")
    saved_at_ms: int = Field(0, alias="ts")


def load_checkpoint(path: str | Path) -> Checkpoint:
    """Missing or corrupt checkpoints start from zero."""
    raw = read_json_if_exists(path, None)
    if raw is None:
        return Checkpoint()
    try:
        return Checkpoint.model_validate(raw)
    except ValidationError as e:
        log.warning("checkpoint_invalid", path=str(path), error=str(e))
        return Checkpoint()


def save_checkpoint(path: str | Path, checkpoint: Checkpoint) -> None:
    write_json_atomic(path, checkpoint.model_dump(by_alias=True))


class WatermarkGate:
    """Drops candles at or below the persisted watermark and advances it on every write."""

    def __init__(self, path: str | Path, checkpoint_every: int = 200) -> None:
        self.path = Path(path)
        self.checkpoint_every = max(1, checkpoint_every)
        self.checkpoint = load_checkpoint(self.path)
        self._unsaved = 0
        self.dropped = 0

    @property
    def last_written_time(self) -> int:
        return self.checkpoint.last_written_time

    def admit(self, bucket_time: int) -> bool:
        if bucket_time <= self.checkpoint.last_written_time:
            self.dropped += 1
            return False
        return True

    def mark_written(self, bucket_time: int) -> None:
        self.checkpoint.last_written_time = bucket_time
        self._unsaved += 1

    @property
    def save_due(self) -> bool:
        return self._unsaved >= self.checkpoint_every

    def save(self) -> None:
        """Persist unconditionally (shutdown) - callers use save_due for periodic saves."""
        self.checkpoint.saved_at_ms = now_ms()
        save_checkpoint(self.path, self.checkpoint)
        self._unsaved = 0
