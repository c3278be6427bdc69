"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    directory = _find_config_dir(config_dir)
    default_path = directory / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = directory / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


def split_csv(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [s.strip() for s in value.split(",") if s.strip()]
    return [str(s).strip() for s in value if str(s).strip()]


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        recorder: dict[str, Any] | None = None,
        ingestion: dict[str, Any] | None = None,
        storage: dict[str, Any] | None = None,
        processor: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.recorder = recorder or {}
        self.ingestion = ingestion or {}
        self.storage = storage or {}
        self.processor = processor or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            recorder=raw.get("recorder"),
            ingestion=raw.get("ingestion"),
            storage=raw.get("storage"),
            processor=raw.get("processor"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def out_dir(self) -> str:
        return self.recorder.get("out_dir", "data")

    @property
    def symbols(self) -> list[str]:
        return [s.upper() for s in split_csv(self.recorder.get("symbols"))]

    @property
    def streams(self) -> list[str]:
        return split_csv(self.recorder.get("streams")) or ["kraken_ohlc_1m"]

    @property
    def book_depth(self) -> int:
        return int(self.recorder.get("book_depth", 100))

    @property
    def sample_interval_ms(self) -> int:
        return int(self.recorder.get("sample_interval_ms", 60_000))

    @property
    def recorder_checkpoint_every(self) -> int:
        return int(self.recorder.get("checkpoint_every", 200))

    @property
    def reconnect_base_delay_sec(self) -> float:
        return float(self.ingestion.get("reconnect_base_delay_sec", 1.0))

    @property
    def reconnect_max_delay_sec(self) -> float:
        return float(self.ingestion.get("reconnect_max_delay_sec", 30.0))

    @property
    def recv_timeout_sec(self) -> float:
        return float(self.ingestion.get("recv_timeout_sec", 30.0))

    @property
    def stale_after_sec(self) -> float:
        return float(self.ingestion.get("stale_after_sec", 90.0))

    @property
    def watchdog_interval_sec(self) -> float:
        return float(self.ingestion.get("watchdog_interval_sec", 5.0))

    @property
    def max_partition_bytes(self) -> int:
        return int(self.storage.get("max_partition_bytes", 0))

    @property
    def write_queue_size(self) -> int:
        return int(self.storage.get("write_queue_size", 10_000))

    @property
    def include_tmp(self) -> bool:
        return bool(self.storage.get("include_tmp", False))

    @property
    def processor_symbols(self) -> list[str]:
        return [s.upper() for s in split_csv(self.processor.get("symbols"))] or self.symbols

    @property
    def derived_dir(self) -> str:
        return self.processor.get("out_dir") or str(Path(self.out_dir) / "derived")

    @property
    def base_timeframe(self) -> str:
        return self.processor.get("base_timeframe", "1m")

    @property
    def timeframes(self) -> list[str]:
        return split_csv(self.processor.get("timeframes"))

    @property
    def volume_mode(self) -> str:
        return self.processor.get("volume_mode", "cumulative")

    @property
    def processor_checkpoint_every(self) -> int:
        return int(self.processor.get("checkpoint_every", 200))

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
