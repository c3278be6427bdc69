"""Supported timeframes and bar-start alignment."""

from __future__ import annotations

SUPPORTED_TIMEFRAMES: tuple[str, ...] = (
    "1m",
    "3m",
    "5m",
    "15m",
    "30m",
    "1h",
    "2h",
    "4h",
    "6h",
    "12h",
    "1d",
    "3d",
    "1w",
)

SECONDS_BY_TF: dict[str, int] = {
    "1m": 60,
    "3m": 3 * 60,
    "5m": 5 * 60,
    "15m": 15 * 60,
    "30m": 30 * 60,
    "1h": 60 * 60,
    "2h": 2 * 60 * 60,
    "4h": 4 * 60 * 60,
    "6h": 6 * 60 * 60,
    "12h": 12 * 60 * 60,
    "1d": 24 * 60 * 60,
    "3d": 3 * 24 * 60 * 60,
    "1w": 7 * 24 * 60 * 60,
}

# 1970-01-05T00:00:00Z, the first Monday after the Unix epoch (a Thursday).
REFERENCE_MONDAY = 345600

WEEKLY = "1w"


def timeframe_seconds(timeframe: str) -> int:
    """Bucket width in seconds. Raises ValueError for unknown timeframes."""
    try:
        return SECONDS_BY_TF[timeframe]
    except KeyError:
        raise ValueError(f"Unsupported timeframe: {timeframe!r}") from None


def align_bar_start(time_sec: int, timeframe: str) -> int:
    """Start of the bucket containing time_sec. Weekly bars always start on Monday 00:00 UTC."""
    seconds = timeframe_seconds(timeframe)
    if timeframe == WEEKLY:
        weeks = (time_sec - REFERENCE_MONDAY) // seconds
        return REFERENCE_MONDAY + weeks * seconds
    return (time_sec // seconds) * seconds


def resolve_timeframes(names: list[str] | None) -> list[str]:
    """Validate a user list of timeframes, keeping canonical order; empty means all."""
    if not names:
        return list(SUPPORTED_TIMEFRAMES)
    unknown = [n for n in names if n not in SECONDS_BY_TF]
    if unknown:
        raise ValueError(f"Unsupported timeframe(s): {', '.join(unknown)}")
    wanted = set(names)
    return [tf for tf in SUPPORTED_TIMEFRAMES if tf in wanted]
