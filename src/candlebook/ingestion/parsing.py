"""Shared helpers for turning exchange JSON into floats and price levels."""

from __future__ import annotations

import json
import math
from typing import Any

from candlebook.models.orderbook import PriceLevel


def parse_json(raw: str | bytes) -> Any | None:
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def to_float(v: Any) -> float | None:
    """Finite float or None. Exchanges send numbers as strings."""
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def to_int(v: Any) -> int | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(float(v))
    except (TypeError, ValueError, OverflowError):
        return None


def parse_levels(rows: Any, *, keep_zero: bool = True, limit: int | None = None) -> list[PriceLevel]:
    """[[price, size, ...], ...] -> PriceLevels. Non-finite, non-positive prices and negative sizes are dropped."""
    if not isinstance(rows, list):
        return []
    out: list[PriceLevel] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 2:
            continue
        price, size = to_float(row[0]), to_float(row[1])
        if price is None or size is None or price <= 0 or size < 0:
            continue
        if size == 0 and not keep_zero:
            continue
        out.append(PriceLevel(price=price, size=size))
        if limit is not None and len(out) >= limit:
            break
    return out
