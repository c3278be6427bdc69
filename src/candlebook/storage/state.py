"""Small JSON state files, replaced atomically."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import structlog

log = structlog.get_logger(__name__)


def read_json_if_exists(path: str | Path, fallback: Any) -> Any:
    """Return parsed JSON at path, or fallback if it is missing or unreadable."""
    p = Path(path)
    try:
        with open(p, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return fallback
    except (OSError, json.JSONDecodeError) as e:
        log.warning("state_unreadable", path=str(p), error=str(e))
        return fallback


def write_json_atomic(path: str | Path, data: Any) -> None:
    """Write to a sibling temp file, fsync, then rename over path. Readers see old or new, never partial."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_name(p.name + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, p)
