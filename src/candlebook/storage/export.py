"""Query and export raw NDJSON logs with DuckDB."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

RAW_COLUMNS = {
    "v": "INTEGER",
    "ts_capture_ms": "BIGINT",
    "exchange": "VARCHAR",
    "stream": "VARCHAR",
    "symbol": "VARCHAR",
    "ts_event_ms": "BIGINT",
    "seq": "BIGINT",
    "payload": "JSON",
    "raw": "JSON",
}


def get_connection() -> DuckDBPyConnection:
    return duckdb.connect(":memory:")


def _quote(s: str) -> str:
    return "'" + s.replace("'", "''") + "'"


def _source_sql(files: Sequence[Path]) -> str:
    paths = ", ".join(_quote(str(Path(p).resolve())) for p in files)
    columns = ", ".join(f"{_quote(k)}: {_quote(v)}" for k, v in RAW_COLUMNS.items())
    return f"read_json([{paths}], format='newline_delimited', columns={{{columns}}}, ignore_errors=true)"


def log_stats(conn: DuckDBPyConnection, files: Sequence[Path]) -> dict[str, Any]:
    """Record count, capture time range and counts per (exchange, stream, symbol)."""
    if not files:
        return {"total_records": 0, "min_ts_capture_ms": None, "max_ts_capture_ms": None, "by_stream": []}
    src = _source_sql(files)
    total, min_ts, max_ts = conn.execute(
        f"SELECT COUNT(*), MIN(ts_capture_ms), MAX(ts_capture_ms) FROM {src}"
    ).fetchone()
    by_stream = conn.execute(
        f"""
        SELECT exchange, stream, symbol, COUNT(*) AS cnt
        FROM {src}
        GROUP BY exchange, stream, symbol
        ORDER BY cnt DESC
        LIMIT 50
        """
    ).fetchall()
    return {
        "total_records": total,
        "min_ts_capture_ms": min_ts,
        "max_ts_capture_ms": max_ts,
        "by_stream": [
            {"exchange": r[0], "stream": r[1], "symbol": r[2], "count": r[3]} for r in by_stream
        ],
    }


def export_records_to_parquet(
    conn: DuckDBPyConnection,
    files: Sequence[Path],
    output_path: str | Path,
    exchange: str | None = None,
) -> int:
    """Export records to a Parquet file. Optional filter by exchange. Returns row count."""
    path = Path(output_path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    if not files:
        return 0
    src = _source_sql(files)
    where = " WHERE exchange = ?" if exchange else ""
    params = [exchange] if exchange else []
    conn.execute(f"COPY (SELECT * FROM {src}{where}) TO {_quote(str(path))} (FORMAT PARQUET)", params)
    return conn.execute(f"SELECT COUNT(*) FROM {src}{where}", params).fetchone()[0]
