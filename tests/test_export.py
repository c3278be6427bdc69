"""DuckDB stats/export over raw NDJSON logs, and the CLI around them."""

import json

from typer.testing import CliRunner

from candlebook.cli.app import app
from candlebook.storage.export import export_records_to_parquet, get_connection, log_stats
from candlebook.storage.reader import list_ndjson_files


def _rec(exchange: str, stream: str, ts: int, seq: int) -> dict:
    return {
        "v": 1,
        "ts_capture_ms": ts,
        "exchange": exchange,
        "stream": stream,
        "symbol": "BTC",
        "ts_event_ms": ts - 5,
        "seq": seq,
        "payload": {"price": 100.0 + seq},
        "raw": None,
    }


def _seed(data_dir):
    for exchange, stream, n in (("kraken", "ticker", 3), ("bitstamp", "trade", 2)):
        d = data_dir / "raw" / exchange / stream / "BTC" / "2024" / "01" / "01"
        d.mkdir(parents=True, exist_ok=True)
        lines = [json.dumps(_rec(exchange, stream, 1_000 * (i + 1), i + 1)) for i in range(n)]
        (d / "00.ndjson").write_text("\n".join(lines) + "\n")


def test_log_stats(tmp_path):
    _seed(tmp_path)
    files = list_ndjson_files(tmp_path / "raw")
    conn = get_connection()
    try:
        s = log_stats(conn, files)
        empty = log_stats(conn, [])
    finally:
        conn.close()
    assert s["total_records"] == 5
    assert s["min_ts_capture_ms"] == 1_000
    assert s["max_ts_capture_ms"] == 3_000
    assert s["by_stream"][0] == {"exchange": "kraken", "stream": "ticker", "symbol": "BTC", "count": 3}
    assert empty["total_records"] == 0


def test_export_to_parquet_with_exchange_filter(tmp_path):
    _seed(tmp_path)
    files = list_ndjson_files(tmp_path / "raw")
    out = tmp_path / "out" / "bitstamp.parquet"
    conn = get_connection()
    try:
        n = export_records_to_parquet(conn, files, out, exchange="bitstamp")
        back = conn.execute(f"SELECT COUNT(*), MIN(seq) FROM read_parquet('{out}')").fetchone()
    finally:
        conn.close()
    assert n == 2
    assert back == (2, 1)


def test_cli_log_stats_and_process(tmp_path):
    _seed(tmp_path)
    runner = CliRunner()
    result = runner.invoke(app, ["-C", str(tmp_path), "log", "stats", "--data-dir", str(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "Total records: 5" in result.output
    assert "kraken/ticker/BTC  3" in result.output

    # empty config dir: no symbols configured
    result = runner.invoke(app, ["-C", str(tmp_path), "process", "run", "--in-dir", str(tmp_path)])
    assert result.exit_code == 2

    result = runner.invoke(app, ["-C", str(tmp_path), "process", "run", "-s", "btc", "--in-dir", str(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "BTC: 0 files" in result.output
