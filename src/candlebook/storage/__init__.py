"""Partitioned NDJSON storage, checkpoints and DuckDB export."""
