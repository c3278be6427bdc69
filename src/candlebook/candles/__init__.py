"""Candle coalescing and multi-timeframe aggregation."""
