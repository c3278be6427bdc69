"""Offline candle processor."""
