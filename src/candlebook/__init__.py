"""candlebook - exchange order book and OHLC recorder, candle processor and replay."""

__version__ = "0.1.0"
