"""Kraken v1 websocket: book, ohlc, ticker."""
