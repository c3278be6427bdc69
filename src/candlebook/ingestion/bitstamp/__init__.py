"""Bitstamp websocket: order book, live trades."""
