"""Coinbase Exchange websocket feed: level2, ticker."""
