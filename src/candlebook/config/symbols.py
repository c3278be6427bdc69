"""Canonical symbol -> exchange-native pair/product id."""

from __future__ import annotations

_BASES = (
    "BTC", "ETH", "SOL", "XRP", "DOGE", "ADA", "AVAX", "DOT", "LINK", "LTC", "MATIC",
    "UNI", "ATOM", "FIL", "APT", "ARB", "OP", "NEAR", "SHIB", "BCH", "SUI",
)

SYMBOL_MAPS: dict[str, dict[str, str]] = {
    # Kraken still names bitcoin XBT on the v1 websocket
    "kraken": {b: ("XBT" if b == "BTC" else b) + "/USD" for b in _BASES},
    "coinbase": {b: f"{b}-USD" for b in _BASES},
    "bitstamp": {b: f"{b.lower()}usd" for b in _BASES},
}


def get_exchange_symbol(exchange: str, symbol: str) -> str | None:
    """Return the exchange-native identifier for a canonical symbol, or None if unsupported."""
    mapping = SYMBOL_MAPS.get(exchange)
    if not mapping:
        return None
    return mapping.get((symbol or "").upper())
