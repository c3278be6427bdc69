"""Configuration: TOML settings, logging setup, exchange symbol maps."""

from candlebook.config.settings import Settings, configure_logging, get_settings

__all__ = ["Settings", "configure_logging", "get_settings"]
