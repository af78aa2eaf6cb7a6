"""Binance 1m kline backfill service."""

__version__ = "0.1.0"
