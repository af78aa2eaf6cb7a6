"""Exchange client layer -- Binance public market data via ccxt."""

from backfill.exchange.binance_client import BinanceClient
from backfill.exchange.client import ExchangeClient

__all__ = ["BinanceClient", "ExchangeClient"]
