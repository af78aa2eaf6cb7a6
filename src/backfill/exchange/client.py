"""Abstract exchange client interface.

The pipelines depend only on this interface, keeping Binance- and
ccxt-specific details isolated in the concrete implementation.
"""

from abc import ABC, abstractmethod

from backfill.models import MarketType


class ExchangeClient(ABC):
    """Abstract base class for one market's public market-data endpoints."""

    @property
    @abstractmethod
    def market(self) -> MarketType:
        """Market type this client talks to."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (CRITICAL for ccxt async)."""
        ...

    @abstractmethod
    async def fetch_exchange_info(self) -> dict:
        """Fetch the raw exchangeInfo document.

        Returns a dict with a ``symbols`` list. Raises NetworkError or
        ParseError.
        """
        ...

    @abstractmethod
    async def fetch_klines(
        self,
        symbol: str,
        end_time: int | None = None,
        limit: int = 1000,
        interval: str = "1m",
    ) -> list[list]:
        """Fetch raw kline rows with open_time <= end_time.

        Returns the newest ``limit`` qualifying rows as positional arrays
        (open_time, open, high, low, close, volume, close_time, ...).
        ``end_time=None`` means no boundary (most recent candles).

        Pagination is NOT handled here -- the backfill walker drives it.
        """
        ...
