"""Binance public market-data client via ccxt async.

Wraps ccxt.async_support.binance and calls its implicit raw endpoints
(``exchangeInfo`` and ``klines``) so rows come back exactly as Binance sends
them: positional arrays with prices as decimal strings.
"""

import ccxt.async_support as ccxt_async

from backfill.config import ExchangeSettings
from backfill.exceptions import NetworkError, ParseError
from backfill.exchange.client import ExchangeClient
from backfill.logging import get_logger
from backfill.models import MarketType

logger = get_logger(__name__)


class BinanceClient(ExchangeClient):
    """Concrete Binance client bound to a single market type."""

    def __init__(self, market: MarketType, settings: ExchangeSettings) -> None:
        self._market = market
        self._settings = settings
        self._base_url = settings.base_url_for(market)

        config: dict = {
            "enableRateLimit": settings.enable_rate_limit,
            "timeout": settings.timeout_ms,
        }

        # Only override the section we use; ccxt deep-merges urls.
        if self._base_url != market.default_base_url:
            config["urls"] = {"api": {market.api_section: self._base_url}}

        self._exchange = ccxt_async.binance(config)

    @property
    def exchange(self) -> ccxt_async.binance:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    @property
    def market(self) -> MarketType:
        return self._market

    @property
    def base_url(self) -> str:
        return self._base_url

    async def close(self) -> None:
        """Clean up ccxt async resources. CRITICAL: must be called to avoid resource leaks."""
        await self._exchange.close()
        logger.info("binance_connection_closed", market=self._market.value)

    async def fetch_exchange_info(self) -> dict:
        section = self._market.api_section
        body = await self._request(f"{section}GetExchangeInfo", {})
        if not isinstance(body, dict) or not isinstance(body.get("symbols"), list):
            raise ParseError(f"{self._market.value} exchangeInfo has no symbols array")
        return body

    async def fetch_klines(
        self,
        symbol: str,
        end_time: int | None = None,
        limit: int = 1000,
        interval: str = "1m",
    ) -> list[list]:
        params: dict = {
            "symbol": symbol.upper(),
            "interval": interval,
            "limit": limit,
        }
        if end_time is not None:
            params["endTime"] = end_time

        section = self._market.api_section
        body = await self._request(f"{section}GetKlines", params)
        if not isinstance(body, list):
            raise ParseError(
                f"{self._market.value} klines for {symbol} is not an array"
            )
        return body

    async def _request(self, method_name: str, params: dict):  # type: ignore[no-untyped-def]
        """Call a ccxt implicit endpoint, translating ccxt errors.

        ccxt raises BadResponse for bodies it cannot parse and NetworkError or
        ExchangeError subclasses for transport failures and non-2xx replies.
        """
        method = getattr(self._exchange, method_name)
        try:
            return await method(params)
        except ccxt_async.BadResponse as e:
            raise ParseError(f"{method_name}: {e}") from e
        except ccxt_async.BaseError as e:
            raise NetworkError(f"{method_name}: {e}") from e
