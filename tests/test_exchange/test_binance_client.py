"""Tests for BinanceClient.

All tests use mocked ccxt implicit endpoints to avoid real API calls.
"""

from unittest.mock import AsyncMock

import ccxt.async_support as ccxt_async
import pytest

from backfill.config import ExchangeSettings
from backfill.exceptions import NetworkError, ParseError
from backfill.exchange.binance_client import BinanceClient
from backfill.models import MarketType

from conftest import BASE_TIME_MS, make_row


@pytest.fixture
def futures_client() -> BinanceClient:
    return BinanceClient(MarketType.FUTURE, ExchangeSettings())


@pytest.fixture
def spot_client() -> BinanceClient:
    return BinanceClient(MarketType.SPOT, ExchangeSettings())


class TestBinanceClientInit:
    def test_default_base_urls(self, futures_client: BinanceClient, spot_client: BinanceClient) -> None:
        assert futures_client.base_url == "https://fapi.binance.com/fapi/v1"
        assert spot_client.base_url == "https://api.binance.com/api/v3"

    def test_base_url_override(self) -> None:
        settings = ExchangeSettings(futures_base_url="http://localhost:9000/fapi/v1")
        client = BinanceClient(MarketType.FUTURE, settings)
        assert client.base_url == "http://localhost:9000/fapi/v1"
        assert client.exchange.urls["api"]["fapiPublic"] == "http://localhost:9000/fapi/v1"

    def test_rate_limit_enabled(self, spot_client: BinanceClient) -> None:
        assert spot_client.exchange.enableRateLimit is True
        assert spot_client.market is MarketType.SPOT


class TestFetchKlines:
    @pytest.mark.asyncio
    async def test_futures_uses_fapi_section(self, futures_client: BinanceClient) -> None:
        rows = [make_row(BASE_TIME_MS)]
        futures_client.exchange.fapiPublicGetKlines = AsyncMock(return_value=rows)

        result = await futures_client.fetch_klines("btcusdt", end_time=BASE_TIME_MS, limit=1000)

        assert result == rows
        futures_client.exchange.fapiPublicGetKlines.assert_awaited_once_with(
            {"symbol": "BTCUSDT", "interval": "1m", "limit": 1000, "endTime": BASE_TIME_MS}
        )

    @pytest.mark.asyncio
    async def test_spot_without_end_time(self, spot_client: BinanceClient) -> None:
        spot_client.exchange.publicGetKlines = AsyncMock(return_value=[])

        await spot_client.fetch_klines("ETHUSDT")

        params = spot_client.exchange.publicGetKlines.await_args.args[0]
        assert "endTime" not in params

    @pytest.mark.asyncio
    async def test_non_array_body_is_parse_error(self, spot_client: BinanceClient) -> None:
        spot_client.exchange.publicGetKlines = AsyncMock(return_value={"code": -1121})

        with pytest.raises(ParseError):
            await spot_client.fetch_klines("ETHUSDT")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("ccxt_error", "expected"),
        [
            (ccxt_async.RequestTimeout("timeout"), NetworkError),
            (ccxt_async.ExchangeNotAvailable("502"), NetworkError),
            (ccxt_async.BadSymbol("invalid symbol"), NetworkError),
            (ccxt_async.BadResponse("<html>"), ParseError),
        ],
    )
    async def test_ccxt_errors_are_translated(
        self, futures_client: BinanceClient, ccxt_error: Exception, expected: type
    ) -> None:
        futures_client.exchange.fapiPublicGetKlines = AsyncMock(side_effect=ccxt_error)

        with pytest.raises(expected):
            await futures_client.fetch_klines("BTCUSDT")


class TestFetchExchangeInfo:
    @pytest.mark.asyncio
    async def test_returns_document(self, futures_client: BinanceClient) -> None:
        body = {"symbols": [{"symbol": "BTCUSDT", "status": "TRADING"}]}
        futures_client.exchange.fapiPublicGetExchangeInfo = AsyncMock(return_value=body)

        assert await futures_client.fetch_exchange_info() == body

    @pytest.mark.asyncio
    async def test_missing_symbols_is_parse_error(self, spot_client: BinanceClient) -> None:
        spot_client.exchange.publicGetExchangeInfo = AsyncMock(return_value={"symbols": None})

        with pytest.raises(ParseError):
            await spot_client.fetch_exchange_info()

    @pytest.mark.asyncio
    async def test_close_releases_ccxt(self, spot_client: BinanceClient) -> None:
        spot_client.exchange.close = AsyncMock()

        await spot_client.close()

        spot_client.exchange.close.assert_awaited_once()
