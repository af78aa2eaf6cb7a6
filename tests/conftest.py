"""Shared test fixtures for the kline backfill service."""

from pathlib import Path

import pytest
import pytest_asyncio

from backfill.config import AppSettings, BackfillSettings
from backfill.data.database import CandleDatabase
from backfill.data.store import CandleStore
from backfill.exchange.client import ExchangeClient
from backfill.models import MarketType

MINUTE_MS = 60_000
# 2024-01-01T00:00:00Z
BASE_TIME_MS = 1_704_067_200_000


def make_row(open_time: int, close: str = "42000.10") -> list:
    """Build a raw Binance kline row (12 positional fields)."""
    return [
        open_time,
        "42000.00",
        "42010.50",
        "41990.25",
        close,
        "12.34500000",
        open_time + MINUTE_MS - 1,
        "518469.12345000",
        321,
        "6.10000000",
        "256230.50000000",
        "0",
    ]


class FakeKlineExchange(ExchangeClient):
    """In-memory exchange serving a finite 1m history.

    ``fetch_klines`` behaves like Binance: the newest ``limit`` candles with
    open_time <= end_time, returned oldest-first.
    """

    def __init__(
        self,
        market: MarketType = MarketType.FUTURE,
        histories: dict[str, list[int]] | None = None,
        catalog: list[dict] | None = None,
    ) -> None:
        self._market = market
        self.histories = histories or {}
        self.catalog = catalog
        self.kline_calls: list[tuple[str, int | None]] = []
        self.closed = False

    @property
    def market(self) -> MarketType:
        return self._market

    async def close(self) -> None:
        self.closed = True

    async def fetch_exchange_info(self) -> dict:
        if self.catalog is not None:
            return {"symbols": self.catalog}
        return {
            "symbols": [
                {"symbol": symbol, "status": "TRADING"} for symbol in self.histories
            ]
        }

    async def fetch_klines(
        self,
        symbol: str,
        end_time: int | None = None,
        limit: int = 1000,
        interval: str = "1m",
    ) -> list[list]:
        self.kline_calls.append((symbol, end_time))
        times = self.histories.get(symbol, [])
        if end_time is not None:
            times = [t for t in times if t <= end_time]
        return [make_row(t) for t in sorted(times)[-limit:]]


def minute_history(count: int, start: int = BASE_TIME_MS) -> list[int]:
    return [start + i * MINUTE_MS for i in range(count)]


@pytest.fixture
def backfill_settings() -> BackfillSettings:
    """Backfill settings with no delays and small pages."""
    return BackfillSettings(page_limit=10, request_delay=0.0, pass_interval=0.0)


@pytest.fixture
def app_settings(tmp_path: Path, backfill_settings: BackfillSettings) -> AppSettings:
    return AppSettings(
        db_path=tmp_path,
        log_level="DEBUG",
        backfill=backfill_settings,
    )


@pytest_asyncio.fixture
async def database(tmp_path: Path):  # type: ignore[no-untyped-def]
    async with CandleDatabase(tmp_path / "future.db") as db:
        yield db


@pytest.fixture
def store(database: CandleDatabase) -> CandleStore:
    return CandleStore(database, MarketType.FUTURE)
