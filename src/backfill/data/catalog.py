"""Market catalog fetcher -- lists tradable symbols of one market."""

from backfill.exceptions import ParseError
from backfill.exchange.client import ExchangeClient
from backfill.logging import get_logger
from backfill.models import CatalogEntry

logger = get_logger(__name__)

TRADING_STATUS = "TRADING"


class CatalogFetcher:
    """Reads exchangeInfo and keeps only symbols whose status is TRADING.

    Order follows the exchange's catalog. Network and parse failures
    propagate as ExchangeRequestError subclasses; individual malformed
    entries are skipped.
    """

    def __init__(self, client: ExchangeClient) -> None:
        self._client = client

    async def fetch(self) -> list[CatalogEntry]:
        info = await self._client.fetch_exchange_info()
        symbols = info.get("symbols")
        if not isinstance(symbols, list):
            raise ParseError("exchangeInfo has no symbols array")

        entries: list[CatalogEntry] = []
        skipped = 0
        for raw in symbols:
            entry = _parse_entry(raw)
            if entry is None:
                skipped += 1
                continue
            if entry.status == TRADING_STATUS:
                entries.append(entry)

        if skipped:
            logger.warning(
                "malformed_catalog_entries",
                market=self._client.market.value,
                skipped=skipped,
            )
        logger.info(
            "catalog_fetched",
            market=self._client.market.value,
            total=len(symbols),
            trading=len(entries),
        )
        return entries


def _parse_entry(raw: object) -> CatalogEntry | None:
    if not isinstance(raw, dict):
        return None
    symbol = raw.get("symbol")
    status = raw.get("status")
    if not isinstance(symbol, str) or not symbol or not isinstance(status, str):
        return None
    return CatalogEntry(symbol=symbol, status=status)
