"""Instrument registry -- idempotent symbol registration."""

from backfill.data.store import CandleStore
from backfill.exceptions import StoreError
from backfill.logging import get_logger
from backfill.models import CatalogEntry, Instrument

logger = get_logger(__name__)


class InstrumentRegistry:
    """Ensures catalog symbols exist in the store with stable ids.

    A uniqueness conflict means the symbol was registered on an earlier
    pass and is the steady state. Other store failures skip the symbol for
    this pass only.
    """

    def __init__(self, store: CandleStore) -> None:
        self._store = store

    async def register(self, symbol: str) -> Instrument | None:
        try:
            outcome = await self._store.insert_instrument(symbol)
            instrument = await self._store.get_instrument(symbol)
        except StoreError as e:
            logger.error(
                "instrument_registration_failed",
                market=self._store.market.value,
                symbol=symbol,
                error=str(e),
            )
            return None

        if instrument is None:
            logger.error(
                "instrument_missing_after_insert",
                market=self._store.market.value,
                symbol=symbol,
                outcome=outcome.value,
            )
            return None
        return instrument

    async def register_all(self, entries: list[CatalogEntry]) -> list[Instrument]:
        """Register catalog entries in order, returning those now present."""
        instruments: list[Instrument] = []
        for entry in entries:
            instrument = await self.register(entry.symbol)
            if instrument is not None:
                instruments.append(instrument)

        logger.debug(
            "instruments_registered",
            market=self._store.market.value,
            catalog=len(entries),
            registered=len(instruments),
        )
        return instruments
