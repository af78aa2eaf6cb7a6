"""Pipeline orchestration -- one forever-loop per market type.

Each MarketPipeline pass:
  1. OPEN: open the market's store and checkpoint its write-ahead log
  2. CATALOG: fetch exchangeInfo, keep TRADING symbols
  3. REGISTER: insert-if-absent every symbol
  4. WALK: for each instrument, read coverage and backfill to convergence
  5. WAIT: sleep the pass interval, then start over

The same loop picks up newly-listed symbols, pulls freshly-closed candles and
retries walks that aborted on the previous pass. The Orchestrator runs the
futures and spot pipelines concurrently; a crash in one is logged and never
stops the other.
"""

import asyncio

from backfill.config import AppSettings
from backfill.data.catalog import CatalogFetcher
from backfill.data.database import CandleDatabase
from backfill.data.ingestor import PageIngestor
from backfill.data.registry import InstrumentRegistry
from backfill.data.store import CandleStore
from backfill.data.walker import BackfillWalker, wait_or_stop
from backfill.exceptions import ExchangeRequestError
from backfill.exchange.binance_client import BinanceClient
from backfill.exchange.client import ExchangeClient
from backfill.logging import get_logger, pipeline_logger
from backfill.models import MarketType, PassSummary

logger = get_logger(__name__)


class MarketPipeline:
    """Backfill loop for a single market type.

    Args:
        settings: Application-wide settings.
        client: Exchange client bound to this pipeline's market.
        stop_event: Cooperative stop signal, checked between units of work.
    """

    def __init__(
        self,
        settings: AppSettings,
        client: ExchangeClient,
        stop_event: asyncio.Event,
    ) -> None:
        self._settings = settings
        self._client = client
        self._market = client.market
        self._stop_event = stop_event
        self._passes = 0
        self._log = pipeline_logger(__name__, self._market)

    @property
    def market(self) -> MarketType:
        return self._market

    @property
    def passes(self) -> int:
        """Number of completed passes."""
        return self._passes

    async def run_forever(self) -> None:
        """Run passes until the stop event is set."""
        self._log.info(
            "pipeline_started",
            store=str(self._settings.store_path(self._market)),
        )
        while not self._stop_event.is_set():
            await self.run_pass()
            self._passes += 1
            await wait_or_stop(self._stop_event, self._settings.backfill.pass_interval)
        self._log.info("pipeline_stopped", passes=self._passes)

    async def run_pass(self) -> PassSummary:
        """Run one catalog pass and return its totals.

        Exchange failures end the catalog step or one walk; store failures
        propagate to the caller.
        """
        summary = PassSummary(market=self._market)

        async with CandleDatabase(self._settings.store_path(self._market)) as database:
            await database.checkpoint()
            store = CandleStore(database, self._market)
            registry = InstrumentRegistry(store)
            walker = BackfillWalker(
                self._client,
                PageIngestor(store),
                self._settings.backfill,
                self._stop_event,
            )

            try:
                entries = await CatalogFetcher(self._client).fetch()
            except ExchangeRequestError as e:
                self._log.warning("catalog_fetch_failed", error=str(e))
                summary.catalog_failed = True
                return summary

            instruments = await registry.register_all(entries)

            for i, instrument in enumerate(instruments, 1):
                if self._stop_event.is_set():
                    break

                coverage = await store.get_coverage(instrument.id)
                self._log.info(
                    "walk_starting",
                    symbol=instrument.symbol,
                    progress=f"{i}/{len(instruments)}",
                    coverage_earliest=coverage.earliest,
                    coverage_latest=coverage.latest,
                )
                result = await walker.walk(instrument, coverage)
                summary.record(result)

        self._log.info(
            "pass_complete",
            instruments=summary.instruments,
            converged=summary.converged,
            aborted=summary.aborted,
            inserted=summary.inserted,
        )
        return summary


class Orchestrator:
    """Runs one MarketPipeline per configured market, concurrently.

    Usage:
        orchestrator = Orchestrator(settings)
        try:
            await orchestrator.start()   # returns after stop()
        finally:
            await orchestrator.close()
    """

    def __init__(
        self,
        settings: AppSettings,
        clients: dict[MarketType, ExchangeClient] | None = None,
    ) -> None:
        self._settings = settings
        self._stop_event = asyncio.Event()
        if clients is None:
            clients = {
                market: BinanceClient(market, settings.exchange)
                for market in settings.backfill.markets
            }
        self._clients = clients
        self._pipelines = [
            MarketPipeline(settings, client, self._stop_event)
            for client in clients.values()
        ]
        self._crashed: set[MarketType] = set()

    @property
    def pipelines(self) -> list[MarketPipeline]:
        return list(self._pipelines)

    @property
    def crashed(self) -> set[MarketType]:
        """Markets whose pipeline ended with an exception."""
        return set(self._crashed)

    def is_running(self) -> bool:
        return not self._stop_event.is_set()

    async def start(self) -> None:
        """Run all pipelines until stopped or all of them have ended."""
        logger.info(
            "orchestrator_starting",
            markets=[p.market.value for p in self._pipelines],
            db_path=str(self._settings.db_path),
        )
        tasks = [
            asyncio.create_task(self._supervise(p), name=f"pipeline-{p.market.value}")
            for p in self._pipelines
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            logger.info("orchestrator_stopped", crashed=sorted(m.value for m in self._crashed))

    async def stop(self) -> None:
        """Signal every pipeline to stop after its current unit of work."""
        logger.info("orchestrator_stopping_gracefully")
        self._stop_event.set()

    async def close(self) -> None:
        """Release exchange client resources."""
        for client in self._clients.values():
            await client.close()

    async def _supervise(self, pipeline: MarketPipeline) -> None:
        try:
            await pipeline.run_forever()
        except asyncio.CancelledError:
            raise
        except Exception:
            self._crashed.add(pipeline.market)
            logger.error("pipeline_crashed", market=pipeline.market.value, exc_info=True)
