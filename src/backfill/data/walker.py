"""Backfill walker -- paginates one instrument's klines backward in time.

Each page holds the newest ``page_limit`` candles with open_time at or
before ``end_time``. After a page is stored the boundary moves one tick
(1 ms) below the page's oldest candle, so consecutive pages never overlap.

Transition rules after each stored page, evaluated in order:

1. No progress: the page's oldest candle lies after the boundary that was
   requested. The API ignored ``endTime`` and echoed an old page, so the
   walk ends rather than loop.
2. Snap: the page's oldest candle lies inside the coverage known before the
   walk began (closed interval). Everything down to the known earliest
   candle is already stored, so the boundary jumps to one tick below it.
3. Step: the boundary moves to one tick below the page's oldest candle.

An empty page means the exchange has no older history: the walk converged.
"""

import asyncio

from backfill.config import BackfillSettings
from backfill.data.ingestor import PageIngestor
from backfill.exceptions import ExchangeRequestError
from backfill.exchange.client import ExchangeClient
from backfill.logging import pipeline_logger
from backfill.models import (
    MOST_RECENT,
    CoverageRange,
    Instrument,
    WalkOutcome,
    WalkResult,
)

TICK_MS = 1


async def wait_or_stop(stop_event: asyncio.Event, seconds: float) -> bool:
    """Sleep up to ``seconds``, waking early when stop is requested.

    Returns True when the stop event is set.
    """
    if stop_event.is_set():
        return True
    if seconds <= 0:
        return False
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


class BackfillWalker:
    """Drives paginated kline requests for one instrument until convergence.

    Usage:
        walker = BackfillWalker(client, PageIngestor(store), settings.backfill)
        result = await walker.walk(instrument, await store.get_coverage(instrument.id))
    """

    def __init__(
        self,
        client: ExchangeClient,
        ingestor: PageIngestor,
        settings: BackfillSettings,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self._client = client
        self._ingestor = ingestor
        self._settings = settings
        self._stop_event = stop_event or asyncio.Event()

    async def walk(self, instrument: Instrument, coverage: CoverageRange) -> WalkResult:
        """Walk backward from the most recent candle.

        Fetch failures abort the walk without raising; the next pass retries.
        Store failures propagate.
        """
        log = pipeline_logger(__name__, instrument.market, symbol=instrument.symbol)
        result = WalkResult(symbol=instrument.symbol, outcome=WalkOutcome.CONVERGED)
        end_time = MOST_RECENT

        while True:
            if self._stop_event.is_set():
                result.outcome = WalkOutcome.STOPPED
                break

            try:
                rows = await self._client.fetch_klines(
                    instrument.symbol,
                    end_time=None if end_time == MOST_RECENT else end_time,
                    limit=self._settings.page_limit,
                    interval=self._settings.interval,
                )
            except ExchangeRequestError as e:
                log.warning("kline_fetch_failed", end_time=end_time, error=str(e))
                result.outcome = WalkOutcome.ABORTED
                break
            result.requests += 1

            if not rows:
                log.debug("walk_reached_earliest_history", end_time=end_time)
                result.outcome = WalkOutcome.CONVERGED
                break

            page = await self._ingestor.ingest(instrument, rows)
            result.inserted += page.inserted

            page_min = page.page_min
            if page_min is None:
                log.warning("kline_page_unusable", end_time=end_time, rows=page.received)
                result.outcome = WalkOutcome.ABORTED
                break

            if result.earliest is None or page_min < result.earliest:
                result.earliest = page_min

            if page_min > end_time:
                log.info("walk_no_progress", end_time=end_time, page_min=page_min)
                result.outcome = WalkOutcome.CONVERGED
                break

            if coverage.contains(page_min):
                end_time = coverage.earliest - TICK_MS  # type: ignore[operator]
                log.debug(
                    "walk_snapped_past_coverage",
                    page_min=page_min,
                    coverage_earliest=coverage.earliest,
                    coverage_latest=coverage.latest,
                )
            else:
                end_time = page_min - TICK_MS

            log.debug(
                "kline_page_stored",
                page_min=page_min,
                inserted=page.inserted,
                skipped=page.skipped,
                next_end_time=end_time,
            )

            # Rate limit courtesy delay between page requests
            await wait_or_stop(self._stop_event, self._settings.request_delay)

        log.info(
            "walk_finished",
            outcome=result.outcome.value,
            requests=result.requests,
            inserted=result.inserted,
            earliest=result.earliest,
        )
        return result
