"""Page ingestor -- normalizes raw kline rows and stores them idempotently.

Binance kline rows are positional arrays:

    [open_time, open, high, low, close, volume, close_time,
     quote_asset_volume, number_of_trades, taker_buy_base_volume,
     taker_buy_quote_volume, ignore]

Prices and volumes arrive as decimal strings and are kept as exact text.
"""

import time
from collections.abc import Callable
from decimal import Decimal, InvalidOperation

from backfill.data.store import CandleStore
from backfill.logging import get_logger
from backfill.models import Candle, Instrument, PageResult

logger = get_logger(__name__)

# Positional fields read from each row (the trailing "ignore" field is not).
ROW_FIELDS = 11


class MalformedRowError(ValueError):
    """Raised when a kline row cannot be normalized into a Candle."""


def _as_int(value: object, field: str) -> int:
    # bool is an int subclass; a boolean here is never a timestamp or count
    if isinstance(value, bool):
        raise MalformedRowError(f"{field} is a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    raise MalformedRowError(f"{field} is not an integer: {value!r}")


def _as_decimal(value: object, field: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise MalformedRowError(f"{field} is not a decimal string: {value!r}")
    try:
        number = Decimal(value)
    except InvalidOperation as e:
        raise MalformedRowError(f"{field} is not a decimal string: {value!r}") from e
    if not number.is_finite():
        raise MalformedRowError(f"{field} is not finite: {value!r}")
    return number


def parse_kline_row(row: object) -> Candle:
    """Normalize one raw kline row. Raises MalformedRowError."""
    if not isinstance(row, (list, tuple)):
        raise MalformedRowError(f"row is not an array: {type(row).__name__}")
    if len(row) < ROW_FIELDS:
        raise MalformedRowError(f"row has {len(row)} fields, need {ROW_FIELDS}")

    return Candle(
        open_time=_as_int(row[0], "open_time"),
        open=_as_decimal(row[1], "open"),
        high=_as_decimal(row[2], "high"),
        low=_as_decimal(row[3], "low"),
        close=_as_decimal(row[4], "close"),
        volume=_as_decimal(row[5], "volume"),
        close_time=_as_int(row[6], "close_time"),
        quote_volume=_as_decimal(row[7], "quote_volume"),
        trade_count=_as_int(row[8], "trade_count"),
        taker_buy_base_volume=_as_decimal(row[9], "taker_buy_base_volume"),
        taker_buy_quote_volume=_as_decimal(row[10], "taker_buy_quote_volume"),
    )


def _now_ms() -> int:
    return int(time.time() * 1000)


class PageIngestor:
    """Stores one page of raw kline rows and reports its oldest open_time.

    Malformed rows are logged and skipped. A request without endTime also
    returns the still-open current candle; rows whose close_time has not
    passed yet are left out so only final values are ever written. They
    still count towards ``page_min`` so pagination is unaffected. The rest
    of the page is written in a single INSERT OR IGNORE batch.

    Args:
        store: Candle store of the instrument's market.
        clock: Returns the current time in Unix milliseconds.
    """

    def __init__(self, store: CandleStore, clock: Callable[[], int] | None = None) -> None:
        self._store = store
        self._clock = clock or _now_ms

    async def ingest(self, instrument: Instrument, rows: list) -> PageResult:
        result = PageResult(received=len(rows))
        candles: list[Candle] = []
        now_ms = self._clock()

        for index, row in enumerate(rows):
            try:
                candle = parse_kline_row(row)
            except MalformedRowError as e:
                result.skipped += 1
                logger.warning(
                    "malformed_kline_row",
                    market=instrument.market.value,
                    symbol=instrument.symbol,
                    index=index,
                    error=str(e),
                )
                continue

            if result.page_min is None or candle.open_time < result.page_min:
                result.page_min = candle.open_time

            if candle.close_time >= now_ms:
                result.unfinished += 1
                continue
            candles.append(candle)

        if result.unfinished:
            logger.debug(
                "unfinished_klines_deferred",
                market=instrument.market.value,
                symbol=instrument.symbol,
                count=result.unfinished,
            )
        result.inserted = await self._store.insert_candles(instrument.id, candles)
        return result
