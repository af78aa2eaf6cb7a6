"""Typed SQLite read/write abstraction for one market's candle store.

Provides CandleStore with typed methods for registering instruments,
inserting candles and querying coverage. All SQL is isolated behind this
interface and every statement is parameterized.

CRITICAL: Prices and volumes are stored as TEXT in SQLite, restored as Decimal on read.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from enum import Enum

from backfill.data.database import CandleDatabase
from backfill.exceptions import StoreError
from backfill.logging import get_logger
from backfill.models import Candle, CoverageRange, Instrument, MarketType

logger = get_logger(__name__)

_CANDLE_COLUMNS = (
    "open_time, open, high, low, close, volume, close_time, "
    "quote_volume, trade_count, taker_buy_base_volume, taker_buy_quote_volume"
)


class InsertOutcome(str, Enum):
    """Result of an insert-if-absent on a unique key."""

    INSERTED = "inserted"
    CONFLICT = "conflict"


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Re-raise sqlite3 failures as StoreError tagged with the operation."""
    try:
        yield
    except sqlite3.Error as e:
        raise StoreError(f"{operation} failed: {e}") from e


def _decimal_text(value: Decimal) -> str:
    """Fixed-point text of a decimal; str() would switch to exponent form."""
    return format(value, "f")


def _is_unique_conflict(error: sqlite3.IntegrityError) -> bool:
    return getattr(error, "sqlite_errorcode", None) == sqlite3.SQLITE_CONSTRAINT_UNIQUE


class CandleStore:
    """Async SQLite store for instruments and 1m candles of one market.

    Wraps CandleDatabase with typed read/write methods. Each write is
    committed immediately, so every insert is its own transaction.

    Usage:
        async with CandleDatabase("data/future.db") as database:
            store = CandleStore(database, MarketType.FUTURE)
            outcome = await store.insert_instrument("BTCUSDT")
    """

    def __init__(self, database: CandleDatabase, market: MarketType) -> None:
        self._database = database
        self._market = market

    @property
    def market(self) -> MarketType:
        return self._market

    # ──────────────────────────────────────────────
    # Instruments
    # ──────────────────────────────────────────────

    async def insert_instrument(self, symbol: str) -> InsertOutcome:
        """Insert an instrument if absent.

        Returns CONFLICT when the symbol is already registered. Any other
        SQLite failure is raised as StoreError.
        """
        db = self._database.db
        try:
            await db.execute("INSERT INTO data (pair) VALUES (?)", (symbol,))
            await db.commit()
        except sqlite3.IntegrityError as e:
            await db.rollback()
            if _is_unique_conflict(e):
                return InsertOutcome.CONFLICT
            raise StoreError(f"insert_instrument({symbol}) failed: {e}") from e
        except sqlite3.Error as e:
            await db.rollback()
            raise StoreError(f"insert_instrument({symbol}) failed: {e}") from e

        logger.info("instrument_registered", market=self._market.value, symbol=symbol)
        return InsertOutcome.INSERTED

    async def get_instrument(self, symbol: str) -> Instrument | None:
        with _store_errors("get_instrument"):
            cursor = await self._database.db.execute(
                "SELECT data_id, pair FROM data WHERE pair = ?", (symbol,)
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return Instrument(id=row[0], symbol=row[1], market=self._market)

    async def list_instruments(self) -> list[Instrument]:
        """Return all registered instruments ordered by id."""
        with _store_errors("list_instruments"):
            cursor = await self._database.db.execute(
                "SELECT data_id, pair FROM data ORDER BY data_id ASC"
            )
            rows = await cursor.fetchall()
        return [Instrument(id=row[0], symbol=row[1], market=self._market) for row in rows]

    # ──────────────────────────────────────────────
    # Candles
    # ──────────────────────────────────────────────

    async def insert_candles(self, instrument_id: int, candles: list[Candle]) -> int:
        """Insert candles, ignoring duplicates via INSERT OR IGNORE.

        Existing rows are never overwritten. Returns the number of actually
        inserted rows (excludes ignored duplicates).
        """
        if not candles:
            return 0

        data = [
            (
                instrument_id,
                c.open_time,
                _decimal_text(c.open),
                _decimal_text(c.high),
                _decimal_text(c.low),
                _decimal_text(c.close),
                _decimal_text(c.volume),
                c.close_time,
                _decimal_text(c.quote_volume),
                c.trade_count,
                _decimal_text(c.taker_buy_base_volume),
                _decimal_text(c.taker_buy_quote_volume),
            )
            for c in candles
        ]

        with _store_errors("insert_candles"):
            cursor = await self._database.db.executemany(
                f"INSERT OR IGNORE INTO klines (data_id, {_CANDLE_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                data,
            )
            await self._database.db.commit()

        inserted = cursor.rowcount
        logger.debug(
            "inserted_candles",
            market=self._market.value,
            instrument_id=instrument_id,
            total=len(candles),
            inserted=inserted,
        )
        return inserted

    async def get_coverage(self, instrument_id: int) -> CoverageRange:
        """Return the stored (earliest, latest) open_time of an instrument.

        A single aggregate SELECT is one read transaction, so under WAL it
        sees a consistent snapshot even while the other writer commits.
        """
        with _store_errors("get_coverage"):
            cursor = await self._database.db.execute(
                "SELECT MIN(open_time), MAX(open_time) FROM klines WHERE data_id = ?",
                (instrument_id,),
            )
            row = await cursor.fetchone()
        if row is None or row[0] is None:
            return CoverageRange.EMPTY
        return CoverageRange(earliest=row[0], latest=row[1])

    async def get_candles(
        self,
        instrument_id: int,
        since_ms: int | None = None,
        until_ms: int | None = None,
    ) -> list[Candle]:
        """Query candles for an instrument within an optional time range.

        Returns list of Candle ordered by open_time ASC.
        """
        conditions = ["data_id = ?"]
        params: list = [instrument_id]

        if since_ms is not None:
            conditions.append("open_time >= ?")
            params.append(since_ms)
        if until_ms is not None:
            conditions.append("open_time <= ?")
            params.append(until_ms)

        where = " AND ".join(conditions)
        with _store_errors("get_candles"):
            cursor = await self._database.db.execute(
                f"SELECT {_CANDLE_COLUMNS} FROM klines WHERE {where} "
                "ORDER BY open_time ASC",
                params,
            )
            rows = await cursor.fetchall()
        return [
            Candle(
                open_time=row[0],
                open=Decimal(row[1]),
                high=Decimal(row[2]),
                low=Decimal(row[3]),
                close=Decimal(row[4]),
                volume=Decimal(row[5]),
                close_time=row[6],
                quote_volume=Decimal(row[7]),
                trade_count=row[8],
                taker_buy_base_volume=Decimal(row[9]),
                taker_buy_quote_volume=Decimal(row[10]),
            )
            for row in rows
        ]

    async def count_candles(self, instrument_id: int | None = None) -> int:
        """Count stored candles, for one instrument or the whole store."""
        query = "SELECT COUNT(*) FROM klines"
        params: tuple = ()
        if instrument_id is not None:
            query += " WHERE data_id = ?"
            params = (instrument_id,)

        with _store_errors("count_candles"):
            cursor = await self._database.db.execute(query, params)
            row = await cursor.fetchone()
        return row[0] if row else 0
