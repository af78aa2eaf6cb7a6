"""Async SQLite database manager for one market's candle store.

Uses aiosqlite for non-blocking database operations with WAL mode so
coverage reads are never blocked by in-flight candle writes.
"""

import os
from typing import Self

import aiosqlite

from backfill.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

# data_id uses AUTOINCREMENT so ids of instruments are never reused.
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS data (
    data_id INTEGER PRIMARY KEY AUTOINCREMENT,
    pair TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS klines (
    data_id INTEGER NOT NULL REFERENCES data(data_id),
    open_time INTEGER NOT NULL,
    open TEXT NOT NULL,
    high TEXT NOT NULL,
    low TEXT NOT NULL,
    close TEXT NOT NULL,
    volume TEXT NOT NULL,
    close_time INTEGER NOT NULL,
    quote_volume TEXT NOT NULL,
    trade_count INTEGER NOT NULL,
    taker_buy_base_volume TEXT NOT NULL,
    taker_buy_quote_volume TEXT NOT NULL,
    PRIMARY KEY (data_id, open_time)
) WITHOUT ROWID;
"""


class CandleDatabase:
    """Async SQLite connection manager for one market's candle store.

    Manages database lifecycle including schema creation, WAL mode
    configuration, WAL checkpointing and clean resource cleanup.

    Usage:
        async with CandleDatabase("/data/future.db") as database:
            await database.checkpoint()
            store = CandleStore(database)
    """

    def __init__(self, db_path: str | os.PathLike[str]) -> None:
        self._db_path = os.fspath(db_path)
        self._connection: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema.

        Creates the parent directory if it does not exist.
        """
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA foreign_keys=ON")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.debug("candle_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("candle_db_closed", db_path=self._db_path)

    async def checkpoint(self) -> tuple[int, int, int]:
        """Flush the write-ahead log into the main file and truncate it.

        Returns SQLite's (busy, log_frames, checkpointed_frames) triple.
        """
        cursor = await self.db.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        row = await cursor.fetchone()
        await cursor.close()
        busy, log_frames, checkpointed = row if row is not None else (0, 0, 0)
        logger.debug(
            "wal_checkpoint",
            db_path=self._db_path,
            busy=busy,
            log_frames=log_frames,
            checkpointed=checkpointed,
        )
        return busy, log_frames, checkpointed

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        """Insert schema version if not already set."""
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
