"""Shared data models for the kline backfill service.

CRITICAL: Prices and volumes use Decimal and are stored as TEXT. Never use
float for candle values; the exchange sends them as exact decimal strings.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import ClassVar

# Largest signed 64-bit millisecond timestamp: "no end-time boundary".
MOST_RECENT = 2**63 - 1


class MarketType(str, Enum):
    """Binance product class, each with its own endpoint base and store."""

    FUTURE = "future"
    SPOT = "spot"

    @property
    def api_section(self) -> str:
        """ccxt implicit API section for this market's public endpoints."""
        return "fapiPublic" if self is MarketType.FUTURE else "public"

    @property
    def default_base_url(self) -> str:
        if self is MarketType.FUTURE:
            return "https://fapi.binance.com/fapi/v1"
        return "https://api.binance.com/api/v3"

    @property
    def store_filename(self) -> str:
        return f"{self.value}.db"


@dataclass(frozen=True)
class Instrument:
    """A tradable symbol registered in one market's store."""

    id: int
    symbol: str
    market: MarketType


@dataclass(frozen=True)
class Candle:
    """A single finalized 1m kline (close_time already in the past).

    All price and volume fields use Decimal; they are written back to SQLite
    as their exact original text.
    """

    open_time: int  # Unix milliseconds
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    close_time: int
    quote_volume: Decimal
    trade_count: int
    taker_buy_base_volume: Decimal
    taker_buy_quote_volume: Decimal


@dataclass(frozen=True)
class CoverageRange:
    """Earliest and latest stored open_time for one instrument.

    ``contains`` is a closed-interval test. The EMPTY sentinel contains
    nothing.
    """

    earliest: int | None
    latest: int | None

    EMPTY: ClassVar["CoverageRange"]

    @property
    def is_empty(self) -> bool:
        return self.earliest is None or self.latest is None

    def contains(self, timestamp_ms: int) -> bool:
        if self.is_empty:
            return False
        return self.earliest <= timestamp_ms <= self.latest  # type: ignore[operator]


CoverageRange.EMPTY = CoverageRange(earliest=None, latest=None)


@dataclass(frozen=True)
class CatalogEntry:
    """One symbol from an exchangeInfo response."""

    symbol: str
    status: str


@dataclass
class PageResult:
    """Outcome of ingesting one kline page."""

    received: int = 0
    inserted: int = 0
    skipped: int = 0
    unfinished: int = 0  # still-open candles, left for a later pass
    page_min: int | None = None  # oldest open_time among valid rows


class WalkOutcome(str, Enum):
    """How a backfill walk ended."""

    CONVERGED = "converged"
    ABORTED = "aborted"
    STOPPED = "stopped"


@dataclass
class WalkResult:
    """Summary of one instrument's backfill walk."""

    symbol: str
    outcome: WalkOutcome
    requests: int = 0
    inserted: int = 0
    earliest: int | None = None


@dataclass
class PassSummary:
    """Totals for one pipeline pass over the catalog."""

    market: MarketType
    instruments: int = 0
    converged: int = 0
    aborted: int = 0
    inserted: int = 0
    catalog_failed: bool = False

    def record(self, result: WalkResult) -> None:
        self.instruments += 1
        self.inserted += result.inserted
        if result.outcome is WalkOutcome.CONVERGED:
            self.converged += 1
        elif result.outcome is WalkOutcome.ABORTED:
            self.aborted += 1
