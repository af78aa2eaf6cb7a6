"""Candle persistence and backfill layer.

Provides SQLite database management, the typed candle store, catalog
fetching, instrument registration, page ingestion and the backfill walker.
"""

from backfill.data.catalog import CatalogFetcher
from backfill.data.database import CandleDatabase
from backfill.data.ingestor import PageIngestor, parse_kline_row
from backfill.data.registry import InstrumentRegistry
from backfill.data.store import CandleStore, InsertOutcome
from backfill.data.walker import BackfillWalker

__all__ = [
    "BackfillWalker",
    "CandleDatabase",
    "CandleStore",
    "CatalogFetcher",
    "InsertOutcome",
    "InstrumentRegistry",
    "PageIngestor",
    "parse_kline_row",
]
