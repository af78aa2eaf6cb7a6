"""Tests for kline row normalization and PageIngestor."""

from decimal import Decimal

import pytest

from backfill.data.ingestor import MalformedRowError, PageIngestor, parse_kline_row
from backfill.data.store import CandleStore

from conftest import BASE_TIME_MS, MINUTE_MS, make_row


class TestParseKlineRow:
    def test_valid_row(self) -> None:
        candle = parse_kline_row(make_row(BASE_TIME_MS))
        assert candle.open_time == BASE_TIME_MS
        assert candle.open == Decimal("42000.00")
        assert candle.close_time == BASE_TIME_MS + MINUTE_MS - 1
        assert candle.trade_count == 321
        assert candle.taker_buy_quote_volume == Decimal("256230.50000000")

    def test_eleven_fields_is_enough(self) -> None:
        assert parse_kline_row(make_row(BASE_TIME_MS)[:11]).open_time == BASE_TIME_MS

    def test_short_row(self) -> None:
        with pytest.raises(MalformedRowError):
            parse_kline_row(make_row(BASE_TIME_MS)[:6])

    def test_not_a_list(self) -> None:
        with pytest.raises(MalformedRowError):
            parse_kline_row({"open_time": BASE_TIME_MS})

    def test_bad_decimal(self) -> None:
        row = make_row(BASE_TIME_MS)
        row[2] = "not-a-number"
        with pytest.raises(MalformedRowError):
            parse_kline_row(row)

    def test_nan_rejected(self) -> None:
        row = make_row(BASE_TIME_MS)
        row[4] = "NaN"
        with pytest.raises(MalformedRowError):
            parse_kline_row(row)

    def test_float_price_rejected(self) -> None:
        row = make_row(BASE_TIME_MS)
        row[1] = 42000.0
        with pytest.raises(MalformedRowError):
            parse_kline_row(row)

    def test_bad_open_time(self) -> None:
        row = make_row(BASE_TIME_MS)
        row[0] = None
        with pytest.raises(MalformedRowError):
            parse_kline_row(row)


class TestPageIngestor:
    @pytest.mark.asyncio
    async def test_reports_page_min_and_inserted(self, store: CandleStore) -> None:
        await store.insert_instrument("BTCUSDT")
        btc = await store.get_instrument("BTCUSDT")
        rows = [make_row(BASE_TIME_MS + i * MINUTE_MS) for i in (2, 0, 1)]

        result = await PageIngestor(store).ingest(btc, rows)

        assert result.page_min == BASE_TIME_MS
        assert result.received == 3
        assert result.inserted == 3
        assert result.skipped == 0

    @pytest.mark.asyncio
    async def test_malformed_rows_are_skipped(self, store: CandleStore) -> None:
        await store.insert_instrument("BTCUSDT")
        btc = await store.get_instrument("BTCUSDT")
        bad = make_row(BASE_TIME_MS - MINUTE_MS)
        bad[5] = "??"
        rows = [bad, make_row(BASE_TIME_MS), "garbage"]

        result = await PageIngestor(store).ingest(btc, rows)

        assert result.skipped == 2
        assert result.inserted == 1
        # the malformed older row does not count towards page_min
        assert result.page_min == BASE_TIME_MS
        assert await store.count_candles(btc.id) == 1

    @pytest.mark.asyncio
    async def test_reingest_is_noop(self, store: CandleStore) -> None:
        await store.insert_instrument("BTCUSDT")
        btc = await store.get_instrument("BTCUSDT")
        rows = [make_row(BASE_TIME_MS + i * MINUTE_MS) for i in range(4)]
        ingestor = PageIngestor(store)

        await ingestor.ingest(btc, rows)
        again = await ingestor.ingest(btc, rows)

        assert again.inserted == 0
        assert again.page_min == BASE_TIME_MS
        assert await store.count_candles(btc.id) == 4

    @pytest.mark.asyncio
    async def test_all_rows_malformed(self, store: CandleStore) -> None:
        await store.insert_instrument("BTCUSDT")
        btc = await store.get_instrument("BTCUSDT")

        result = await PageIngestor(store).ingest(btc, [[1, 2], None])

        assert result.page_min is None
        assert result.inserted == 0

    @pytest.mark.asyncio
    async def test_open_candle_is_not_stored(self, store: CandleStore) -> None:
        await store.insert_instrument("BTCUSDT")
        btc = await store.get_instrument("BTCUSDT")
        newest = BASE_TIME_MS + 2 * MINUTE_MS
        rows = [make_row(BASE_TIME_MS + i * MINUTE_MS) for i in range(3)]
        ingestor = PageIngestor(store, clock=lambda: newest + 15_000)

        result = await ingestor.ingest(btc, rows)

        assert result.unfinished == 1
        assert result.skipped == 0
        assert result.inserted == 2
        assert result.page_min == BASE_TIME_MS
        assert (await store.get_coverage(btc.id)).latest == newest - MINUTE_MS

    @pytest.mark.asyncio
    async def test_close_time_equal_to_now_is_unfinished(self, store: CandleStore) -> None:
        await store.insert_instrument("BTCUSDT")
        btc = await store.get_instrument("BTCUSDT")
        row = make_row(BASE_TIME_MS)
        ingestor = PageIngestor(store, clock=lambda: BASE_TIME_MS + MINUTE_MS - 1)

        result = await ingestor.ingest(btc, [row])

        assert result.unfinished == 1
        # an open candle alone still moves the walk boundary
        assert result.page_min == BASE_TIME_MS
        assert await store.count_candles(btc.id) == 0
