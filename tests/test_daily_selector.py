"""Tests for the quote-of-the-day selector."""

import random
import sqlite3
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from dailyquote.core.daily_selector import DailySelector, SelectionError
from dailyquote.core.quote_store import QuoteStore, StoreError
from dailyquote.core.settings import DEFAULT_BUNDLED_QUOTES_PATH
from dailyquote.core.storage import DB, QUOTE_DATE_KEY, QUOTE_INDEX_KEY, KeyValueStore, StorageError
from dailyquote.providers.content_types import AnnotationType

TODAY = date(2024, 3, 1)

EXPORT = (
    "Deep Work (Cal Newport)\n"
    "- Your Highlight on Location 200-210 | Added on Saturday, March 4, 2023 9:05:12 AM\n"
    "Clarity about what matters provides clarity about what does not.\n"
    "==========\n"
    "Walden (Henry David Thoreau)\n"
    "- Your Highlight on Location 1288-1291 | Added on Sunday, March 5, 2023 8:00:00 PM\n"
    "I went to the woods because I wished to live deliberately.\n"
    "==========\n"
)


@pytest.fixture
def db():
    conn = sqlite3.connect(":memory:")
    database = DB(conn=conn)
    database.init()
    return database


@pytest.fixture
def store(db):
    return QuoteStore(db, DEFAULT_BUNDLED_QUOTES_PATH)


class MemoryKV(KeyValueStore):
    """Dict-backed store that can fail reads or writes of one key."""

    def __init__(self, fail_get=None, fail_set=None):
        self.data = {}
        self.fail_get = fail_get
        self.fail_set = fail_set

    async def get(self, key):
        if key == self.fail_get:
            raise ConnectionError("kv offline")
        return self.data.get(key)

    async def set(self, key, value):
        if key == self.fail_set:
            raise ConnectionError("kv offline")
        self.data[key] = value

    async def remove(self, key):
        self.data.pop(key, None)


def make_selector(store, db, day=TODAY, seed=None, **kwargs):
    return DailySelector(store, db, rng=random.Random(seed), today=lambda: day, **kwargs)


class TestDailySelection:
    """Idempotence within a day, variety across days."""

    @pytest.mark.asyncio
    async def test_same_day_returns_same_quote(self, store, db):
        first = await make_selector(store, db, seed=1).get_daily_quote()
        # Different seed, new instance: as after an app restart
        second = await make_selector(store, db, seed=2).get_daily_quote()

        assert first == second

    @pytest.mark.asyncio
    async def test_selection_is_persisted(self, store, db):
        quote = await make_selector(store, db, seed=3).get_daily_quote()

        assert await db.get(QUOTE_DATE_KEY) == "2024-03-01"
        index = int(await db.get(QUOTE_INDEX_KEY))
        assert (await store.load())[index] == quote

    @pytest.mark.asyncio
    async def test_same_day_survives_store_reload(self, store, db):
        first = await make_selector(store, db, seed=1).get_daily_quote()
        reloaded = QuoteStore(db, DEFAULT_BUNDLED_QUOTES_PATH)

        assert await make_selector(reloaded, db, seed=9).get_daily_quote() == first

    @pytest.mark.asyncio
    async def test_new_day_reselects(self, store, db):
        await make_selector(store, db, seed=1).get_daily_quote()

        await make_selector(store, db, day=TODAY + timedelta(days=1), seed=2).get_daily_quote()

        assert await db.get(QUOTE_DATE_KEY) == "2024-03-02"

    @pytest.mark.asyncio
    async def test_not_constant_across_days(self, store, db):
        rng = random.Random(7)
        seen = set()
        for offset in range(30):
            day = TODAY + timedelta(days=offset)
            selector = DailySelector(store, db, rng=rng, today=lambda day=day: day)
            seen.add((await selector.get_daily_quote()).id)

        assert len(seen) > 1

    @pytest.mark.asyncio
    async def test_out_of_range_index_is_replaced(self, store, db):
        await db.set(QUOTE_DATE_KEY, TODAY.isoformat())
        await db.set(QUOTE_INDEX_KEY, "999")

        quote = await make_selector(store, db, seed=4).get_daily_quote()

        index = int(await db.get(QUOTE_INDEX_KEY))
        assert index < len(await store.load())
        assert (await store.load())[index] == quote

    @pytest.mark.asyncio
    async def test_garbage_index_is_replaced(self, store, db):
        await db.set(QUOTE_DATE_KEY, TODAY.isoformat())
        await db.set(QUOTE_INDEX_KEY, "not-a-number")

        await make_selector(store, db, seed=4).get_daily_quote()

        assert (await db.get(QUOTE_INDEX_KEY)).isdigit()

    @pytest.mark.asyncio
    async def test_selects_from_imported_after_import(self, store, db):
        bundled_pick = await make_selector(store, db, seed=5).get_daily_quote()
        assert bundled_pick.annotation_type == AnnotationType.BUNDLED

        imported = await store.import_highlights(EXPORT)

        for seed in range(10):
            quote = await make_selector(store, db, seed=seed).get_daily_quote()
            assert quote in imported
            assert quote.annotation_type == AnnotationType.HIGHLIGHT


class TestSelectionErrors:
    """Fatal conditions surface as SelectionError with the cause attached."""

    @pytest.mark.asyncio
    async def test_missing_bundled_collection(self, db, tmp_path):
        store = QuoteStore(db, tmp_path / "missing.json")

        with pytest.raises(SelectionError) as exc:
            await make_selector(store, db).get_daily_quote()

        assert isinstance(exc.value.cause, StoreError)
        assert exc.value.__cause__ is exc.value.cause

    @pytest.mark.asyncio
    async def test_storage_failure(self, store, db):
        db.conn.close()

        with pytest.raises(SelectionError) as exc:
            await make_selector(store, db).get_daily_quote()

        assert isinstance(exc.value.cause, StorageError)

    @pytest.mark.asyncio
    async def test_empty_collection_exhausts_retries(self, db):
        store = MagicMock()
        store.load = AsyncMock(return_value=[])
        rng = MagicMock()
        rng.random.return_value = 0.5

        selector = DailySelector(store, db, rng=rng, today=lambda: TODAY, max_retries=3)
        with pytest.raises(SelectionError, match="3 attempts"):
            await selector.get_daily_quote()

        assert rng.random.call_count == 3
        assert await db.get(QUOTE_DATE_KEY) is None

    @pytest.mark.asyncio
    async def test_foreign_storage_exception_is_wrapped(self):
        kv = MemoryKV(fail_get=QUOTE_DATE_KEY)
        store = QuoteStore(kv, DEFAULT_BUNDLED_QUOTES_PATH)

        with pytest.raises(SelectionError) as exc:
            await make_selector(store, kv).get_daily_quote()

        assert isinstance(exc.value.cause, ConnectionError)
        assert exc.value.__cause__ is exc.value.cause

    @pytest.mark.asyncio
    async def test_failed_index_write_keeps_previous_date(self):
        kv = MemoryKV()
        store = QuoteStore(kv, DEFAULT_BUNDLED_QUOTES_PATH)
        await make_selector(store, kv, day=TODAY - timedelta(days=1), seed=1).get_daily_quote()
        kv.fail_set = QUOTE_INDEX_KEY

        with pytest.raises(SelectionError):
            await make_selector(store, kv, seed=2).get_daily_quote()

        assert kv.data[QUOTE_DATE_KEY] == (TODAY - timedelta(days=1)).isoformat()
        kv.fail_set = None
        await make_selector(store, kv, seed=2).get_daily_quote()
        assert kv.data[QUOTE_DATE_KEY] == TODAY.isoformat()
