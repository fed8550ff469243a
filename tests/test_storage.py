"""Tests for the SQLite key-value store."""

import sqlite3

import pytest

from dailyquote.core import storage
from dailyquote.core.settings import Settings
from dailyquote.core.storage import DB, StorageError


@pytest.fixture
def db():
    """Create an in-memory database for testing."""
    conn = sqlite3.connect(":memory:")
    database = DB(conn=conn)
    database.init()
    return database


@pytest.mark.asyncio
async def test_get_missing_key(db):
    assert await db.get("nope") is None


@pytest.mark.asyncio
async def test_set_and_get(db):
    await db.set("quoteOfTheDayIndex", "4")
    assert await db.get("quoteOfTheDayIndex") == "4"


@pytest.mark.asyncio
async def test_set_overwrites(db):
    await db.set("k", "first")
    await db.set("k", "second")

    assert await db.get("k") == "second"
    count = db.conn.execute("SELECT COUNT(*) FROM app_settings WHERE key = 'k'").fetchone()[0]
    assert count == 1


@pytest.mark.asyncio
async def test_remove(db):
    await db.set("k", "v")
    await db.remove("k")
    assert await db.get("k") is None


@pytest.mark.asyncio
async def test_remove_missing_key_is_noop(db):
    await db.remove("never-set")


@pytest.mark.asyncio
async def test_closed_connection_raises_storage_error(db):
    db.conn.close()

    with pytest.raises(StorageError):
        await db.get("k")
    with pytest.raises(StorageError):
        await db.set("k", "v")


@pytest.mark.asyncio
async def test_init_db_persists_to_file(tmp_path, monkeypatch):
    db_path = tmp_path / "nested" / "dailyquote.db"
    monkeypatch.setenv("DB_PATH", str(db_path))
    monkeypatch.setattr(storage, "_db", None)

    first = storage.init_db(Settings.from_env())
    await first.set("notificationTime", "07:30")
    assert storage.get_db() is first
    first.conn.close()

    second = storage.init_db(Settings.from_env())
    assert db_path.exists()
    assert await second.get("notificationTime") == "07:30"
    second.conn.close()
