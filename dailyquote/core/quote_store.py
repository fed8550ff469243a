"""The canonical quote collection: imported highlights, else the bundled set."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from dailyquote.core.storage import (
    IMPORTED_QUOTES_KEY,
    QUOTE_DATE_KEY,
    QUOTE_INDEX_KEY,
    KeyValueStore,
)
from dailyquote.providers.clippings import parse_clippings
from dailyquote.providers.content_types import Quote

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """No usable quote collection is available."""


def serialize_quotes(quotes: list[Quote]) -> str:
    return json.dumps([q.to_dict() for q in quotes], ensure_ascii=False)


def deserialize_quotes(blob: str) -> list[Quote]:
    """Decode a JSON array of quote dicts.

    Raises:
        ValueError: If the blob is not a JSON array of valid quotes.
    """
    data = json.loads(blob)
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON array, got {type(data).__name__}")
    try:
        return [Quote.from_dict(item) for item in data]
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed quote record: {e}") from e


def load_bundled_quotes(path: str | Path) -> list[Quote]:
    """Load the fallback collection shipped with the app.

    Raises:
        StoreError: If the file is missing, not a JSON array, or empty.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise StoreError(f"Bundled quotes not found at {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise StoreError(f"Bundled quotes at {path} are unreadable: {e}") from e

    if not isinstance(data, list):
        raise StoreError(f"Bundled quotes at {path} are not a list")
    if not data:
        raise StoreError(f"Bundled quotes at {path} are empty")

    quotes = []
    for position, item in enumerate(data):
        try:
            quote = Quote.from_dict(item)
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError(f"Bundled quote #{position + 1} is invalid: {e}") from e
        quotes.append(quote)
    return quotes


class QuoteStore:
    """Single source of truth for which quotes exist.

    An imported collection, once present, always shadows the bundled one.
    """

    def __init__(self, kv: KeyValueStore, bundled_path: str | Path) -> None:
        self._kv = kv
        self._bundled_path = Path(bundled_path)
        self._bundled: list[Quote] | None = None

    def _load_bundled(self) -> list[Quote]:
        if self._bundled is None:
            self._bundled = load_bundled_quotes(self._bundled_path)
            logger.debug(f"Loaded {len(self._bundled)} bundled quotes")
        return self._bundled

    async def has_imported(self) -> bool:
        return await self._kv.get(IMPORTED_QUOTES_KEY) is not None

    async def load(self) -> list[Quote]:
        """Return the current collection.

        Raises:
            StoreError: If the imported blob is corrupt or the bundled set is unusable.
            StorageError: If the key-value store fails.
        """
        blob = await self._kv.get(IMPORTED_QUOTES_KEY)
        if blob is None:
            return self._load_bundled()

        try:
            quotes = deserialize_quotes(blob)
        except ValueError as e:
            logger.error(f"Imported quotes are corrupt: {e}")
            raise StoreError(f"Imported quotes are corrupt: {e}") from e
        if not quotes:
            raise StoreError("Imported quote collection is empty")
        return quotes

    async def get_by_id(self, quote_id: str) -> Quote | None:
        for quote in await self.load():
            if quote.id == quote_id:
                return quote
        return None

    async def import_highlights(self, raw_text: str) -> list[Quote]:
        """Parse an export and make it the current collection.

        The collection is written under a single key, so readers see either
        the old or the new collection. Today's selection is cleared so the
        next read picks from the new quotes.

        Raises:
            ParseError: If the export is malformed. Nothing is written.
            StorageError: If the key-value store fails.
        """
        quotes = parse_clippings(raw_text)

        await self._kv.set(IMPORTED_QUOTES_KEY, serialize_quotes(quotes))
        await self._clear_daily_selection()

        logger.info(f"Imported {len(quotes)} quotes")
        return quotes

    async def clear_imported(self) -> None:
        """Drop the imported collection and fall back to the bundled set."""
        await self._kv.remove(IMPORTED_QUOTES_KEY)
        await self._clear_daily_selection()
        logger.info("Cleared imported quotes, using bundled collection")

    async def _clear_daily_selection(self) -> None:
        await self._kv.remove(QUOTE_DATE_KEY)
        await self._kv.remove(QUOTE_INDEX_KEY)

