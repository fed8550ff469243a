"""Quote of the day: one persisted pick per local calendar day."""

from __future__ import annotations

import logging
import random
from datetime import date
from typing import Callable

from dailyquote.core.quote_store import QuoteStore
from dailyquote.core.storage import QUOTE_DATE_KEY, QUOTE_INDEX_KEY, KeyValueStore
from dailyquote.providers.content_types import Quote

logger = logging.getLogger(__name__)

MAX_RETRIES = 3


class SelectionError(Exception):
    """Today's quote could not be selected."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class DailySelector:
    """Picks and remembers today's quote.

    Repeated calls on the same day return the same quote, as long as the
    stored index is still within the current collection. Concurrent first
    calls on a new day are last-writer-wins.
    """

    def __init__(
        self,
        store: QuoteStore,
        kv: KeyValueStore,
        rng: random.Random | None = None,
        today: Callable[[], date] = date.today,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        self._store = store
        self._kv = kv
        self._rng = rng or random.Random()
        self._today = today
        self._max_retries = max_retries

    async def get_daily_quote(self) -> Quote:
        """Return today's quote, selecting and persisting one if needed.

        Raises:
            SelectionError: If the collection or storage is unusable, or no
                valid index was found within max_retries attempts.
        """
        try:
            return await self._get_or_select()
        except SelectionError:
            raise
        except Exception as e:
            logger.error(f"Error getting daily quote: {e}")
            raise SelectionError(f"Failed to get daily quote: {e}", cause=e) from e

    async def _get_or_select(self) -> Quote:
        quotes = await self._store.load()
        today = self._today().isoformat()

        stored_date = await self._kv.get(QUOTE_DATE_KEY)
        stored_index = await self._kv.get(QUOTE_INDEX_KEY)
        if stored_date == today and stored_index is not None:
            index = _parse_index(stored_index)
            if index is not None and 0 <= index < len(quotes):
                return quotes[index]
            logger.warning(
                f"Stored index {stored_index!r} is invalid for {len(quotes)} quotes, selecting again"
            )

        for attempt in range(1, self._max_retries + 1):
            index = int(self._rng.random() * len(quotes))
            if 0 <= index < len(quotes):
                break
            logger.warning(f"Drew invalid index {index} (attempt {attempt}/{self._max_retries})")
        else:
            raise SelectionError(
                f"No valid quote index after {self._max_retries} attempts "
                f"({len(quotes)} quotes available)"
            )

        # Index before date, so a partial write forces a fresh pick
        await self._kv.set(QUOTE_INDEX_KEY, str(index))
        await self._kv.set(QUOTE_DATE_KEY, today)
        logger.info(f"Selected quote {quotes[index].id} for {today}")
        return quotes[index]


def _parse_index(value: str) -> int | None:
    try:
        return int(value)
    except ValueError:
        return None
