"""User preferences persisted in the key-value store."""

from __future__ import annotations

import logging
from datetime import time

from dailyquote.core.storage import NOTIFICATION_TIME_KEY, KeyValueStore

logger = logging.getLogger(__name__)

# 2:00 PM
DEFAULT_NOTIFICATION_TIME = time(14, 0)


def parse_time_of_day(value: str) -> time:
    """Parse "HH:MM" (or "HH:MM:SS") into a time.

    Raises:
        ValueError: If value is not a valid time of day.
    """
    parsed = time.fromisoformat(value.strip())
    return parsed.replace(second=0, microsecond=0, tzinfo=None)


async def get_notification_time(kv: KeyValueStore, default: time = DEFAULT_NOTIFICATION_TIME) -> time:
    """Get the daily reminder time, or default if none (or garbage) is stored."""
    stored = await kv.get(NOTIFICATION_TIME_KEY)
    if stored is None:
        return default
    try:
        return parse_time_of_day(stored)
    except ValueError:
        logger.warning(f"Ignoring invalid stored notification time {stored!r}")
        return default


async def set_notification_time(kv: KeyValueStore, value: time) -> None:
    await kv.set(NOTIFICATION_TIME_KEY, value.strftime("%H:%M"))
