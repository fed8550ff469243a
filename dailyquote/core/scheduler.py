"""Batches of one-shot quote reminders.

A repeating daily trigger drifts across time zones, so reminders are
materialized as a rolling window of discrete one-shot notifications:

1. Validate the request (count, interval, platform ceiling, enough quotes)
2. Cancel every previously scheduled reminder
3. Draw `count` distinct quotes without replacement
4. Schedule reminder i at start_time + i * interval_seconds

The caller refreshes the window before it runs out.
"""

from __future__ import annotations

import logging
import random
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any

from dailyquote.core.quote_store import QuoteStore
from dailyquote.providers.content_types import Quote

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Your Daily Kindle Quote"
MAX_NOTIFICATION_LENGTH = 100
MAX_PENDING_NOTIFICATIONS = 64
ELLIPSIS = "..."
SECONDS_PER_DAY = 24 * 60 * 60


class SchedulerError(Exception):
    """A reminder batch could not be (fully) scheduled.

    Attributes:
        scheduled: How many reminders of the batch were scheduled before the failure.
    """

    def __init__(self, message: str, scheduled: int = 0):
        super().__init__(message)
        self.scheduled = scheduled


@dataclass(frozen=True)
class NotificationContent:
    """What the user sees, plus an opaque payload for resolving the quote."""

    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def quote_id(self) -> str | None:
        return self.data.get("quoteId")


@dataclass(frozen=True)
class ScheduledNotification:
    """A one-shot reminder held by a notification center."""

    id: str
    fire_at: datetime
    content: NotificationContent

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "fire_at": self.fire_at.isoformat(),
            "title": self.content.title,
            "body": self.content.body,
            "data": dict(self.content.data),
        }


class NotificationCenter(ABC):
    """Platform capability for local, device-scheduled reminders."""

    @abstractmethod
    async def cancel_all(self) -> None:
        """Cancel every pending reminder."""
        ...

    @abstractmethod
    async def schedule(self, fire_at: datetime, content: NotificationContent) -> str:
        """Schedule a one-shot reminder and return its identifier."""
        ...

    @abstractmethod
    async def list_scheduled(self) -> list[ScheduledNotification]:
        """Return pending reminders ordered by fire time."""
        ...


class LocalNotificationCenter(NotificationCenter):
    """In-process notification queue.

    Holds reminders in memory; a delivery loop calls pop_due() to take the
    ones whose time has come.
    """

    def __init__(self) -> None:
        self._pending: dict[str, ScheduledNotification] = {}

    async def cancel_all(self) -> None:
        self._pending.clear()

    async def schedule(self, fire_at: datetime, content: NotificationContent) -> str:
        notification = ScheduledNotification(id=str(uuid.uuid4()), fire_at=fire_at, content=content)
        self._pending[notification.id] = notification
        return notification.id

    async def list_scheduled(self) -> list[ScheduledNotification]:
        return sorted(self._pending.values(), key=lambda n: n.fire_at)

    async def pop_due(self, now: datetime) -> list[ScheduledNotification]:
        """Remove and return reminders with fire_at <= now."""
        due = [n for n in await self.list_scheduled() if n.fire_at <= now]
        for n in due:
            del self._pending[n.id]
        return due


def truncate_quote(text: str, max_length: int = MAX_NOTIFICATION_LENGTH) -> str:
    """Shorten text to max_length characters, ending in an ellipsis if cut."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


def next_occurrence(time_of_day: time, now: datetime) -> datetime:
    """First datetime strictly after now whose wall-clock time is time_of_day."""
    candidate = datetime.combine(now.date(), time_of_day, tzinfo=now.tzinfo)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class NotificationScheduler:
    """Replaces the pending reminder batch with a fresh set of unique quotes."""

    def __init__(
        self,
        store: QuoteStore,
        center: NotificationCenter,
        rng: random.Random | None = None,
        title: str = DEFAULT_TITLE,
        max_body_length: int = MAX_NOTIFICATION_LENGTH,
        max_pending: int = MAX_PENDING_NOTIFICATIONS,
    ) -> None:
        self._store = store
        self._center = center
        self._rng = rng or random.Random()
        self._title = title
        self._max_body_length = max_body_length
        self._max_pending = max_pending

    def _content_for(self, quote: Quote) -> NotificationContent:
        return NotificationContent(
            title=self._title,
            body=truncate_quote(quote.content, self._max_body_length),
            data={"quoteId": quote.id},
        )

    async def schedule_batch(
        self,
        start_time: datetime,
        interval_seconds: int,
        count: int,
    ) -> list[ScheduledNotification]:
        """Cancel all pending reminders and schedule `count` new ones.

        Args:
            start_time: When the first reminder fires.
            interval_seconds: Spacing between consecutive reminders.
            count: Number of reminders; each carries a different quote.

        Returns:
            The scheduled reminders in firing order.

        Raises:
            SchedulerError: If a precondition fails (nothing is cancelled or
                scheduled) or a reminder could not be scheduled (the batch
                may be partial; retry the whole batch).
            StoreError: If there is no usable quote collection.
        """
        if count < 0:
            raise SchedulerError(f"count must not be negative, got {count}")
        if count > self._max_pending:
            raise SchedulerError(
                f"count {count} exceeds the limit of {self._max_pending} pending notifications"
            )
        if count > 1 and interval_seconds <= 0:
            raise SchedulerError(f"interval_seconds must be positive, got {interval_seconds}")

        quotes = await self._store.load()
        if count > len(quotes):
            raise SchedulerError(
                f"insufficient quotes: requested {count}, only {len(quotes)} available"
            )

        try:
            await self._center.cancel_all()
        except Exception as e:
            logger.error(f"Cancelling pending reminders failed: {e}")
            raise SchedulerError(f"Failed to cancel pending reminders: {e}", scheduled=0) from e

        drawn = self._rng.sample(quotes, count)
        batch: list[ScheduledNotification] = []
        for i, quote in enumerate(drawn):
            fire_at = start_time + timedelta(seconds=i * interval_seconds)
            content = self._content_for(quote)
            try:
                notification_id = await self._center.schedule(fire_at, content)
            except Exception as e:
                logger.error(f"Scheduling reminder {i + 1}/{count} at {fire_at.isoformat()} failed: {e}")
                raise SchedulerError(
                    f"Failed to schedule reminder {i + 1}/{count}: {e}",
                    scheduled=len(batch),
                ) from e
            batch.append(ScheduledNotification(id=notification_id, fire_at=fire_at, content=content))

        logger.info(
            f"Scheduled {count} reminders from {start_time.isoformat()} every {interval_seconds}s"
        )
        return batch

    async def refresh_daily_schedule(
        self,
        time_of_day: time,
        now: datetime,
        days: int,
    ) -> list[ScheduledNotification]:
        """Schedule one reminder per day at time_of_day, starting after now.

        The window is capped at the collection size so every reminder
        carries a different quote.
        """
        quotes = await self._store.load()
        count = min(days, len(quotes), self._max_pending)
        start = next_occurrence(time_of_day, now)
        return await self.schedule_batch(start, SECONDS_PER_DAY, count)


_center: LocalNotificationCenter | None = None


def get_notification_center() -> LocalNotificationCenter:
    """Get the process-wide notification center, creating it on first use."""
    global _center
    if _center is None:
        _center = LocalNotificationCenter()
    return _center
