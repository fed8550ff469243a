from __future__ import annotations

import logging
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dailyquote.core.daily_selector import DailySelector, SelectionError
from dailyquote.core.preferences import (
    get_notification_time,
    parse_time_of_day,
    set_notification_time,
)
from dailyquote.core.quote_store import QuoteStore, StoreError
from dailyquote.core.scheduler import (
    NotificationScheduler,
    SchedulerError,
    get_notification_center,
)
from dailyquote.core.settings import Settings
from dailyquote.core.storage import StorageError, get_db, init_db
from dailyquote.providers.clippings import ParseError

logger = logging.getLogger(__name__)

app = FastAPI(title="dailyquote")


@app.on_event("startup")
def _startup() -> None:
    s = Settings.from_env()
    logging.basicConfig(level=s.log_level)
    init_db(s)


def _quote_store(s: Settings) -> QuoteStore:
    return QuoteStore(get_db(), s.bundled_quotes_path)


def _scheduler(s: Settings) -> NotificationScheduler:
    return NotificationScheduler(
        _quote_store(s),
        get_notification_center(),
        title=s.notification_title,
        max_body_length=s.max_notification_length,
        max_pending=s.max_scheduled_notifications,
    )


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


class NotificationTimeBody(BaseModel):
    time: str


class ScheduleBody(BaseModel):
    start_time: datetime
    interval_seconds: int = 24 * 60 * 60
    count: int


# ==================== Error Mapping ====================


@app.exception_handler(ParseError)
async def _parse_error(request: Request, exc: ParseError):
    logger.warning(f"Rejected highlights import: {exc}")
    return _error(422, str(exc), ordinal=exc.ordinal, field=exc.field, reason=exc.reason)


@app.exception_handler(SchedulerError)
async def _scheduler_error(request: Request, exc: SchedulerError):
    return _error(409, str(exc), scheduled=exc.scheduled)


@app.exception_handler(SelectionError)
async def _selection_error(request: Request, exc: SelectionError):
    return _error(500, str(exc))


@app.exception_handler(StoreError)
async def _store_error(request: Request, exc: StoreError):
    return _error(500, str(exc))


@app.exception_handler(StorageError)
async def _storage_error(request: Request, exc: StorageError):
    return _error(500, str(exc))


# ==================== Quotes ====================


@app.get("/api/quote/today")
async def api_quote_today():
    """Get today's quote, selecting one on the first call of the day."""
    s = Settings.from_env()
    selector = DailySelector(
        _quote_store(s),
        get_db(),
        max_retries=s.max_selection_retries,
    )
    quote = await selector.get_daily_quote()
    return quote.to_dict()


@app.get("/api/quotes")
async def api_quotes():
    """List the current collection and where it came from."""
    store = _quote_store(Settings.from_env())
    quotes = await store.load()
    source = "imported" if await store.has_imported() else "bundled"
    return {"source": source, "count": len(quotes), "quotes": [q.to_dict() for q in quotes]}


@app.get("/api/quotes/{quote_id}")
async def api_quote_detail(quote_id: str):
    """Resolve a quote id, e.g. from a notification payload."""
    quote = await _quote_store(Settings.from_env()).get_by_id(quote_id)
    if not quote:
        return _error(404, "Quote not found")
    return quote.to_dict()


@app.post("/api/quotes/import")
async def api_quotes_import(request: Request):
    """Replace the imported collection with a highlights export.

    The request body is the raw text of the export.
    """
    body = await request.body()
    try:
        raw_text = body.decode("utf-8-sig")
    except UnicodeDecodeError:
        return _error(400, "Export must be UTF-8 text")

    quotes = await _quote_store(Settings.from_env()).import_highlights(raw_text)
    return {"imported": len(quotes), "books": len({q.book_title for q in quotes})}


@app.delete("/api/quotes/import")
async def api_quotes_import_clear():
    """Forget the imported collection and go back to the bundled quotes."""
    await _quote_store(Settings.from_env()).clear_imported()
    return {"success": True, "source": "bundled"}


# ==================== Settings ====================


@app.get("/api/settings/notification-time")
async def api_get_notification_time():
    s = Settings.from_env()
    value = await get_notification_time(get_db(), parse_time_of_day(s.default_notification_time))
    return {"time": value.strftime("%H:%M")}


@app.put("/api/settings/notification-time")
async def api_set_notification_time(body: NotificationTimeBody, refresh: bool = True):
    """Store a new reminder time and, by default, rebuild the reminder window."""
    try:
        value = parse_time_of_day(body.time)
    except ValueError:
        return _error(400, "Invalid time format. Use HH:MM")

    await set_notification_time(get_db(), value)
    result = {"time": value.strftime("%H:%M")}
    if refresh:
        s = Settings.from_env()
        batch = await _scheduler(s).refresh_daily_schedule(
            value,
            now=datetime.now(),
            days=s.reminder_window_days,
        )
        result["scheduled"] = len(batch)
    return result


# ==================== Notifications ====================


@app.post("/api/notifications/schedule")
async def api_notifications_schedule(body: ScheduleBody):
    """Replace all pending reminders with a new batch."""
    batch = await _scheduler(Settings.from_env()).schedule_batch(
        body.start_time,
        body.interval_seconds,
        body.count,
    )
    return {"scheduled": [n.to_dict() for n in batch]}


@app.post("/api/notifications/refresh")
async def api_notifications_refresh():
    """Rebuild the daily reminder window at the preferred time."""
    s = Settings.from_env()
    time_of_day = await get_notification_time(get_db(), parse_time_of_day(s.default_notification_time))
    batch = await _scheduler(s).refresh_daily_schedule(
        time_of_day,
        now=datetime.now(),
        days=s.reminder_window_days,
    )
    return {"scheduled": [n.to_dict() for n in batch]}


@app.get("/api/notifications")
async def api_notifications():
    """List pending reminders in firing order."""
    pending = await get_notification_center().list_scheduled()
    return {"count": len(pending), "notifications": [n.to_dict() for n in pending]}
