from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_BUNDLED_QUOTES_PATH = str(Path(__file__).resolve().parent.parent / "data" / "quotes.json")


@dataclass(frozen=True)
class Settings:
    db_path: str
    bundled_quotes_path: str
    notification_title: str
    max_notification_length: int
    max_scheduled_notifications: int
    reminder_window_days: int
    max_selection_retries: int
    default_notification_time: str
    log_level: str

    @staticmethod
    def from_env() -> "Settings":
        def _s(name: str, default: str) -> str:
            return os.getenv(name, default).strip()

        def _i(name: str, default: str) -> int:
            return int(os.getenv(name, default).strip())

        return Settings(
            db_path=_s("DB_PATH", "/app/_local/data/dailyquote.db"),
            bundled_quotes_path=_s("BUNDLED_QUOTES_PATH", DEFAULT_BUNDLED_QUOTES_PATH),
            notification_title=_s("NOTIFICATION_TITLE", "Your Daily Kindle Quote"),
            max_notification_length=_i("MAX_NOTIFICATION_LENGTH", "100"),
            # iOS keeps at most 64 pending local notifications per app
            max_scheduled_notifications=_i("MAX_SCHEDULED_NOTIFICATIONS", "64"),
            reminder_window_days=_i("REMINDER_WINDOW_DAYS", "30"),
            max_selection_retries=_i("MAX_SELECTION_RETRIES", "3"),
            default_notification_time=_s("DEFAULT_NOTIFICATION_TIME", "14:00"),
            log_level=_s("LOG_LEVEL", "INFO").upper(),
        )
