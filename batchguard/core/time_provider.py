from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from batchguard.config import settings


APP_TIMEZONE = settings.app_timezone or "Asia/Kolkata"
APP_ZONEINFO = ZoneInfo(APP_TIMEZONE)


class TimeProvider:
    def now(self) -> datetime:
        return datetime.now(APP_ZONEINFO)

    def naive_now(self) -> datetime:
        # Persisted timestamps are naive app-local wall clock.
        return self.now().replace(tzinfo=None)


default_time_provider = TimeProvider()
