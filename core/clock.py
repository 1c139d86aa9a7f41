# core/clock.py
"""
Wall-clock access and the single day-boundary policy.

Both the daily-login guard and the investment payout guard call
`same_calendar_day`, which compares dates in the configured business timezone.
"""

import math
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from .config import settings


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        # Naive timestamps from storage are UTC
        return moment.replace(tzinfo=timezone.utc)
    return moment


class Clock:
    def __init__(self, tz_name: str | None = None):
        self.tz = ZoneInfo(tz_name or settings.BUSINESS_TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def local_date(self, moment: datetime) -> date:
        return _aware(moment).astimezone(self.tz).date()

    def today(self) -> date:
        return self.local_date(self.now())

    def same_calendar_day(self, first: datetime, second: datetime) -> bool:
        return self.local_date(first) == self.local_date(second)

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """UTC [start, end) of a business calendar day."""
        start = datetime.combine(day, time.min, tzinfo=self.tz)
        end = start + timedelta(days=1)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    def elapsed_days(self, start: datetime, end: datetime) -> int:
        """Days between two timestamps, any started day counting as a whole one. Never negative."""
        start, end = _aware(start), _aware(end)
        return max(math.ceil((end - start) / timedelta(days=1)), 0)


class FrozenClock(Clock):
    """A clock pinned to a given moment. Used by tests and replay scripts."""

    def __init__(self, moment: datetime, tz_name: str | None = None):
        super().__init__(tz_name)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, **kwargs) -> datetime:
        self.moment = self.moment + timedelta(**kwargs)
        return self.moment
