"""Injectable time source.

Due-date, overdue and posting-timestamp logic never calls ``date.today()``
directly; it asks a :class:`Clock`.  Production code uses ``system_clock``;
tests pass a :class:`FixedClock` to simulate arbitrary dates.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """A clock frozen at a given instant.  ``advance`` moves it forward."""

    def __init__(self, instant: datetime | date):
        if isinstance(instant, datetime):
            self._now = instant if instant.tzinfo else instant.replace(tzinfo=timezone.utc)
        else:
            self._now = datetime(instant.year, instant.month, instant.day, 12, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()

    def advance(self, *, days: int = 0, hours: int = 0) -> None:
        self._now += timedelta(days=days, hours=hours)


system_clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a FixedClock."""
    return system_clock
