"""Time providers: a single source of "now" plus the local calendar."""

from datetime import datetime, timedelta
from typing import Optional, Protocol

import pytz
from pytz.tzinfo import BaseTzInfo

from naprhythm.core.settings import settings


# Used by: learner, schedule_generator, coach_analyzer, sleep_coordinator
class Clock(Protocol):
    tz: BaseTzInfo

    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""
        ...


class SystemClock:
    def __init__(self, tz_name: Optional[str] = None):
        self.tz = pytz.timezone(tz_name or settings.TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(pytz.utc)


# Used by: tests, SleepCoordinator.refresh (freezes "now" for one recompute)
class FixedClock:
    def __init__(self, now: datetime, tz_name: str = "UTC"):
        self.tz = pytz.timezone(tz_name)
        if now.tzinfo is None:
            now = pytz.utc.localize(now)
        self._now = now.astimezone(pytz.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta) -> None:
        self._now = self._now + timedelta(**delta)


_default_clock: Optional[SystemClock] = None


def get_clock() -> SystemClock:
    global _default_clock
    if _default_clock is None:
        _default_clock = SystemClock()
    return _default_clock


def frozen(clock: Clock) -> FixedClock:
    """Capture clock.now() once so every component sees the same instant."""
    fixed = FixedClock(clock.now())
    fixed.tz = clock.tz
    return fixed
