"""
Injectable time source.
Services and the application aggregate read "now" through a Clock so expiry logic is deterministic under test.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone


class Clock:
    """System clock returning timezone-aware UTC datetimes."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def now_millis(self) -> int:
        return int(self.now().timestamp() * 1000)


class FixedClock(Clock):
    """Clock pinned to an instant; advance() moves it forward."""

    def __init__(self, instant: datetime | None = None):
        self._instant = instant or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._instant

    def advance(self, **kwargs) -> datetime:
        self._instant = self._instant + timedelta(**kwargs)
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = instant


def add_years(moment: datetime, years: int) -> datetime:
    """Shift by calendar years; Feb 29 falls back to Feb 28 in non-leap targets."""
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, day=28)
