"""Daily check-in streak math and streak-scaled rewards."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

ONE_DAY = timedelta(days=1)


def consecutive_checkins(dates: Sequence[date]) -> int:
    """Count the run of consecutive days ending at the most recent check-in.

    ``dates`` must be sorted ascending with at most one entry per day (the
    store's unique constraint guarantees this).
    """
    if not dates:
        return 0

    count = 1
    for i in range(len(dates) - 1, 0, -1):
        if dates[i] - dates[i - 1] != ONE_DAY:
            break
        count += 1
    return count


def checkin_reward(streak: int, base: Decimal, increment: Decimal) -> Decimal:
    """PAX paid for a check-in: base + streak * increment, in exact decimals."""
    return base + increment * streak


def checkin_xp(streak: int, base_xp: int, xp_per_day: int, cap_xp: int) -> int:
    """XP for a check-in, capped."""
    return min(base_xp + streak * xp_per_day, cap_xp)


def utc_today(now: datetime | None = None) -> date:
    """The UTC calendar day for ``now``."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).date()


def day_expiry(day: date) -> datetime:
    """UTC midnight at the end of ``day`` (when a daily challenge expires)."""
    return datetime.combine(day + ONE_DAY, time.min, tzinfo=timezone.utc)
