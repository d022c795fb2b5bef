"""Check-in streak counting and streak-scaled rewards."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from paxrewards.gamification.streaks import (
    checkin_reward,
    checkin_xp,
    consecutive_checkins,
    day_expiry,
    utc_today,
)


def _days(*offsets: int) -> list[date]:
    base = date(2026, 3, 1)
    return [base + timedelta(days=o) for o in offsets]


class TestConsecutiveCheckins:
    def test_empty_history(self):
        assert consecutive_checkins([]) == 0

    def test_single_day(self):
        assert consecutive_checkins(_days(0)) == 1

    def test_unbroken_run(self):
        assert consecutive_checkins(_days(0, 1, 2, 3)) == 4

    def test_gap_resets_run(self):
        """Only the run ending at the latest check-in counts."""
        assert consecutive_checkins(_days(0, 1, 2, 4, 5)) == 2

    def test_gap_just_before_latest(self):
        assert consecutive_checkins(_days(0, 1, 2, 5)) == 1

    def test_month_boundary(self):
        dates = [date(2026, 1, 30), date(2026, 1, 31), date(2026, 2, 1)]
        assert consecutive_checkins(dates) == 3

    def test_leap_day(self):
        dates = [date(2028, 2, 28), date(2028, 2, 29), date(2028, 3, 1)]
        assert consecutive_checkins(dates) == 3


class TestCheckinReward:
    def test_exact_decimal(self):
        assert checkin_reward(3, Decimal("0.01"), Decimal("0.001")) == Decimal("0.013")

    def test_first_day(self):
        assert checkin_reward(1, Decimal("0.01"), Decimal("0.001")) == Decimal("0.011")


class TestCheckinXp:
    def test_grows_with_streak(self):
        assert checkin_xp(1, 10, 2, 60) == 12
        assert checkin_xp(5, 10, 2, 60) == 20

    def test_capped(self):
        assert checkin_xp(100, 10, 2, 60) == 60


class TestUtcDays:
    def test_utc_today_converts_offset_times(self):
        late_evening_west = datetime(2026, 3, 1, 22, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert utc_today(late_evening_west) == date(2026, 3, 2)

    def test_day_expiry_is_next_midnight_utc(self):
        assert day_expiry(date(2026, 3, 1)) == datetime(2026, 3, 2, tzinfo=timezone.utc)
