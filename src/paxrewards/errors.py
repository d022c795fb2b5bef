"""Reward ledger exception taxonomy.

User-caused errors map to 4xx responses and are not logged as errors.
Store-level uniqueness violations are translated by the action recorder.
Operational payout errors are recorded on the reward transaction row.
"""

from __future__ import annotations


class RewardsError(Exception):
    """Base class for all reward ledger errors."""


# --- User-caused ---


class UserActionError(RewardsError):
    """Rejected user action (surfaced as a 4xx, never logged as an error)."""

    status_code = 400


class AlreadyCompleted(UserActionError):
    status_code = 409

    def __init__(self, lesson_id: str) -> None:
        super().__init__(f"Lesson already completed: {lesson_id}")
        self.lesson_id = lesson_id


class AlreadyCheckedInToday(UserActionError):
    status_code = 409

    def __init__(self, day: object) -> None:
        super().__init__(f"Already checked in on {day}")
        self.day = day


class LessonNotFound(UserActionError):
    status_code = 404

    def __init__(self, lesson_id: str) -> None:
        super().__init__(f"Lesson not found: {lesson_id}")
        self.lesson_id = lesson_id


class InvalidIncrement(UserActionError):
    def __init__(self, increment: int) -> None:
        super().__init__(f"Progress increment must be positive, got {increment}")
        self.increment = increment


# --- Store-level ---


class UniquenessViolation(RewardsError):
    """A write collided with a store-level unique constraint."""


class DuplicateCheckin(UniquenessViolation):
    pass


class DuplicateLessonProgress(UniquenessViolation):
    pass


class InvalidRequirement(RewardsError):
    """Stored achievement requirement has an unknown shape."""


# --- Operational (payouts) ---


class PayoutError(RewardsError):
    """Payout attempt failed; the transaction is marked 'failed'."""


class InsufficientBalance(PayoutError):
    pass


class GatewaySendFailure(PayoutError):
    pass
