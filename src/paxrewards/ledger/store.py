"""Ledger store: the persistence contract the recorder and processor use.

Idempotency lives here, not in callers: per-user rows are inserted with
``INSERT .. ON CONFLICT DO NOTHING`` against the unique constraints, and
one-way flags (completed, reward_claimed, status) change through
conditional single-row UPDATEs whose rowcount says whether this call made
the transition.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Table, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from paxrewards.db.models import (
    Achievement,
    DailyChallenge,
    DailyCheckin,
    DailyTask,
    Lesson,
    RewardTransaction,
    ServerWallet,
    UserAchievement,
    UserChallenge,
    UserDailyTask,
    UserLessonProgress,
    UserStats,
)
from paxrewards.errors import DuplicateCheckin, DuplicateLessonProgress
from paxrewards.gamification.level_thresholds import level_from_xp
from paxrewards.gamification.streaks import day_expiry

logger = logging.getLogger(__name__)

REWARD_TYPES = ("lesson", "daily_task", "daily_challenge", "checkin")
RETRYABLE_STATUSES = ("pending", "failed")

# reward_type -> table holding the originating row and its claim flag
_CLAIM_TABLES: dict[str, type] = {
    "lesson": UserLessonProgress,
    "daily_task": UserDailyTask,
    "daily_challenge": UserChallenge,
    "checkin": DailyCheckin,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class LedgerStore:
    """Async data access for the reward ledger, bound to one session.

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _insert(self, model: type) -> Any:
        """Dialect-specific INSERT supporting on_conflict_do_nothing()."""
        table: Table = model.__table__  # type: ignore[attr-defined]
        if self.session.get_bind().dialect.name == "sqlite":
            return sqlite_insert(table)
        return pg_insert(table)

    async def _insert_ignore(self, model: type, values: dict[str, Any]) -> bool:
        """Insert a row unless it collides with a unique constraint. True if inserted."""
        await self.session.flush()
        stmt = self._insert(model).values(**values).on_conflict_do_nothing()
        result = await self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def _update(self, model: type, where: Sequence[Any], values: dict[str, Any]) -> int:
        """Core UPDATE on the model's table; returns the number of rows changed."""
        await self.session.flush()
        table: Table = model.__table__  # type: ignore[attr-defined]
        result = await self.session.execute(update(table).where(*where).values(**values))
        return result.rowcount  # type: ignore[attr-defined]

    async def _fetch_one(self, model: type, *where: Any, for_update: bool = False) -> Any:
        stmt = select(model).where(*where).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # User stats
    # ------------------------------------------------------------------

    async def get_user_stats(self, user: str) -> UserStats | None:
        return await self._fetch_one(UserStats, UserStats.user_address == user)

    async def get_or_create_user_stats(self, user: str, now: datetime | None = None) -> UserStats:
        """Get or lazily create the stats row for a user."""
        now = now or _utcnow()
        await self._insert_ignore(UserStats, {
            "user_address": user,
            "level": 1,
            "xp": 0,
            "total_earned": Decimal("0"),
            "streak": 0,
            "lessons_completed": 0,
            "challenges_completed": 0,
            "last_activity": now,
            "created_at": now,
            "updated_at": now,
        })
        return await self._fetch_one(UserStats, UserStats.user_address == user)

    async def update_user_stats(self, user: str, **fields: Any) -> UserStats:
        """Apply a partial update. ``xp`` changes also recompute ``level``."""
        if "xp" in fields and "level" not in fields:
            fields["level"] = level_from_xp(fields["xp"])
        fields.setdefault("updated_at", _utcnow())
        await self._update(UserStats, [UserStats.user_address == user], fields)
        return await self._fetch_one(UserStats, UserStats.user_address == user)

    async def increment_user_stats(
        self,
        user: str,
        *,
        xp: int = 0,
        lessons_completed: int = 0,
        challenges_completed: int = 0,
        total_earned: Decimal = Decimal("0"),
        now: datetime | None = None,
        **fields: Any,
    ) -> UserStats:
        """Add deltas to a user's counters under a row lock and recompute level."""
        now = now or _utcnow()
        await self.get_or_create_user_stats(user, now)
        stats: UserStats = await self._fetch_one(UserStats, UserStats.user_address == user, for_update=True)

        stats.xp += xp
        stats.level = level_from_xp(stats.xp)
        stats.lessons_completed += lessons_completed
        stats.challenges_completed += challenges_completed
        stats.total_earned = stats.total_earned + total_earned
        for name, value in fields.items():
            setattr(stats, name, value)
        stats.last_activity = now
        stats.updated_at = now
        await self.session.flush()
        return stats

    # ------------------------------------------------------------------
    # Lessons
    # ------------------------------------------------------------------

    async def get_lesson(self, lesson_id: str) -> Lesson | None:
        return await self.session.get(Lesson, lesson_id)

    async def list_lessons(self) -> list[Lesson]:
        result = await self.session.execute(
            select(Lesson).where(Lesson.is_active.is_(True)).order_by(Lesson.id)
        )
        return list(result.scalars())

    async def count_active_lessons(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(Lesson).where(Lesson.is_active.is_(True))
        )
        return result.scalar_one()

    async def get_lesson_progress(self, user: str, lesson_id: str) -> UserLessonProgress | None:
        return await self._fetch_one(
            UserLessonProgress,
            UserLessonProgress.user_address == user,
            UserLessonProgress.lesson_id == lesson_id,
        )

    async def list_lesson_progress(self, user: str) -> list[UserLessonProgress]:
        result = await self.session.execute(
            select(UserLessonProgress)
            .where(UserLessonProgress.user_address == user)
            .order_by(UserLessonProgress.completed_at.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars())

    async def create_lesson_progress(
        self, user: str, lesson_id: str, xp_awarded: int, now: datetime | None = None
    ) -> UserLessonProgress:
        """Record a lesson completion. Raises DuplicateLessonProgress if already recorded."""
        row_id = _new_id()
        inserted = await self._insert_ignore(UserLessonProgress, {
            "id": row_id,
            "user_address": user,
            "lesson_id": lesson_id,
            "completed_at": now or _utcnow(),
            "xp_awarded": xp_awarded,
            "reward_claimed": False,
        })
        if not inserted:
            raise DuplicateLessonProgress(f"{user}:{lesson_id}")
        return await self._fetch_one(UserLessonProgress, UserLessonProgress.id == row_id)

    # ------------------------------------------------------------------
    # Achievements
    # ------------------------------------------------------------------

    async def list_achievements(self) -> list[Achievement]:
        result = await self.session.execute(
            select(Achievement)
            .where(Achievement.is_active.is_(True))
            .order_by(Achievement.sort_order, Achievement.id)
        )
        return list(result.scalars())

    async def get_unlocked_achievements(self, user: str) -> list[UserAchievement]:
        result = await self.session.execute(
            select(UserAchievement)
            .where(UserAchievement.user_address == user)
            .order_by(UserAchievement.unlocked_at.asc())
        )
        return list(result.scalars())

    async def unlock_achievement(
        self, user: str, achievement_id: str, xp_awarded: int = 0, now: datetime | None = None
    ) -> bool:
        """Unlock an achievement. Returns False (no-op) if already unlocked."""
        return await self._insert_ignore(UserAchievement, {
            "id": _new_id(),
            "user_address": user,
            "achievement_id": achievement_id,
            "unlocked_at": now or _utcnow(),
            "xp_awarded": xp_awarded,
        })

    # ------------------------------------------------------------------
    # Daily challenges
    # ------------------------------------------------------------------

    async def list_daily_challenges(self) -> list[DailyChallenge]:
        result = await self.session.execute(
            select(DailyChallenge).where(DailyChallenge.is_active.is_(True)).order_by(DailyChallenge.id)
        )
        return list(result.scalars())

    async def get_daily_challenge_by_type(self, challenge_type: str) -> DailyChallenge | None:
        result = await self.session.execute(
            select(DailyChallenge)
            .where(
                DailyChallenge.challenge_type == challenge_type,
                DailyChallenge.is_active.is_(True),
            )
            .order_by(DailyChallenge.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_or_create_user_challenge(self, user: str, challenge_id: str, day: date) -> UserChallenge:
        await self._insert_ignore(UserChallenge, {
            "id": _new_id(),
            "user_address": user,
            "challenge_id": challenge_id,
            "date": day,
            "progress": 0,
            "completed": False,
            "reward_claimed": False,
            "expires_at": day_expiry(day),
        })
        return await self._fetch_one(
            UserChallenge,
            UserChallenge.user_address == user,
            UserChallenge.challenge_id == challenge_id,
            UserChallenge.date == day,
        )

    async def list_user_challenges(self, user: str, day: date) -> list[UserChallenge]:
        result = await self.session.execute(
            select(UserChallenge)
            .where(UserChallenge.user_address == user, UserChallenge.date == day)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars())

    async def update_user_challenge(self, challenge_row_id: str, **fields: Any) -> UserChallenge | None:
        await self._update(UserChallenge, [UserChallenge.id == challenge_row_id], fields)
        return await self._fetch_one(UserChallenge, UserChallenge.id == challenge_row_id)

    async def advance_user_challenge(
        self, challenge_row_id: str, increment: int, target: int, now: datetime | None = None
    ) -> tuple[UserChallenge, bool]:
        """Add ``increment`` to progress, then complete the row if it reached ``target``.

        The completion is a conditional UPDATE (``completed = false`` in the
        WHERE clause), so exactly one caller observes ``caused_completion``.
        """
        await self._update(
            UserChallenge,
            [UserChallenge.id == challenge_row_id],
            {"progress": UserChallenge.progress + increment},
        )
        changed = await self._update(
            UserChallenge,
            [
                UserChallenge.id == challenge_row_id,
                UserChallenge.completed.is_(False),
                UserChallenge.progress >= target,
            ],
            {"completed": True, "completed_at": now or _utcnow()},
        )
        row = await self._fetch_one(UserChallenge, UserChallenge.id == challenge_row_id)
        return row, changed == 1

    # ------------------------------------------------------------------
    # Legacy daily tasks
    # ------------------------------------------------------------------

    async def list_daily_tasks(self) -> list[DailyTask]:
        result = await self.session.execute(
            select(DailyTask).where(DailyTask.is_active.is_(True)).order_by(DailyTask.id)
        )
        return list(result.scalars())

    async def list_daily_tasks_by_type(self, task_type: str) -> list[DailyTask]:
        result = await self.session.execute(
            select(DailyTask)
            .where(DailyTask.task_type == task_type, DailyTask.is_active.is_(True))
            .order_by(DailyTask.id)
        )
        return list(result.scalars())

    async def get_or_create_user_daily_task(self, user: str, task_id: str, day: date) -> UserDailyTask:
        await self._insert_ignore(UserDailyTask, {
            "id": _new_id(),
            "user_address": user,
            "task_id": task_id,
            "date": day,
            "progress": 0,
            "completed": False,
            "reward_claimed": False,
        })
        return await self._fetch_one(
            UserDailyTask,
            UserDailyTask.user_address == user,
            UserDailyTask.task_id == task_id,
            UserDailyTask.date == day,
        )

    async def list_user_daily_tasks(self, user: str, day: date) -> list[UserDailyTask]:
        result = await self.session.execute(
            select(UserDailyTask)
            .where(UserDailyTask.user_address == user, UserDailyTask.date == day)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars())

    async def advance_user_daily_task(
        self, task_row_id: str, increment: int, target: int, now: datetime | None = None
    ) -> tuple[UserDailyTask, bool]:
        """Same transition contract as advance_user_challenge, for legacy tasks."""
        await self._update(
            UserDailyTask,
            [UserDailyTask.id == task_row_id],
            {"progress": UserDailyTask.progress + increment},
        )
        changed = await self._update(
            UserDailyTask,
            [
                UserDailyTask.id == task_row_id,
                UserDailyTask.completed.is_(False),
                UserDailyTask.progress >= target,
            ],
            {"completed": True, "completed_at": now or _utcnow()},
        )
        row = await self._fetch_one(UserDailyTask, UserDailyTask.id == task_row_id)
        return row, changed == 1

    # ------------------------------------------------------------------
    # Check-ins
    # ------------------------------------------------------------------

    async def get_checkin(self, user: str, day: date) -> DailyCheckin | None:
        return await self._fetch_one(
            DailyCheckin,
            DailyCheckin.user_address == user,
            DailyCheckin.date == day,
        )

    async def create_checkin(
        self,
        user: str,
        day: date,
        *,
        reward_amount: Decimal = Decimal("0"),
        consecutive_days: int = 1,
        xp_awarded: int = 0,
        now: datetime | None = None,
    ) -> DailyCheckin:
        """Insert today's check-in. Raises DuplicateCheckin if one exists for ``day``."""
        row_id = _new_id()
        inserted = await self._insert_ignore(DailyCheckin, {
            "id": row_id,
            "user_address": user,
            "date": day,
            "checked_in_at": now or _utcnow(),
            "reward_amount": reward_amount,
            "consecutive_days": consecutive_days,
            "xp_awarded": xp_awarded,
            "reward_claimed": False,
        })
        if not inserted:
            raise DuplicateCheckin(f"{user}:{day.isoformat()}")
        return await self._fetch_one(DailyCheckin, DailyCheckin.id == row_id)

    async def update_checkin(self, checkin_id: str, **fields: Any) -> DailyCheckin | None:
        await self._update(DailyCheckin, [DailyCheckin.id == checkin_id], fields)
        return await self._fetch_one(DailyCheckin, DailyCheckin.id == checkin_id)

    async def list_checkin_dates(self, user: str) -> list[date]:
        """All check-in dates for a user, ascending."""
        result = await self.session.execute(
            select(DailyCheckin.date)
            .where(DailyCheckin.user_address == user)
            .order_by(DailyCheckin.date.asc())
        )
        return list(result.scalars())

    # ------------------------------------------------------------------
    # Reward transactions
    # ------------------------------------------------------------------

    async def create_reward_transaction(
        self,
        user: str,
        reward_type: str,
        reward_id: str | None,
        amount: Decimal,
        now: datetime | None = None,
    ) -> RewardTransaction:
        """Queue a pending payout. The amount is fixed here and never recomputed."""
        if reward_type not in REWARD_TYPES:
            raise ValueError(f"Unknown reward type: {reward_type}")
        tx = RewardTransaction(
            id=_new_id(),
            user_address=user,
            reward_type=reward_type,
            reward_id=reward_id,
            amount=Decimal(amount),
            status="pending",
            attempts=0,
            created_at=now or _utcnow(),
        )
        self.session.add(tx)
        await self.session.flush()
        return tx

    async def get_reward_transaction(self, tx_id: str) -> RewardTransaction | None:
        return await self._fetch_one(RewardTransaction, RewardTransaction.id == tx_id)

    async def update_reward_transaction(
        self,
        tx_id: str,
        status: str,
        *,
        transaction_hash: str | None = None,
        sent_at: datetime | None = None,
        error: str | None = None,
        next_attempt_at: datetime | None = None,
        count_attempt: bool = True,
    ) -> bool:
        """Move a pending or failed transaction to 'sent' or 'failed'.

        'sent' requires a hash and a timestamp; 'failed' clears both. Either
        way the in-flight marker is cleared. Rows already 'sent' are never
        touched. Returns True if the row changed.
        """
        if status == "sent":
            if not transaction_hash or sent_at is None:
                raise ValueError("A sent reward needs transaction_hash and sent_at")
            values: dict[str, Any] = {
                "status": "sent",
                "transaction_hash": transaction_hash,
                "sent_at": sent_at,
                "last_error": None,
                "next_attempt_at": None,
            }
        elif status == "failed":
            values = {
                "status": "failed",
                "transaction_hash": None,
                "sent_at": None,
                "last_error": error,
                "next_attempt_at": next_attempt_at,
            }
        else:
            raise ValueError(f"Invalid status transition target: {status}")

        values["sending_started_at"] = None
        if count_attempt:
            values["attempts"] = RewardTransaction.attempts + 1
        changed = await self._update(
            RewardTransaction,
            [RewardTransaction.id == tx_id, RewardTransaction.status.in_(RETRYABLE_STATUSES)],
            values,
        )
        return changed == 1

    async def begin_send(self, tx_id: str, now: datetime | None = None) -> bool:
        """Mark a queued transaction as in flight. False if it is no longer sendable.

        Must be committed before the transfer is submitted, so a row whose
        outcome was never written cannot re-enter the queue as plain pending.
        """
        changed = await self._update(
            RewardTransaction,
            [
                RewardTransaction.id == tx_id,
                RewardTransaction.status.in_(RETRYABLE_STATUSES),
                RewardTransaction.sending_started_at.is_(None),
            ],
            {"sending_started_at": now or _utcnow()},
        )
        return changed == 1

    async def list_in_flight_reward_transactions(self) -> list[RewardTransaction]:
        """Sends whose outcome was never recorded; these need manual reconciliation."""
        result = await self.session.execute(
            select(RewardTransaction)
            .where(
                RewardTransaction.status.in_(RETRYABLE_STATUSES),
                RewardTransaction.sending_started_at.is_not(None),
            )
            .order_by(RewardTransaction.sending_started_at.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars())

    async def list_pending_reward_transactions(
        self,
        now: datetime | None = None,
        *,
        include_failed: bool = False,
        max_attempts: int | None = None,
    ) -> list[RewardTransaction]:
        """Payout queue, oldest first.

        With ``include_failed`` the queue also holds failed rows with a scheduled
        retry whose backoff has elapsed and that have attempts left. A failed
        row without ``next_attempt_at`` is terminal.
        """
        now = now or _utcnow()
        condition = RewardTransaction.status == "pending"
        if include_failed:
            retry_due = (
                (RewardTransaction.status == "failed")
                & RewardTransaction.next_attempt_at.is_not(None)
                & (RewardTransaction.next_attempt_at <= now)
            )
            if max_attempts is not None:
                retry_due = retry_due & (RewardTransaction.attempts < max_attempts)
            condition = or_(condition, retry_due)

        result = await self.session.execute(
            select(RewardTransaction)
            .where(condition, RewardTransaction.sending_started_at.is_(None))
            .order_by(RewardTransaction.created_at.asc(), RewardTransaction.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars())

    async def list_reward_transactions(self, user: str) -> list[RewardTransaction]:
        result = await self.session.execute(
            select(RewardTransaction)
            .where(RewardTransaction.user_address == user)
            .order_by(RewardTransaction.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars())

    async def mark_reward_claimed(self, tx: RewardTransaction, now: datetime | None = None) -> bool:
        """Set reward_claimed on the row that produced ``tx``. Safe to repeat."""
        model = _CLAIM_TABLES.get(tx.reward_type)
        if model is None or not tx.reward_id:
            return False
        changed = await self._update(
            model,
            [model.id == tx.reward_id, model.reward_claimed.is_(False)],  # type: ignore[attr-defined]
            {"reward_claimed": True, "claimed_at": now or _utcnow()},
        )
        return changed == 1

    async def propagate_claims(self, now: datetime | None = None) -> int:
        """Set reward_claimed on every originating row whose payout is already 'sent'.

        Covers claim writes lost after a crash. Returns the number of rows updated.
        """
        now = now or _utcnow()
        total = 0
        for reward_type, model in _CLAIM_TABLES.items():
            sent_ids = select(RewardTransaction.reward_id).where(
                RewardTransaction.reward_type == reward_type,
                RewardTransaction.status == "sent",
                RewardTransaction.reward_id.is_not(None),
            )
            total += await self._update(
                model,
                [model.reward_claimed.is_(False), model.id.in_(sent_ids)],  # type: ignore[attr-defined]
                {"reward_claimed": True, "claimed_at": now},
            )
        return total

    # ------------------------------------------------------------------
    # Server wallet
    # ------------------------------------------------------------------

    async def record_server_wallet_balance(
        self, address: str, balance: Decimal, now: datetime | None = None
    ) -> ServerWallet:
        now = now or _utcnow()
        wallet = await self._fetch_one(ServerWallet, ServerWallet.address == address)
        if wallet is None:
            wallet = ServerWallet(address=address, balance=balance, last_updated=now)
            self.session.add(wallet)
        else:
            wallet.balance = balance
            wallet.last_updated = now
        await self.session.flush()
        return wallet

    async def get_server_wallet(self) -> ServerWallet | None:
        result = await self.session.execute(
            select(ServerWallet).order_by(ServerWallet.last_updated.desc()).limit(1)
        )
        return result.scalar_one_or_none()
