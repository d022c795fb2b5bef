"""Action recorder: turns user learning actions into XP, achievements and pending payouts.

Every mutating call runs in the caller's session and commits once at the end,
so an action's XP, counters, achievement unlocks and reward rows land
together. Duplicate signals are rejected by the store's unique inserts and
conditional updates; nothing here takes an application lock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from paxrewards.config import Settings
from paxrewards.errors import (
    AlreadyCheckedInToday,
    AlreadyCompleted,
    DuplicateCheckin,
    DuplicateLessonProgress,
    InvalidIncrement,
    InvalidRequirement,
    LessonNotFound,
)
from paxrewards.gamification.events import (
    ACHIEVEMENT_UNLOCKED_CHANNEL,
    LEVEL_UP_CHANNEL,
    publish_event,
)
from paxrewards.gamification.level_thresholds import compute_level, lesson_xp
from paxrewards.gamification.requirements import evaluate_achievement, parse_requirement
from paxrewards.gamification.streaks import checkin_reward, checkin_xp, consecutive_checkins, utc_today
from paxrewards.ledger.store import LedgerStore

logger = logging.getLogger(__name__)

LESSON_CHALLENGE_TYPE = "lesson"
CHECKIN_CHALLENGE_TYPE = "daily_checkin"


@dataclass
class ActionResult:
    """Outcome of one recorded action."""

    user_address: str
    xp_awarded: int = 0
    level_before: int = 1
    level_after: int = 1
    new_achievements: list[str] = field(default_factory=list)
    reward_transaction_ids: list[str] = field(default_factory=list)
    completed_challenges: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def leveled_up(self) -> bool:
        return self.level_after > self.level_before


class ActionRecorder:
    """Records user actions against the ledger store."""

    def __init__(self, session: AsyncSession, settings: Settings, redis: object | None = None) -> None:
        self.session = session
        self.settings = settings
        self.redis = redis
        self.store = LedgerStore(session)

    # ------------------------------------------------------------------
    # Mutating actions
    # ------------------------------------------------------------------

    async def complete_lesson(self, user: str, lesson_id: str, now: datetime | None = None) -> ActionResult:
        """Record a lesson completion.

        Raises LessonNotFound for unknown or inactive lessons and
        AlreadyCompleted when the user finished this lesson before.
        """
        now = now or datetime.now(timezone.utc)
        lesson = await self.store.get_lesson(lesson_id)
        if lesson is None or not lesson.is_active:
            raise LessonNotFound(lesson_id)

        stats = await self.store.get_or_create_user_stats(user, now)
        result = ActionResult(user_address=user, level_before=stats.level, level_after=stats.level)

        xp = lesson_xp(lesson.difficulty)
        try:
            progress = await self.store.create_lesson_progress(user, lesson_id, xp, now)
        except DuplicateLessonProgress:
            raise AlreadyCompleted(lesson_id) from None

        await self.store.increment_user_stats(
            user,
            xp=xp,
            lessons_completed=1,
            total_earned=lesson.reward_amount,
            now=now,
        )
        result.xp_awarded += xp

        tx = await self.store.create_reward_transaction(user, "lesson", progress.id, lesson.reward_amount, now)
        result.reward_transaction_ids.append(tx.id)
        result.details = {"lesson_id": lesson_id, "reward_amount": lesson.reward_amount}

        await self._advance_challenge(user, LESSON_CHALLENGE_TYPE, 1, now, result)
        await self._evaluate_achievements(user, now, result)
        return await self._finish(result)

    async def daily_checkin(self, user: str, now: datetime | None = None) -> ActionResult:
        """Record today's check-in. Raises AlreadyCheckedInToday on a repeat."""
        now = now or datetime.now(timezone.utc)
        today = utc_today(now)

        stats = await self.store.get_or_create_user_stats(user, now)
        result = ActionResult(user_address=user, level_before=stats.level, level_after=stats.level)

        history = [d for d in await self.store.list_checkin_dates(user) if d < today]
        streak = consecutive_checkins([*history, today])
        reward = checkin_reward(streak, self.settings.checkin_base_reward, self.settings.checkin_streak_increment)
        xp = checkin_xp(
            streak,
            self.settings.checkin_base_xp,
            self.settings.checkin_xp_per_day,
            self.settings.checkin_xp_cap,
        )

        try:
            checkin = await self.store.create_checkin(
                user,
                today,
                reward_amount=reward,
                consecutive_days=streak,
                xp_awarded=xp,
                now=now,
            )
        except DuplicateCheckin:
            raise AlreadyCheckedInToday(today) from None

        await self.store.increment_user_stats(
            user,
            xp=xp,
            total_earned=reward,
            now=now,
            streak=streak,
            last_check_in=today,
        )
        result.xp_awarded += xp

        tx = await self.store.create_reward_transaction(user, "checkin", checkin.id, reward, now)
        result.reward_transaction_ids.append(tx.id)
        result.details = {"streak": streak, "reward_amount": reward, "date": today.isoformat()}

        await self._advance_challenge(user, CHECKIN_CHALLENGE_TYPE, 1, now, result)
        await self._evaluate_achievements(user, now, result)
        return await self._finish(result)

    async def update_challenge_progress(
        self,
        user: str,
        challenge_type: str,
        increment: int = 1,
        now: datetime | None = None,
    ) -> ActionResult:
        """Advance today's challenge of ``challenge_type``.

        No active challenge of that type is a successful no-op.
        """
        if increment < 1:
            raise InvalidIncrement(increment)
        now = now or datetime.now(timezone.utc)

        stats = await self.store.get_user_stats(user)
        level = stats.level if stats else 1
        result = ActionResult(user_address=user, level_before=level, level_after=level)

        if not await self._advance_challenge(user, challenge_type, increment, now, result):
            return result
        await self._evaluate_achievements(user, now, result)
        return await self._finish(result)

    async def track_daily_task(self, user: str, task_type: str, now: datetime | None = None) -> ActionResult:
        """Advance every active legacy daily task of ``task_type`` by one."""
        now = now or datetime.now(timezone.utc)
        today = utc_today(now)

        stats = await self.store.get_user_stats(user)
        level = stats.level if stats else 1
        result = ActionResult(user_address=user, level_before=level, level_after=level)

        for task in await self.store.list_daily_tasks_by_type(task_type):
            row = await self.store.get_or_create_user_daily_task(user, task.id, today)
            if row.completed:
                continue
            row, completed = await self.store.advance_user_daily_task(row.id, 1, task.target_value, now)
            if completed:
                tx = await self.store.create_reward_transaction(user, "daily_task", row.id, task.reward_amount, now)
                result.reward_transaction_ids.append(tx.id)
                logger.info("User %s completed daily task %s", user, task.id)

        return await self._finish(result)

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    async def get_stats(self, user: str) -> dict[str, Any]:
        """Stats, level progress and a payout summary. Does not create rows."""
        stats = await self.store.get_user_stats(user)
        xp = stats.xp if stats else 0

        payouts: dict[str, dict[str, Any]] = {
            status: {"count": 0, "amount": Decimal("0")} for status in ("pending", "sent", "failed")
        }
        for tx in await self.store.list_reward_transactions(user):
            bucket = payouts.setdefault(tx.status, {"count": 0, "amount": Decimal("0")})
            bucket["count"] += 1
            bucket["amount"] += tx.amount

        return {
            "user_address": user,
            "level": stats.level if stats else 1,
            "xp": xp,
            "total_earned": stats.total_earned if stats else Decimal("0"),
            "streak": stats.streak if stats else 0,
            "lessons_completed": stats.lessons_completed if stats else 0,
            "challenges_completed": stats.challenges_completed if stats else 0,
            "last_check_in": stats.last_check_in if stats else None,
            "level_progress": compute_level(xp),
            "payout_status": payouts,
        }

    async def get_achievements(self, user: str) -> list[dict[str, Any]]:
        unlocked = {ua.achievement_id: ua for ua in await self.store.get_unlocked_achievements(user)}
        items = []
        for achievement in await self.store.list_achievements():
            ua = unlocked.get(achievement.id)
            items.append({
                "id": achievement.id,
                "title": achievement.title,
                "description": achievement.description,
                "icon": achievement.icon,
                "requirement": achievement.requirement,
                "reward_xp": achievement.reward_xp,
                "unlocked": ua is not None,
                "unlocked_at": ua.unlocked_at if ua else None,
            })
        return items

    async def get_challenges(self, user: str, day: date | None = None) -> list[dict[str, Any]]:
        """Active challenges with the user's progress for ``day`` (default today)."""
        day = day or utc_today()
        rows = {uc.challenge_id: uc for uc in await self.store.list_user_challenges(user, day)}
        items = []
        for challenge in await self.store.list_daily_challenges():
            uc = rows.get(challenge.id)
            items.append({
                "id": challenge.id,
                "title": challenge.title,
                "description": challenge.description,
                "challenge_type": challenge.challenge_type,
                "reward_amount": challenge.reward_amount,
                "xp_reward": challenge.xp_reward,
                "target": challenge.target,
                "date": day,
                "progress": uc.progress if uc else 0,
                "completed": uc.completed if uc else False,
                "reward_claimed": uc.reward_claimed if uc else False,
            })
        return items

    async def get_reward_transactions(self, user: str) -> list[Any]:
        return await self.store.list_reward_transactions(user)

    async def get_lesson(self, lesson_id: str) -> Any:
        """Active lesson by id. Raises LessonNotFound otherwise."""
        lesson = await self.store.get_lesson(lesson_id)
        if lesson is None or not lesson.is_active:
            raise LessonNotFound(lesson_id)
        return lesson

    async def get_lesson_progress(self, user: str) -> list[dict[str, Any]]:
        """Every active lesson with the user's completion and claim state."""
        done = {p.lesson_id: p for p in await self.store.list_lesson_progress(user)}
        items = []
        for lesson in await self.store.list_lessons():
            progress = done.get(lesson.id)
            items.append({
                "lesson_id": lesson.id,
                "title": lesson.title,
                "reward_amount": lesson.reward_amount,
                "completed": progress is not None,
                "completed_at": progress.completed_at if progress else None,
                "xp_awarded": progress.xp_awarded if progress else 0,
                "reward_claimed": progress.reward_claimed if progress else False,
            })
        return items

    async def get_daily_tasks(self, user: str, day: date | None = None) -> list[dict[str, Any]]:
        """Active legacy daily tasks with the user's progress for ``day`` (default today)."""
        day = day or utc_today()
        rows = {ut.task_id: ut for ut in await self.store.list_user_daily_tasks(user, day)}
        items = []
        for task in await self.store.list_daily_tasks():
            ut = rows.get(task.id)
            items.append({
                "id": task.id,
                "title": task.title,
                "description": task.description,
                "task_type": task.task_type,
                "reward_amount": task.reward_amount,
                "target_value": task.target_value,
                "date": day,
                "progress": ut.progress if ut else 0,
                "completed": ut.completed if ut else False,
                "reward_claimed": ut.reward_claimed if ut else False,
            })
        return items

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _advance_challenge(
        self,
        user: str,
        challenge_type: str,
        increment: int,
        now: datetime,
        result: ActionResult,
    ) -> bool:
        """Advance the active challenge of a type. False when none exists."""
        challenge = await self.store.get_daily_challenge_by_type(challenge_type)
        if challenge is None:
            return False

        row = await self.store.get_or_create_user_challenge(user, challenge.id, utc_today(now))
        row, completed = await self.store.advance_user_challenge(row.id, increment, challenge.target, now)
        result.details.setdefault("challenge_progress", {})[challenge.id] = row.progress
        if not completed:
            return True

        await self.store.increment_user_stats(
            user,
            xp=challenge.xp_reward,
            challenges_completed=1,
            total_earned=challenge.reward_amount,
            now=now,
        )
        result.xp_awarded += challenge.xp_reward
        tx = await self.store.create_reward_transaction(
            user, "daily_challenge", row.id, challenge.reward_amount, now
        )
        result.reward_transaction_ids.append(tx.id)
        result.completed_challenges.append(challenge.id)
        logger.info("User %s completed challenge %s", user, challenge.id)
        return True

    async def _evaluate_achievements(self, user: str, now: datetime, result: ActionResult) -> None:
        """Unlock every satisfied achievement, repeating until nothing new unlocks."""
        achievements = await self.store.list_achievements()
        total_lessons = await self.store.count_active_lessons()
        unlocked = {ua.achievement_id for ua in await self.store.get_unlocked_achievements(user)}
        stats = await self.store.get_or_create_user_stats(user, now)

        while True:
            newly = []
            for achievement in achievements:
                if achievement.id in unlocked:
                    continue
                try:
                    requirement = parse_requirement(achievement.requirement)
                except InvalidRequirement:
                    logger.warning("Skipping achievement %s with invalid requirement", achievement.id)
                    unlocked.add(achievement.id)
                    continue
                if not evaluate_achievement(requirement, stats, total_lessons):
                    continue
                unlocked.add(achievement.id)
                if await self.store.unlock_achievement(user, achievement.id, achievement.reward_xp, now):
                    newly.append(achievement)

            if not newly:
                return

            bonus = sum(a.reward_xp for a in newly)
            if bonus:
                stats = await self.store.increment_user_stats(user, xp=bonus, now=now)
            result.xp_awarded += bonus
            result.new_achievements.extend(a.id for a in newly)

    async def _finish(self, result: ActionResult) -> ActionResult:
        stats = await self.store.get_user_stats(result.user_address)
        if stats is not None:
            result.level_after = stats.level
        await self.session.commit()

        if result.leveled_up:
            await publish_event(self.redis, LEVEL_UP_CHANNEL, {
                "user_address": result.user_address,
                "old_level": result.level_before,
                "new_level": result.level_after,
            })
        for achievement_id in result.new_achievements:
            await publish_event(self.redis, ACHIEVEMENT_UNLOCKED_CHANNEL, {
                "user_address": result.user_address,
                "achievement_id": achievement_id,
            })
        return result
