"""Catalog seed data: lessons, achievements, daily challenges and legacy daily tasks."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from paxrewards.db.models import Achievement, DailyChallenge, DailyTask, Lesson

logger = logging.getLogger(__name__)

LESSON_SEED_DATA: list[dict] = [
    {
        "id": "intro-crypto",
        "title": "What is Cryptocurrency?",
        "description": "Learn the basics of digital currency and blockchain",
        "difficulty": "beginner",
        "category": "basics",
        "estimated_time": "2 min",
        "reward_amount": Decimal("10"),
    },
    {
        "id": "paxeer-network",
        "title": "Understanding Paxeer Network",
        "description": "Discover what makes Paxeer special in the crypto world",
        "difficulty": "beginner",
        "category": "paxeer",
        "estimated_time": "2 min",
        "reward_amount": Decimal("10"),
    },
    {
        "id": "defi-basics",
        "title": "DeFi Fundamentals",
        "description": "Learn about Decentralized Finance and its benefits",
        "difficulty": "intermediate",
        "category": "defi",
        "estimated_time": "2 min",
        "reward_amount": Decimal("10"),
    },
    {
        "id": "wallet-security",
        "title": "Keeping Your Crypto Safe",
        "description": "Essential security practices for crypto users",
        "difficulty": "beginner",
        "category": "security",
        "estimated_time": "2 min",
        "reward_amount": Decimal("10"),
    },
    {
        "id": "trading-basics",
        "title": "Smart Trading Strategies",
        "description": "Learn fundamental trading concepts and risk management",
        "difficulty": "intermediate",
        "category": "trading",
        "estimated_time": "2 min",
        "reward_amount": Decimal("10"),
    },
    {
        "id": "yield-farming",
        "title": "Earning with Yield Farming",
        "description": "Understand how to earn passive income in DeFi",
        "difficulty": "advanced",
        "category": "defi",
        "estimated_time": "2 min",
        "reward_amount": Decimal("10"),
    },
]

ACHIEVEMENT_SEED_DATA: list[dict] = [
    {
        "id": "first_lesson",
        "title": "First Steps",
        "description": "Complete your first lesson",
        "icon": "\U0001f393",
        "reward_xp": 50,
        "requirement": {"type": "lessons_completed", "value": 1},
        "sort_order": 1,
    },
    {
        "id": "lesson_master",
        "title": "Lesson Master",
        "description": "Complete 10 lessons",
        "icon": "\U0001f4da",
        "reward_xp": 200,
        "requirement": {"type": "lessons_completed", "value": 10},
        "sort_order": 2,
    },
    {
        "id": "streak_starter",
        "title": "Streak Starter",
        "description": "Maintain a 3-day check-in streak",
        "icon": "\U0001f525",
        "reward_xp": 100,
        "requirement": {"type": "daily_streak", "value": 3},
        "sort_order": 3,
    },
    {
        "id": "dedicated_learner",
        "title": "Dedicated Learner",
        "description": "Maintain a 7-day check-in streak",
        "icon": "\U0001f4aa",
        "reward_xp": 300,
        "requirement": {"type": "daily_streak", "value": 7},
        "sort_order": 4,
    },
    {
        "id": "crypto_guru",
        "title": "Crypto Guru",
        "description": "Complete all available lessons",
        "icon": "\U0001f9d9",
        "reward_xp": 500,
        "requirement": {"type": "all_lessons_completed", "value": 1},
        "sort_order": 5,
    },
    {
        "id": "level_up",
        "title": "Level Up",
        "description": "Reach level 5",
        "icon": "⭐",
        "reward_xp": 250,
        "requirement": {"type": "level_reached", "value": 5},
        "sort_order": 6,
    },
    {
        "id": "challenge_champion",
        "title": "Challenge Champion",
        "description": "Complete 5 daily challenges",
        "icon": "\U0001f3c6",
        "reward_xp": 150,
        "requirement": {"type": "challenges_completed", "value": 5},
        "sort_order": 7,
    },
]

CHALLENGE_SEED_DATA: list[dict] = [
    {
        "id": "daily_checkin",
        "title": "Daily Check-in",
        "description": "Check in to the app today",
        "challenge_type": "daily_checkin",
        "reward_amount": Decimal("1"),
        "xp_reward": 10,
        "target": 1,
    },
    {
        "id": "complete_lesson",
        "title": "Learn Something New",
        "description": "Complete a lesson today",
        "challenge_type": "lesson",
        "reward_amount": Decimal("5"),
        "xp_reward": 25,
        "target": 1,
    },
    {
        "id": "swap_tokens",
        "title": "Trade Smart",
        "description": "Make a token swap today",
        "challenge_type": "swap",
        "reward_amount": Decimal("3"),
        "xp_reward": 20,
        "target": 1,
    },
    {
        "id": "check_portfolio",
        "title": "Portfolio Review",
        "description": "Check your portfolio balance",
        "challenge_type": "portfolio_view",
        "reward_amount": Decimal("2"),
        "xp_reward": 15,
        "target": 1,
    },
]

DAILY_TASK_SEED_DATA: list[dict] = [
    {
        "id": "daily_swap",
        "title": "Daily Swap",
        "description": "Swap tokens once today",
        "task_type": "swap",
        "reward_amount": Decimal("1"),
        "target_value": 1,
    },
    {
        "id": "daily_send",
        "title": "Send a Payment",
        "description": "Send PAX to another wallet",
        "task_type": "send",
        "reward_amount": Decimal("0.5"),
        "target_value": 1,
    },
]


async def _upsert(db: AsyncSession, model: type, rows: list[dict]) -> int:
    table = model.__table__  # type: ignore[attr-defined]
    insert = sqlite_insert if db.get_bind().dialect.name == "sqlite" else pg_insert
    for row in rows:
        values = {"is_active": True, **row}
        stmt = insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={key: stmt.excluded[key] for key in values if key != "id"},
        )
        await db.execute(stmt)
    return len(rows)


async def seed_catalog(db: AsyncSession) -> dict[str, int]:
    """Upsert every catalog row. Safe to run on each startup."""
    counts = {
        "lessons": await _upsert(db, Lesson, LESSON_SEED_DATA),
        "achievements": await _upsert(db, Achievement, ACHIEVEMENT_SEED_DATA),
        "daily_challenges": await _upsert(db, DailyChallenge, CHALLENGE_SEED_DATA),
        "daily_tasks": await _upsert(db, DailyTask, DAILY_TASK_SEED_DATA),
    }
    await db.commit()
    logger.info("Seeded reward catalog: %s", counts)
    return counts
