"""ORM models for the reward ledger.

Catalog tables (lessons, achievements, daily_challenges, daily_tasks) are
seeded at startup and read-only at runtime. Per-user tables carry the
uniqueness constraints the action recorder relies on for idempotency.
"""

from __future__ import annotations

import datetime as dt
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from paxrewards.db.base import Base
from paxrewards.db.types import PaxAmount


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# User progression
# ---------------------------------------------------------------------------


class UserStats(Base):
    """Denormalized progression summary: single row per wallet address."""

    __tablename__ = "user_stats"

    user_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_earned: Mapped[Decimal] = mapped_column(
        PaxAmount, nullable=False, default=Decimal("0"), server_default="0"
    )
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    lessons_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    challenges_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_check_in: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_activity: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Lessons
# ---------------------------------------------------------------------------


class Lesson(Base):
    """Lesson catalog entry: difficulty drives XP, reward_amount is the PAX payout."""

    __tablename__ = "lessons"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    difficulty: Mapped[str] = mapped_column(String(16), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="basics")
    reward_amount: Mapped[Decimal] = mapped_column(PaxAmount, nullable=False)
    estimated_time: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class UserLessonProgress(Base):
    """Lesson completion: UNIQUE(user_address, lesson_id) prevents double completion."""

    __tablename__ = "user_lesson_progress"
    __table_args__ = (
        UniqueConstraint("user_address", "lesson_id", name="uq_user_lesson_progress_user_lesson"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    lesson_id: Mapped[str] = mapped_column(String(64), nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reward_claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class Achievement(Base):
    """Achievement catalog. requirement is {"type": ..., "value": ...}."""

    __tablename__ = "achievements"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str | None] = mapped_column(String(16), nullable=True)
    requirement: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    reward_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class UserAchievement(Base):
    """Unlocked achievements: append-only, UNIQUE(user_address, achievement_id)."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_address", "achievement_id", name="uq_user_achievements_user_achievement"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    achievement_id: Mapped[str] = mapped_column(String(64), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ---------------------------------------------------------------------------
# Daily challenges
# ---------------------------------------------------------------------------


class DailyChallenge(Base):
    """Daily challenge catalog: one active challenge per challenge_type."""

    __tablename__ = "daily_challenges"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    challenge_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    reward_amount: Mapped[Decimal] = mapped_column(PaxAmount, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    target: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class UserChallenge(Base):
    """Per-day challenge progress: UNIQUE(user_address, challenge_id, date)."""

    __tablename__ = "user_challenges"
    __table_args__ = (
        UniqueConstraint("user_address", "challenge_id", "date", name="uq_user_challenges_user_challenge_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    challenge_id: Mapped[str] = mapped_column(String(64), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reward_claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Legacy daily tasks
# ---------------------------------------------------------------------------


class DailyTask(Base):
    """Legacy daily task catalog (pre-challenge rewards)."""

    __tablename__ = "daily_tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    task_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    reward_amount: Mapped[Decimal] = mapped_column(PaxAmount, nullable=False)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class UserDailyTask(Base):
    """Per-day legacy task progress: UNIQUE(user_address, task_id, date)."""

    __tablename__ = "user_daily_tasks"
    __table_args__ = (
        UniqueConstraint("user_address", "task_id", "date", name="uq_user_daily_tasks_user_task_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    task_id: Mapped[str] = mapped_column(String(64), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reward_claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Check-ins
# ---------------------------------------------------------------------------


class DailyCheckin(Base):
    """Daily check-in: UNIQUE(user_address, date) enforces once per day."""

    __tablename__ = "daily_checkins"
    __table_args__ = (
        UniqueConstraint("user_address", "date", name="uq_daily_checkins_user_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    checked_in_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reward_amount: Mapped[Decimal] = mapped_column(PaxAmount, nullable=False, default=Decimal("0"))
    consecutive_days: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reward_claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Payout ledger
# ---------------------------------------------------------------------------


class RewardTransaction(Base):
    """Pending/sent/failed native-token payout.

    amount is fixed at creation. transaction_hash and sent_at are only set on
    the transition to 'sent'. sending_started_at marks a send in flight; such
    a row stays out of the payout queue until it is resolved to sent or failed.
    """

    __tablename__ = "reward_transactions"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'sent', 'failed')", name="status"),
        CheckConstraint(
            "(status = 'sent') = (transaction_hash IS NOT NULL AND sent_at IS NOT NULL)",
            name="sent_fields",
        ),
        Index("ix_reward_transactions_status_created", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    reward_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reward_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount: Mapped[Decimal] = mapped_column(PaxAmount, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")
    transaction_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sending_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ServerWallet(Base):
    """Last observed balance of the custodial payout wallet. The key is never stored."""

    __tablename__ = "server_wallet"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    balance: Mapped[Decimal] = mapped_column(PaxAmount, nullable=False, default=Decimal("0"))
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
