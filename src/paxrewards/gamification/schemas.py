"""Pydantic request/response models for reward endpoints."""

from __future__ import annotations

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# --- Requests ---


class ChallengeProgressRequest(BaseModel):
    challenge_type: str = Field(min_length=1, max_length=32)
    increment: int = 1


class TrackTaskRequest(BaseModel):
    task_type: str = Field(min_length=1, max_length=32)


# --- Progression ---


class LevelProgress(BaseModel):
    level: int
    xp_into_level: int
    xp_for_level: int
    xp_to_next_level: int
    next_level: int
    progress_percentage: int


class PayoutBucket(BaseModel):
    count: int = 0
    amount: Decimal = Decimal("0")


class UserStatsResponse(BaseModel):
    user_address: str
    level: int
    xp: int
    total_earned: Decimal
    streak: int
    lessons_completed: int
    challenges_completed: int
    last_check_in: dt.date | None = None
    level_progress: LevelProgress
    payout_status: dict[str, PayoutBucket]


# --- Catalog ---


class LessonResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    difficulty: str
    category: str
    reward_amount: Decimal
    estimated_time: str | None = None


class AchievementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    icon: str | None = None
    requirement: dict[str, Any]
    reward_xp: int


class UserAchievementResponse(AchievementResponse):
    unlocked: bool = False
    unlocked_at: datetime | None = None


class ChallengeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    challenge_type: str
    reward_amount: Decimal
    xp_reward: int
    target: int


class UserChallengeResponse(ChallengeResponse):
    date: dt.date
    progress: int = 0
    completed: bool = False
    reward_claimed: bool = False


class LessonProgressResponse(BaseModel):
    lesson_id: str
    title: str
    reward_amount: Decimal
    completed: bool = False
    completed_at: datetime | None = None
    xp_awarded: int = 0
    reward_claimed: bool = False


class UserDailyTaskResponse(BaseModel):
    id: str
    title: str
    description: str
    task_type: str
    reward_amount: Decimal
    target_value: int
    date: dt.date
    progress: int = 0
    completed: bool = False
    reward_claimed: bool = False


# --- Rewards ---


class RewardTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    reward_type: str
    reward_id: str | None = None
    amount: Decimal
    status: str
    transaction_hash: str | None = None
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime
    sent_at: datetime | None = None


class RewardTransactionsResponse(BaseModel):
    transactions: list[RewardTransactionResponse]
    total: int


class ActionResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_address: str
    xp_awarded: int
    level_before: int
    level_after: int
    leveled_up: bool
    new_achievements: list[str] = []
    reward_transaction_ids: list[str] = []
    completed_challenges: list[str] = []
    details: dict[str, Any] = {}
