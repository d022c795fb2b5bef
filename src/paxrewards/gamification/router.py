"""Reward API endpoints: thin adapter over the action recorder."""

from __future__ import annotations

import datetime as dt

from eth_utils import is_address, to_checksum_address
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from paxrewards.dependencies import get_db, get_recorder
from paxrewards.gamification.recorder import ActionRecorder
from paxrewards.gamification.schemas import (
    AchievementResponse,
    ActionResultResponse,
    ChallengeProgressRequest,
    ChallengeResponse,
    LessonProgressResponse,
    LessonResponse,
    RewardTransactionResponse,
    RewardTransactionsResponse,
    TrackTaskRequest,
    UserAchievementResponse,
    UserChallengeResponse,
    UserDailyTaskResponse,
    UserStatsResponse,
)
from paxrewards.ledger.store import LedgerStore

router = APIRouter(prefix="/api/v1/rewards", tags=["Rewards"])


def valid_address(address: str) -> str:
    """Path dependency: reject malformed wallet addresses, return the checksum form."""
    if not is_address(address):
        raise HTTPException(status_code=400, detail=f"Invalid wallet address: {address}")
    return to_checksum_address(address)


# ── Catalog ──


@router.get("/lessons", response_model=list[LessonResponse])
async def list_lessons(db: AsyncSession = Depends(get_db)):
    """Active lesson catalog."""
    return await LedgerStore(db).list_lessons()


@router.get("/lessons/{lesson_id}", response_model=LessonResponse)
async def get_lesson(lesson_id: str, recorder: ActionRecorder = Depends(get_recorder)):
    return await recorder.get_lesson(lesson_id)


@router.get("/achievements", response_model=list[AchievementResponse])
async def list_achievements(db: AsyncSession = Depends(get_db)):
    return await LedgerStore(db).list_achievements()


@router.get("/challenges", response_model=list[ChallengeResponse])
async def list_challenges(db: AsyncSession = Depends(get_db)):
    return await LedgerStore(db).list_daily_challenges()


# ── Per-user reads ──


@router.get("/users/{address}/stats", response_model=UserStatsResponse)
async def get_user_stats(
    address: str = Depends(valid_address),
    recorder: ActionRecorder = Depends(get_recorder),
):
    """Level, XP, counters and payout summary for a wallet."""
    return await recorder.get_stats(address)


@router.get("/users/{address}/achievements", response_model=list[UserAchievementResponse])
async def get_user_achievements(
    address: str = Depends(valid_address),
    recorder: ActionRecorder = Depends(get_recorder),
):
    return await recorder.get_achievements(address)


@router.get("/users/{address}/challenges", response_model=list[UserChallengeResponse])
async def get_user_challenges(
    address: str = Depends(valid_address),
    date: dt.date | None = Query(None, description="UTC day, defaults to today"),
    recorder: ActionRecorder = Depends(get_recorder),
):
    return await recorder.get_challenges(address, date)


@router.get("/users/{address}/progress", response_model=list[LessonProgressResponse])
async def get_user_lesson_progress(
    address: str = Depends(valid_address),
    recorder: ActionRecorder = Depends(get_recorder),
):
    """Which lessons the wallet has completed and whether their rewards were paid."""
    return await recorder.get_lesson_progress(address)


@router.get("/users/{address}/daily-tasks", response_model=list[UserDailyTaskResponse])
async def get_user_daily_tasks(
    address: str = Depends(valid_address),
    date: dt.date | None = Query(None, description="UTC day, defaults to today"),
    recorder: ActionRecorder = Depends(get_recorder),
):
    return await recorder.get_daily_tasks(address, date)


@router.get("/users/{address}/transactions", response_model=RewardTransactionsResponse)
async def get_user_transactions(
    address: str = Depends(valid_address),
    recorder: ActionRecorder = Depends(get_recorder),
):
    """Reward payouts for a wallet, newest first."""
    txs = await recorder.get_reward_transactions(address)
    return RewardTransactionsResponse(
        transactions=[RewardTransactionResponse.model_validate(tx) for tx in txs],
        total=len(txs),
    )


# ── Actions ──


@router.post("/users/{address}/lessons/{lesson_id}/complete", response_model=ActionResultResponse)
async def complete_lesson(
    lesson_id: str,
    address: str = Depends(valid_address),
    recorder: ActionRecorder = Depends(get_recorder),
):
    """Record a lesson completion (409 if already completed)."""
    result = await recorder.complete_lesson(address, lesson_id)
    return ActionResultResponse.model_validate(result)


@router.post("/users/{address}/checkin", response_model=ActionResultResponse)
async def daily_checkin(
    address: str = Depends(valid_address),
    recorder: ActionRecorder = Depends(get_recorder),
):
    """Record today's check-in (409 if already checked in)."""
    result = await recorder.daily_checkin(address)
    return ActionResultResponse.model_validate(result)


@router.post("/users/{address}/challenge-progress", response_model=ActionResultResponse)
async def update_challenge_progress(
    body: ChallengeProgressRequest,
    address: str = Depends(valid_address),
    recorder: ActionRecorder = Depends(get_recorder),
):
    result = await recorder.update_challenge_progress(address, body.challenge_type, body.increment)
    return ActionResultResponse.model_validate(result)


@router.post("/users/{address}/track-task", response_model=ActionResultResponse)
async def track_daily_task(
    body: TrackTaskRequest,
    address: str = Depends(valid_address),
    recorder: ActionRecorder = Depends(get_recorder),
):
    result = await recorder.track_daily_task(address, body.task_type)
    return ActionResultResponse.model_validate(result)
