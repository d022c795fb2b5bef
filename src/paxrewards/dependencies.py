"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from paxrewards.config import get_settings
from paxrewards.database import get_session
from paxrewards.gamification.recorder import ActionRecorder
from paxrewards.redis_client import get_redis_or_none

get_db = get_session


async def get_redis_dep() -> AsyncGenerator[object | None, None]:
    """Yield the Redis client, or None when Redis is not available."""
    yield get_redis_or_none()


async def get_recorder(
    db: AsyncSession = Depends(get_db),  # noqa: B008
    redis: object | None = Depends(get_redis_dep),  # noqa: B008
) -> ActionRecorder:
    """Action recorder bound to the request's session."""
    return ActionRecorder(db, get_settings(), redis)
