"""Process-wide Redis client shared by the API, the payout runner and the arq worker.

Redis only carries best-effort event publishing, so every caller that can
run without it reads the client through ``get_redis_or_none``.
"""

import redis.asyncio as redis

_pool: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 20) -> redis.Redis:
    """Create the shared client. No connection is opened until first use."""
    global _pool  # noqa: PLW0603
    if _pool is not None:
        await _pool.aclose()
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )
    return _pool


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool


def get_redis_or_none() -> redis.Redis | None:
    return _pool


async def redis_status() -> str:
    """``ok``, ``disabled`` when never initialized, or ``error: ...``."""
    if _pool is None:
        return "disabled"
    try:
        await _pool.ping()
    except Exception as exc:
        return f"error: {exc}"
    return "ok"
