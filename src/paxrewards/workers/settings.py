"""arq worker settings for the payout processor.

Import path for arq CLI: arq paxrewards.workers.settings.WorkerSettings
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from paxrewards.config import get_settings
from paxrewards.database import close_db, get_session_factory, init_db
from paxrewards.payouts.gateway import Web3WalletGateway
from paxrewards.payouts.processor import PayoutProcessor
from paxrewards.redis_client import close_redis, get_redis, init_redis

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB, Redis and the processor on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)

    await init_redis(settings.redis_url, max_connections=5)
    ctx["processor"] = PayoutProcessor(
        get_session_factory(),
        Web3WalletGateway.from_settings(settings),
        settings,
        get_redis(),
    )
    logger.info("Payout worker started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    await close_redis()
    await close_db()
    logger.info("Payout worker shut down")


async def process_rewards(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Run one payout cycle."""
    processor: PayoutProcessor = ctx["processor"]
    report = await processor.run_cycle()
    return {"sent": report.sent, "failed": report.failed, "skipped": report.skipped}


class WorkerSettings:
    """arq worker settings: one payout cycle every 30 seconds."""

    functions = [process_rewards]
    cron_jobs = [
        cron(process_rewards, second={0, 30}, unique=True, run_at_startup=True),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 1
    job_timeout = 300
