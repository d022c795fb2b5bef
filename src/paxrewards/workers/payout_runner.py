"""Standalone runner for the payout processor.

Drains pending reward transactions every ``PAX_PAYOUT_INTERVAL_SECONDS``
until SIGINT/SIGTERM, finishing the in-flight cycle before exiting.

Usage: python -m paxrewards.workers.payout_runner
"""

from __future__ import annotations

import asyncio
import logging
import signal

from paxrewards.config import get_settings
from paxrewards.database import close_db, get_session_factory, init_db
from paxrewards.middleware.logging import setup_logging
from paxrewards.payouts.gateway import Web3WalletGateway
from paxrewards.payouts.processor import PayoutProcessor
from paxrewards.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


async def main() -> None:
    """Run the payout processor until signalled."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)

    redis_client = await init_redis(settings.redis_url, max_connections=5)
    gateway = Web3WalletGateway.from_settings(settings)
    processor = PayoutProcessor(get_session_factory(), gateway, settings, redis_client)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info("Starting payout processor (wallet=%s)", gateway.address)
    processor.start()
    try:
        await stop.wait()
    finally:
        await processor.stop()
        await close_redis()
        await close_db()
        logger.info("Payout processor stopped")


if __name__ == "__main__":
    asyncio.run(main())
