"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from paxrewards.config import get_settings
from paxrewards.database import close_db, get_session_factory, init_db
from paxrewards.gamification.router import router as rewards_router
from paxrewards.gamification.seed import seed_catalog
from paxrewards.health.router import router as health_router
from paxrewards.middleware import setup_middleware
from paxrewards.payouts.gateway import Web3WalletGateway
from paxrewards.payouts.processor import PayoutProcessor
from paxrewards.redis_client import close_redis, get_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Seed catalog (idempotent)
    try:
        async with get_session_factory()() as db:
            await seed_catalog(db)
    except Exception:
        logger.warning("Catalog seeding failed (tables may not exist yet)", exc_info=True)

    processor: PayoutProcessor | None = None
    if settings.payout_in_process:
        processor = PayoutProcessor(
            get_session_factory(),
            Web3WalletGateway.from_settings(settings),
            settings,
            get_redis(),
        )
        processor.start()

    yield

    if processor is not None:
        await processor.stop()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="PAX Rewards API",
        description="Reward ledger and payout processor for the Paxeer wallet",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(rewards_router)

    return app


app = create_app()
