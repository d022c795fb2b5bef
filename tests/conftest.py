"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from paxrewards.config import Settings
from paxrewards.database import get_session
from paxrewards.db import models  # noqa: F401
from paxrewards.db.base import Base
from paxrewards.errors import GatewaySendFailure
from paxrewards.gamification.seed import seed_catalog
from paxrewards.main import create_app


class FakeGateway:
    """In-memory custodial wallet.

    ``balance`` is what get_balance reports; sends do not debit it unless
    ``debit`` is set. ``fail_with`` makes the next sends raise, ``delay``
    makes them hang.
    """

    address = "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB"

    def __init__(self, balance: Decimal = Decimal("100")) -> None:
        self.balance = balance
        self.sent: list[tuple[str, Decimal]] = []
        self.fail_with: Exception | None = None
        self.delay = 0.0
        self.debit = False
        self.balance_reads = 0

    async def get_balance(self) -> Decimal:
        self.balance_reads += 1
        return self.balance

    async def send_native(self, to: str, amount: Decimal) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((to, amount))
        if self.debit:
            self.balance -= amount
        return "0x" + f"{len(self.sent):064x}"


@pytest.fixture
def user() -> str:
    return "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


@pytest.fixture
def other_user() -> str:
    return "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        log_format="console",
        payout_interval_seconds=0.01,
        payout_send_timeout_seconds=0.2,
        payout_gas_reserve=Decimal("0.001"),
        payout_retry_failed=True,
        payout_max_attempts=3,
        payout_backoff_base_seconds=60,
        payout_backoff_max_seconds=3600,
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def send_failure() -> GatewaySendFailure:
    return GatewaySendFailure("node rejected transaction")


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite database with the full schema."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rewards.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """Session over a database with the reward catalog seeded."""
    await seed_catalog(db_session)
    return db_session


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    seeded_db: AsyncSession,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the test database swapped in."""
    app = create_app()

    async def _test_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _test_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
