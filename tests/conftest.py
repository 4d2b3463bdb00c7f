"""
Shared fixtures: an in-memory database per test and an HTTP client bound
to the app with its session dependency pointed at that database.
"""

import pytest
import pytest_asyncio
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from httpx import ASGITransport, AsyncClient

from msp_proposals.db.session import get_db
from msp_proposals.main import app
from msp_proposals.models import Base


TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Fresh schema for every test.

    StaticPool keeps the one in-memory database alive across connections.
    """
    engine = create_async_engine(
        TEST_ASYNC_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session configured like the application's, rolled back afterwards."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    AsyncClient talking to the app in-process.

    Every request shares ``db_session``, so rows created with the factories
    are visible to the API and vice versa.
    """

    async def _test_db():
        yield db_session

    app.dependency_overrides[get_db] = _test_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def firewall_item_data() -> dict:
    """
    Subscription row used across API tests.

    3 x 100 = 300, 10% discount -> 270, 5% tax -> 13.50, total 283.50.
    """
    return {
        "name": "Managed Firewall",
        "item_type": "subscription",
        "quantity": 3,
        "unit_price": 100,
        "discount_value": 10,
        "tax_percent": 5,
        "margin_percent": 30,
    }


@pytest.fixture
def two_approvers() -> list:
    """Two required approvers in order."""
    return [
        {"approver_id": "u-finance", "approver_name": "Finance", "approver_email": "fin@example.com"},
        {"approver_id": "u-manager", "approver_name": "Manager", "approver_email": "mgr@example.com"},
    ]
