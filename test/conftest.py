"""
Pytest configuration and fixtures for Consent Wallet Coordinator tests
"""

import os
import sys

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH119, PTH120

from consent_wallet.database import create_tables  # noqa: E402
from consent_wallet.dependencies import build_services  # noqa: E402
from consent_wallet.services.sse_manager import NotificationBroadcaster  # noqa: E402
from consent_wallet.services.store_service import PersistentStore  # noqa: E402
from consent_wallet.services.tab_manager import TabManager  # noqa: E402
from utils.mock_utils import FakeClock, RecordingChannel  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture(scope="function")
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> PersistentStore:
    return PersistentStore(session_factory, namespace="test")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def services(session_factory, clock):
    """Coordinator and collaborators on the test database, scheduler started paused."""
    services = build_services(
        session_factory=session_factory,
        tabs=TabManager(),
        broadcaster=NotificationBroadcaster(),
        clock=clock,
        use_memory_jobstore=True,
    )
    services.scheduler.start(paused=True)
    await services.coordinator.initialize()
    yield services
    await services.coordinator.close()
    services.scheduler.shutdown(wait=False)


@pytest.fixture
def coordinator(services):
    return services.coordinator


@pytest.fixture
async def tab_channel(services) -> RecordingChannel:
    """Tab 7 connected with a recording command channel."""
    channel = RecordingChannel()
    await services.tabs.register(7, channel, url="https://shop.example.com/checkout")
    return channel


@pytest.fixture
async def client(services):
    from main import create_app

    app = create_app(services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

