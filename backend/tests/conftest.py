"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, Mock

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from pricing.main import app
from pricing.models import Base, PriceCache, PriceHistory
from pricing.routers.dependencies import get_price_service, get_refresh_service
from pricing.services import (
    BackgroundPriceRefreshService,
    PriceService,
    PricingSettings,
)


@pytest.fixture(scope="function")
async def session_factory(tmp_path):
    """Fresh SQLite database file for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def settings():
    """Pricing settings with no real waiting."""
    return PricingSettings(
        api_url="http://quotes.test/exec",
        api_timeout_seconds=1.0,
        base_retry_delay_seconds=0,
        max_retry_delay_seconds=0,
        batch_delay_seconds=0,
    )


@pytest.fixture
def mock_client():
    """Upstream client that returns no prices unless told otherwise."""
    client = Mock()
    client.service_key = "GOOGLE_SCRIPT"
    client.fetch_quotes = AsyncMock(return_value={})
    client.ping = AsyncMock(return_value={"status": "up", "response_time_ms": 1})
    return client


@pytest.fixture
def price_service(settings, session_factory, mock_client):
    """Isolated price service backed by the test database and mock upstream."""
    return PriceService(settings, session_factory=session_factory, client=mock_client)


@pytest.fixture
def refresh_service(price_service):
    return BackgroundPriceRefreshService(price_service)


@pytest.fixture
def seed_quote(session_factory):
    """Insert a cache entry last updated `age` ago."""

    async def _seed(symbol, price, age=timedelta(0), source="GOOGLE_SCRIPT"):
        async with session_factory() as session:
            session.add(PriceCache(
                symbol=symbol,
                price=price,
                source=source,
                last_updated=datetime.utcnow() - age,
            ))
            await session.commit()

    return _seed


@pytest.fixture
def seed_history(session_factory):
    """Insert a price history record observed `age` ago."""

    async def _seed(symbol, price, age=timedelta(0), source="GOOGLE_SCRIPT"):
        async with session_factory() as session:
            session.add(PriceHistory(
                symbol=symbol,
                price=price,
                source=source,
                timestamp=datetime.utcnow() - age,
            ))
            await session.commit()

    return _seed


@pytest.fixture(scope="function")
async def client(price_service, refresh_service):
    """Create test client wired to the isolated services."""
    app.dependency_overrides[get_price_service] = lambda: price_service
    app.dependency_overrides[get_refresh_service] = lambda: refresh_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
