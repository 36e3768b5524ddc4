"""
Pytest configuration and fixtures.
"""

import sys
import os
from typing import AsyncGenerator

# Settings are read at import time; pin them before the app is imported.
os.environ["DATABASE_URL"] = ""
os.environ["REDIS_URL"] = ""
os.environ["APP_ENV"] = "development"
os.environ["MERCADOPAGO_ACCESS_TOKEN"] = "test-access-token"
os.environ["MERCADOPAGO_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["MERCADOPAGO_API_URL"] = "https://mp.test"
os.environ["SUPABASE_URL"] = "https://storage.test"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-service-key"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["PAYMENT_FETCH_DELAY_SECONDS"] = "0"
os.environ["PROCESSOR_FETCH_RETRY_DELAY_SECONDS"] = "0"

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Add app to path
sys.path.append(os.getcwd())

from app.database import Base, get_db
import app.models  # noqa: F401
from app.services.mercadopago_service import MercadoPagoService, get_mercadopago_service
from app.services.metrics import InMemoryMetrics, get_metrics
from app.services.replay_guard import InMemoryReplayGuard, get_replay_guard
from app.services.storage_service import StorageService, get_storage_service

from factories import FakeClock, MercadoPagoStub, StorageStub

# Use in-memory SQLite for tests; StaticPool keeps every session on one database
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Create async engine for tests."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
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
async def file_session_maker(tmp_path):
    """Sessions on separate connections to a file database, for race tests."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'race.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for a test."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def metrics() -> InMemoryMetrics:
    return InMemoryMetrics()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def replay_guard(clock) -> InMemoryReplayGuard:
    return InMemoryReplayGuard(ttl_seconds=300, clock=clock)


@pytest.fixture
def mp_stub() -> MercadoPagoStub:
    return MercadoPagoStub()


@pytest.fixture
def mercadopago(mp_stub) -> MercadoPagoService:
    return MercadoPagoService(
        access_token="test-access-token",
        base_url="https://mp.test",
        timeout=5.0,
        attempts=3,
        retry_delay=0,
        transport=mp_stub.transport,
    )


@pytest.fixture
def storage_stub() -> StorageStub:
    return StorageStub()


@pytest.fixture
def storage(storage_stub) -> StorageService:
    return StorageService(
        base_url="https://storage.test",
        service_key="test-service-key",
        bucket="original-photos",
        transport=storage_stub.transport,
    )


@pytest_asyncio.fixture
async def client(session_maker, replay_guard, mercadopago, storage, metrics):
    """HTTP client against the app with test collaborators injected."""
    from app.main import app

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_replay_guard] = lambda: replay_guard
    app.dependency_overrides[get_mercadopago_service] = lambda: mercadopago
    app.dependency_overrides[get_storage_service] = lambda: storage
    app.dependency_overrides[get_metrics] = lambda: metrics

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
