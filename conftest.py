import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Load .env.test for local overrides (e.g. a real Redis for cache tests)
from dotenv import load_dotenv

env_test_path = os.path.join(os.path.dirname(__file__), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=False)

# Settings are read at import time by libs.db.config; pin the test values first
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./marketplace-test.db"
os.environ["PAYMENT_GATEWAY"] = "fake"
os.environ["WEBHOOK_SIGNING_SECRET"] = "test-webhook-secret"
os.environ["FLUTTERWAVE_WEBHOOK_HASH"] = "test-verif-hash"
os.environ["CACHE_ENABLED"] = "true"

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser, Role
from libs.common.cache import ReadCache
from libs.common.config import get_settings
from libs.db.base import Base
from libs.db.session import get_async_db
from services.marketplace_service import models as _marketplace_models  # noqa: F401
from services.marketplace_service.app.main import app
from services.marketplace_service.dependencies import (
    get_payment_gateway,
    get_read_cache,
)
from services.marketplace_service.gateway import FakePaymentGateway
from tests.stubs import FakeRedis

# Clear cached settings to reload with new env vars
get_settings.cache_clear()
settings = get_settings()


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    A fresh SQLite database per test; every table created from the metadata.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'marketplace.db'}", future=True
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """
    A factory configured like the application's; tests open extra sessions
    from it to act as a concurrent writer.
    """
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session configured like the application's session factory.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def read_cache(fake_redis) -> ReadCache:
    return ReadCache(client=fake_redis, enabled=True, default_ttl=60)


class AuthState:
    """Mutable stand-in for the bearer token; tests switch users with ``login``."""

    def __init__(self):
        self.user = AuthUser(
            user_id="buyer-1", email="buyer-1@test.com", role=Role.BUYER
        )

    def login(self, user_id: str, role: Role = Role.BUYER, email=None) -> AuthUser:
        self.user = AuthUser(
            user_id=user_id, email=email or f"{user_id}@test.com", role=role
        )
        return self.user


@pytest.fixture
def auth() -> AuthState:
    return AuthState()


@pytest_asyncio.fixture
async def client(
    db_session, gateway, read_cache, auth
) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient with DB, auth, gateway and cache dependencies overridden.
    """

    async def _current_user():
        return auth.user

    app.dependency_overrides[get_async_db] = lambda: db_session
    app.dependency_overrides[get_current_user] = _current_user
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_read_cache] = lambda: read_cache

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()

