import os
from contextlib import contextmanager
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dotenv import load_dotenv

# Optional overrides for local runs (e.g. TEST_DATABASE_URL pointing at Postgres)
env_test_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=True)

# Tests never touch DATABASE_URL from the environment; they default to in-memory
# SQLite. Point TEST_DATABASE_URL at Postgres to exercise row locking for real.
os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:"
)

from libs.auth.dependencies import get_current_user, require_admin  # noqa: E402
from libs.auth.models import AuthUser  # noqa: E402
from libs.common.config import get_settings  # noqa: E402
from libs.db.base import Base  # noqa: E402
from services.store_service import models as _store_models  # noqa: E402,F401
from services.store_service.payments import (  # noqa: E402
    ChargeIntent,
    PaymentGateway,
    PaymentGatewayError,
    get_payment_gateway,
)

# Clear cached settings to reload with test env vars
get_settings.cache_clear()
settings = get_settings()

DEFAULT_USER_ID = "user-test-0001"
ADMIN_USER_ID = "admin-test-0001"


class FakeGateway(PaymentGateway):
    """In-memory gateway recording every charge intent request."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[dict] = []

    async def create_charge_intent(
        self, amount_minor, currency, metadata, idempotency_key=None
    ):
        self.calls.append(
            {
                "amount_minor": amount_minor,
                "currency": currency,
                "metadata": metadata,
                "idempotency_key": idempotency_key,
            }
        )
        if self.fail:
            raise PaymentGatewayError("card network unavailable", status_code=503)
        n = len(self.calls)
        return ChargeIntent(intent_id=f"pi_test_{n}", client_secret=f"pi_test_{n}_secret")


def make_user(user_id: str = DEFAULT_USER_ID, role: str = "authenticated") -> AuthUser:
    return AuthUser(user_id=user_id, email="shopper@example.com", role=role)


def make_admin_user(user_id: str = ADMIN_USER_ID) -> AuthUser:
    return AuthUser(user_id=user_id, email="admin@example.com", role="admin")


@contextmanager
def override_auth(app, user: AuthUser):
    """Temporarily authenticate requests as ``user``."""
    previous = app.dependency_overrides.get(get_current_user)
    app.dependency_overrides[get_current_user] = lambda: user
    try:
        yield
    finally:
        if previous is None:
            app.dependency_overrides.pop(get_current_user, None)
        else:
            app.dependency_overrides[get_current_user] = previous


@pytest_asyncio.fixture
async def test_engine():
    """
    A fresh database per test. In-memory SQLite needs a single shared
    connection, hence StaticPool.
    """
    engine_kwargs = {"future": True}
    if settings.is_sqlite:
        engine_kwargs["poolclass"] = StaticPool
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session configured like the app's (no expire on commit, no autoflush)."""
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture
async def app(db_session, gateway):
    """Store app wired to the test session, a fake gateway and a default user."""
    from libs.db.session import get_async_db
    from services.store_service.app.main import app as store_app

    async def _db():
        yield db_session

    store_app.dependency_overrides[get_async_db] = _db
    store_app.dependency_overrides[get_payment_gateway] = lambda: gateway
    store_app.dependency_overrides[get_current_user] = lambda: make_user()

    yield store_app

    store_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Client authenticated as an admin."""
    app.dependency_overrides[require_admin] = lambda: make_admin_user()
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


@pytest.fixture
def auth_headers() -> dict:
    """Placeholder bearer header; auth itself is mocked via dependency overrides."""
    return {"Authorization": "Bearer mock-token"}


async def persist(db: AsyncSession, *instances, refresh: bool = True):
    """Add and commit model instances, returning the first."""
    db.add_all(instances)
    await db.commit()
    if refresh:
        for instance in instances:
            await db.refresh(instance)
    return instances[0] if len(instances) == 1 else instances
