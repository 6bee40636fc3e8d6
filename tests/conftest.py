"""Pytest configuration and fixtures."""
import os
from datetime import datetime, UTC
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Settings are cached on first import, so configure the test environment first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_pizza_promo.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["FORCE_WIN"] = "false"
os.environ["FTW_EVERY"] = "0"
os.environ["SALES_API_BASE_URL"] = ""
os.environ["SALES_API_KEY"] = ""
os.environ["SMTP_HOST"] = ""

from pizza_promo.config import get_settings
from pizza_promo.database import init_models
from pizza_promo.models import Round
from pizza_promo.services.coupon_client import Coupon, CouponIssuanceResult
from pizza_promo.tasks import drain_detached

settings = get_settings()


class SequenceRandom:
    """Stand-in for ``random.Random`` that replays fixed values."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = []

    def randint(self, low, high):
        self.calls.append((low, high))
        return self.values.pop(0)


@pytest.fixture
def sequence_rng():
    """Factory for RNGs that replay fixed draws."""
    return SequenceRandom


@pytest.fixture
async def test_engine(tmp_path):
    """Fresh SQLite file database per test with tables created from metadata."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        connect_args={"timeout": 15},
    )
    await init_models(engine)

    yield engine

    await drain_detached(timeout=1.0)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def coupon_client():
    """Configured coupon client that issues ``PIZZA-TEST``."""
    client = MagicMock()
    client.configured = True
    client.issue = AsyncMock(return_value=CouponIssuanceResult(
        issued=True,
        coupon=Coupon(code="PIZZA-TEST", expires_at=datetime(2030, 1, 2, 12, 0, tzinfo=UTC), name="Pizza gratis"),
        status=201,
    ))
    return client


@pytest.fixture
def notifier():
    """Admin notifier that records calls instead of sending email."""
    mock = MagicMock()
    mock.notify_win = AsyncMock(return_value=True)
    mock.notify_claim = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def round_factory(db_session):
    """Insert rounds with a known target."""

    async def _create_round(target_value: int = 437, claimed: bool = False, delivered: bool = False, **kwargs) -> Round:
        round_obj = Round(target_value=target_value, claimed=claimed, delivered=delivered, **kwargs)
        db_session.add(round_obj)
        await db_session.commit()
        return round_obj

    return _create_round


@pytest.fixture
async def test_app(session_factory, coupon_client, notifier):
    """Create test app with database, coupon and email overrides."""
    from pizza_promo.main import app
    from pizza_promo.database import get_db
    from pizza_promo.services.coupon_client import get_coupon_client
    from pizza_promo.services.notification_service import get_admin_notifier

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_coupon_client] = lambda: coupon_client
    app.dependency_overrides[get_admin_notifier] = lambda: notifier
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app):
    from httpx import AsyncClient, ASGITransport

    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as ac:
        yield ac
