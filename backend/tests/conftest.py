"""
EngageSphere Backend - Test Configuration (conftest.py)
========================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy (all function-scoped):
    ├── db_engine: In-memory aiosqlite engine with the full schema
    ├── db_session: AsyncSession bound to db_engine
    ├── seeded_user: A user the payment flow accepts
    ├── make_payment: Factory inserting ledger rows
    ├── mock_db_session: AsyncMock session (failure injection)
    ├── mock_gateway: PayPal client replaced with AsyncMocks
    └── test_client: HTTPX AsyncClient over the FastAPI app, wired to db_engine
"""

import os
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

# Override settings for testing BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["PAYPAL_CLIENT_ID"] = "test-client-id"
os.environ["PAYPAL_CLIENT_SECRET"] = "test-client-secret"
os.environ["PAYPAL_API_BASE"] = "https://paypal.test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db_session
from app.models.payment import Payment, PaymentStatus
from app.models.user import User
from app.services.gateway_base import RemoteOrder


# ══════════════════════════════════════════════════════════════════════════
# Ledger Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """
    Fresh in-memory database per test.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_user(session_factory):
    """A registered user; committed so every session can see it."""
    async with session_factory() as session:
        user = User(user_id="user-100", name="Ada Lovelace", username="ada", email="ada@example.com")
        session.add(user)
        await session.commit()
    return user


@pytest.fixture
def make_payment(session_factory):
    """
    Factory inserting a committed ledger row.

    Usage:
        payment = await make_payment(status="CAPTURED", amount="10.00")
    """
    counter = {"n": 0}

    async def _make(**overrides) -> Payment:
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "order_id": f"ORDER-{n}",
            "user_id": "user-100",
            "user_name": "Ada Lovelace",
            "status": PaymentStatus.CREATED.value,
            "package_name": "Pro",
            "package_features": ["Priority support", "Analytics"],
            "amount": Decimal("25.00"),
            "currency": "USD",
            "create_time": datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
        }
        fields.update(overrides)
        if isinstance(fields["amount"], str):
            fields["amount"] = Decimal(fields["amount"])
        async with session_factory() as session:
            payment = Payment(**fields)
            session.add(payment)
            await session.commit()
        return payment

    return _make


@pytest.fixture
def mock_db_session():
    """
    Mock async database session for failure injection.

    Usage:
        mock_db_session.flush.side_effect = RuntimeError("disk full")
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# Gateway Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def remote_order():
    return RemoteOrder(
        order_id="5O190127TN364715T",
        status="CREATED",
        approve_link="https://www.sandbox.paypal.com/checkoutnow?token=5O190127TN364715T",
    )


@pytest.fixture
def mock_gateway(remote_order):
    """PayPal client used by PaymentService, replaced with AsyncMocks."""
    with patch("app.services.payment_service.paypal_client") as gateway:
        gateway.create_remote_order = AsyncMock(return_value=remote_order)
        gateway.capture_remote_order = AsyncMock()
        yield gateway


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory):
    """
    HTTPX AsyncClient talking to the FastAPI app through ASGITransport,
    with get_db_session pointed at the in-memory test database.

    Usage:
        async def test_all(test_client):
            response = await test_client.get("/payment/all")
            assert response.status_code == 200
    """
    from app.main import app

    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
