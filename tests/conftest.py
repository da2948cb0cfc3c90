"""
Pytest configuration and fixtures for testing
"""
import os

# Must be set before application modules read settings
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-pytest-only-0123456789")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "10000")
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("REDIS_URL", None)

from datetime import timedelta

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from database import get_db, Base
import database_models  # noqa: F401
from auth_utils import hash_password
from database_models import Account, Subscription, SubscriptionStatus, utcnow

# In-memory SQLite database for testing; StaticPool keeps one shared connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_PASSWORD = "Secret123!"


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """
    Fixture that provides an isolated, in-memory SQLite session for each test.
    Tables are created before the test and dropped afterwards.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture verification emails instead of sending them."""
    outbox = []

    async def fake_send(email, code):
        outbox.append({"email": email, "code": code})
        return True

    monkeypatch.setattr("auth.send_verification_email", fake_send)
    return outbox


@pytest.fixture
async def async_client(session_factory, sent_emails):
    """
    Async HTTP client with the get_db dependency pointed at the test database.
    """
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_account(test_db):
    """Factory creating a verified account directly in the database."""
    counter = {"n": 0}

    async def _make(trials_used=0, verified=True, payer_id=None, **overrides):
        counter["n"] += 1
        n = counter["n"]
        account = Account(
            full_name=overrides.pop("full_name", f"Test User {n}"),
            username=overrides.pop("username", f"user{n}"),
            email=overrides.pop("email", f"user{n}@example.com"),
            hashed_password=hash_password(TEST_PASSWORD),
            is_verified=verified,
            trials_used=trials_used,
            paypal_payer_id=payer_id,
            **overrides,
        )
        test_db.add(account)
        await test_db.commit()
        await test_db.refresh(account)
        return account

    return _make


@pytest.fixture
def make_subscription(test_db):
    """Factory attaching a subscription to an account."""
    counter = {"n": 0}

    async def _make(account, status=SubscriptionStatus.ACTIVE, expires_in=timedelta(days=10)):
        counter["n"] += 1
        subscription = Subscription(
            external_id=f"I-TEST{counter['n']}",
            account_id=account.id,
            status=status,
            expires_at=utcnow() + expires_in if expires_in is not None else None,
        )
        test_db.add(subscription)
        await test_db.flush()
        account.subscription_id = subscription.id
        await test_db.commit()
        await test_db.refresh(account)
        return subscription

    return _make
