"""
Pytest configuration and fixtures for testing
"""
import os

# Must be set before the application modules read their settings
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-pytest-only-0123456789")
os.environ["RATE_LIMIT_PER_MINUTE"] = "0"
os.environ.pop("REDIS_URL", None)

from datetime import datetime, timedelta  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from auth_utils import create_jwt  # noqa: E402
from database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from database_models import Subscription, User  # noqa: E402
from utils.shared_utils import utcnow  # noqa: E402


@pytest.fixture
async def test_engine(tmp_path):
    """
    Engine on a fresh SQLite file per test.
    NullPool keeps no connection alive across event loops.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        future=True,
        poolclass=NullPool,
    )
    enable_sqlite_foreign_keys(engine.sync_engine)

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
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
    Fixture that provides an isolated database session for each test.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest.fixture
async def client(session_factory):
    """HTTP client against the app with get_db pointed at the test database"""
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
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client

    # Cleanup: remove dependency override
    app.dependency_overrides.clear()


async def create_user(
    db,
    email: str = "user@example.com",
    role: str = "user",
    free_questions_remaining: int = 1,
    free_period_ends_at: datetime = None,
    blocked_at: datetime = None,
) -> User:
    user = User(
        email=email,
        role=role,
        free_questions_remaining=free_questions_remaining,
        free_period_ends_at=free_period_ends_at,
        blocked_at=blocked_at,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_subscription(
    db,
    user: User,
    status: str = "active",
    updated_at: datetime = None,
    current_period_end: datetime = None,
    provider_subscription_id: str = None,
) -> Subscription:
    """Stand-in for billing event ingestion"""
    updated_at = updated_at or utcnow()
    subscription = Subscription(
        user_id=user.id,
        provider_subscription_id=provider_subscription_id or f"sub_{user.id}_{status}_{updated_at.timestamp()}",
        provider_customer_id=f"cus_{user.id}",
        status=status,
        current_period_end=current_period_end,
        created_at=updated_at,
        updated_at=updated_at,
    )
    db.add(subscription)
    await db.commit()
    await db.refresh(subscription)
    return subscription


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_jwt(str(user.id), user.role)}"}


def days_from_now(days: float) -> datetime:
    return utcnow() + timedelta(days=days)
