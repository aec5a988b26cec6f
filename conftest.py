import os
from typing import AsyncGenerator

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Tests run against an in-memory SQLite database unless told otherwise.
# These must be set before any module reads the cached settings.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("BREVO_WEBHOOK_SECRET", "")
os.environ.setdefault("CRON_SECRET", "")
os.environ.setdefault("EMAIL_DAILY_LIMIT", "300")
os.environ.setdefault("ENROLLMENT_PRICE", "80")

from libs.common.config import get_settings  # noqa: E402
from libs.db.base import Base  # noqa: E402

# Import all models so metadata includes every table
from services.communications_service import models as _communications_models  # noqa: E402,F401
from services.payments_service import models as _payments_models  # noqa: E402,F401

get_settings.cache_clear()
settings = get_settings()


@pytest_asyncio.fixture
async def test_engine():
    """
    Fresh database per test.

    StaticPool keeps one connection, so an in-memory SQLite database lives
    for the whole test.
    """
    engine = create_async_engine(
        settings.DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False} if settings.is_sqlite else {},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session configured like the application's AsyncSessionLocal.

    Code under test commits freely; the database is dropped afterwards.
    """
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    session = session_factory()

    try:
        yield session
    finally:
        await session.close()
