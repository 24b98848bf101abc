"""
Pytest configuration and fixtures.
"""

import sys
import os
import uuid
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Add app to path
sys.path.append(os.getcwd())

from app.database import Base
from app.models import User  # noqa: F401  registers every table on Base.metadata
from app.services import NotificationService, InterestService

# Use in-memory SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create async engine for tests; one fresh database per test."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for a test."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_user(db):
    """Factory for persisted users."""
    async def _make(first_name="Test", email=None) -> User:
        user = User(
            id=uuid.uuid4(),
            email=email or f"{uuid.uuid4().hex[:10]}@example.com",
            first_name=first_name,
        )
        db.add(user)
        await db.flush()
        return user

    return _make


@pytest.fixture
def email_sender():
    return AsyncMock()


@pytest.fixture
def push_sender():
    return AsyncMock()


@pytest.fixture
def notification_service(db, email_sender, push_sender) -> NotificationService:
    return NotificationService(db, email_sender=email_sender, push_sender=push_sender)


@pytest.fixture
def interest_service(db, notification_service) -> InterestService:
    return InterestService(db, notification_service)
