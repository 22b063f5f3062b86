"""
Shared fixtures: a throwaway SQLite database per test and an HTTP client
whose database dependency points at it.
"""
import base64
import os

# Must be set before identity_sync.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("WORKOS_WEBHOOK_SECRET", "workos-test-secret")
os.environ.setdefault(
    "CLERK_WEBHOOK_SECRET",
    "whsec_" + base64.b64encode(b"clerk-test-secret-0123456789abcd").decode(),
)
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from identity_sync.config import settings
from identity_sync.database import get_async_db
from identity_sync.main import app
from identity_sync.models import Base


@pytest.fixture
def workos_secret() -> str:
    return settings.workos_webhook_secret


@pytest.fixture
def clerk_secret() -> str:
    return settings.clerk_webhook_secret


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'identity_sync.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_async_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_db] = override_get_async_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
