from .config import settings
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from typing import AsyncGenerator
from contextlib import asynccontextmanager
import logging

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url.replace("postgresql://", "postgresql+asyncpg://")

async_engine = create_async_engine(
    DATABASE_URL,
    echo=settings.debug,
    future=True
)

Base = declarative_base()

async_session_maker = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False
)

async def init_db():
    # Development convenience; production schemas come from alembic/versions.
    from . import models
    async with async_engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)

async def close_db():
    await async_engine.dispose()

async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

@asynccontextmanager
async def session_scope():
    """Session for work done outside a request, e.g. the dead-letter sweep."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.exception("Rolling back session_scope after error")
            await session.rollback()
            raise
